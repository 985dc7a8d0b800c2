"""
Sifted Archive Connector.

Sifted has no single funding archive; it is walked sector by sector
(fintech, healthtech, deeptech, sustainability), one listing per sector.

URL pattern: https://sifted.eu/sector/{sector}?page={page}
"""

from .archive import MultiListingArchiveConnector


class SiftedArchiveConnector(MultiListingArchiveConnector):
    article_selector = "article"
    title_selector = "a[href^='https://sifted.eu/articles/'], a[href^='/articles/']"
    date_selector = "time"
    excerpt_selector = "p"
    content_selector = "div.article-content, article"
    # Sector listings mix funding news with features and opinion
    require_funding_title = True
