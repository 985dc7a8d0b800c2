"""
EU-Startups Archive Connector.

URL pattern: https://www.eu-startups.com/category/funding/page/{page}
"""

from .archive import ArchiveConnector


class EUStartupsArchiveConnector(ArchiveConnector):
    article_selector = "article"
    title_selector = "h2.entry-title a, h3.entry-title a"
    date_selector = "time, span.date, .td-post-date"
    excerpt_selector = ".entry-content, .td-excerpt"
    content_selector = ".td-post-content, .entry-content"
