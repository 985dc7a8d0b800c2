"""
FrenchWeb Archive Connector.

Funding-round history from the "levées de fonds" tag archive.
URL pattern: https://www.frenchweb.fr/tag/levees-de-fonds/page/{page}
"""

from .archive import ArchiveConnector


class FrenchWebArchiveConnector(ArchiveConnector):
    """FrenchWeb tags every funding article, so no title filter is needed."""

    article_selector = "article.post, article"
    title_selector = "h2.entry-title a, h3.entry-title a"
    date_selector = "time"
    excerpt_selector = ".entry-content, p.excerpt"
    content_selector = ".entry-content"
