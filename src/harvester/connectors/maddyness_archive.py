"""
Maddyness Archive Connector.

Maddyness has no funding category archive, so this walks the paginated
search results for "levée de fonds".
URL pattern: https://www.maddyness.com/page/{page}/?s=levee+de+fonds
"""

from .archive import ArchiveConnector


class MaddynessArchiveConnector(ArchiveConnector):
    article_selector = "article"
    title_selector = "h2 a, h3 a"
    date_selector = "time"
    excerpt_selector = "p.excerpt, .entry"
    content_selector = ".entry-content, article"
    # Search results also link partner sites
    url_must_contain = "maddyness.com"
