"""
Bpifrance Connector - Startups financed by the French public investment bank.

Walks two news listings (bpifrance.fr and the Big Media hub). Listings mix
funding news with events and programme announcements, so only titles with
funding keywords are kept. Bpifrance is added to every record's investors.

URL pattern: https://www.bpifrance.fr/nos-actualites?page={page}
"""

from dataclasses import replace
from typing import List, Tuple

from ..base_connector import FetchResult
from .archive import ArchiveEntry, MultiListingArchiveConnector

BPIFRANCE = "Bpifrance"

BPI_FUNDING_WORDS = (
    "lève", "levée", "financement", "investissement", "french tech",
    "bourse", "prêt innovation", "seed", "série", "million", "accompagne",
)


class BpifranceConnector(MultiListingArchiveConnector):
    article_selector = "article"
    title_selector = "h2 a, h3 a, a.title, a[class*='title']"
    date_selector = "time"
    excerpt_selector = "p.desc, .excerpt, p"
    content_selector = "div.article-content, article, main"
    require_funding_title = True
    funding_title_words = BPI_FUNDING_WORDS

    async def process_entries(self, entries: List[ArchiveEntry]) -> Tuple[FetchResult, bool]:
        batch, reached_cutoff = await super().process_entries(entries)
        batch.items = [
            record if BPIFRANCE in record.investors
            else replace(record, investors=record.investors + (BPIFRANCE,))
            for record in batch.items
        ]
        return batch, reached_cutoff
