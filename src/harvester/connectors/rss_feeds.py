"""
RSS Feed Connector - Legacy funding sources polled on a schedule.

Feeds only expose their newest entries, so there is nothing to paginate:
every fetch reads the current feed and returns has_more=False. The cursor is
always "latest" and RSS sources are never marked complete.

Feeds:
- FrenchWeb: https://www.frenchweb.fr/feed
- Maddyness: https://www.maddyness.com/feed/
- TechCrunch Venture: https://techcrunch.com/category/venture/feed/
- EU-Startups Funding: https://www.eu-startups.com/category/funding/feed/
- Sifted: https://sifted.eu/feed
- Tech.eu: https://tech.eu/feed/
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List, Optional

import feedparser

from ...analyst.extractor import extract
from ...analyst.parser import is_funding_article
from ...common.errors import PermanentParseError
from ...config.settings import settings
from ..base_connector import FetchResult, PaginatedSourceConnector

logger = logging.getLogger(__name__)

LATEST_CURSOR = "latest"


@dataclass
class FeedEntry:
    """Single entry from an RSS feed."""
    title: str
    url: str
    content: str
    published: Optional[date]


class RSSFeedConnector(PaginatedSourceConnector):
    """Reads one RSS feed and extracts funding records from its entries."""

    def get_initial_cursor(self) -> str:
        return LATEST_CURSOR

    def parse_feed(self, text: str) -> List[FeedEntry]:
        feed = feedparser.parse(text)

        # Check for malformed feed
        if feed.bozo and not feed.entries:
            raise PermanentParseError(f"Malformed feed {self.config.base_url}: {feed.bozo_exception}")

        entries: List[FeedEntry] = []
        for entry in feed.entries[: settings.rss_max_items]:
            # Skip entries without URLs or titles
            url = entry.get("link", "").strip()
            title = entry.get("title", "").strip()
            if not url or not title:
                logger.debug(f"Skipping feed entry without link or title: {url or 'unknown'}")
                continue

            published = None
            if entry.get("published_parsed") and len(entry.published_parsed) >= 6:
                published = datetime(*entry.published_parsed[:6], tzinfo=timezone.utc).date()

            # Full content when the feed carries it, summary otherwise
            content = ""
            if entry.get("content"):
                content = entry.content[0].get("value", "")
            if not content:
                content = entry.get("summary", "")

            entries.append(FeedEntry(
                title=title,
                url=url,
                content=self._extract_text(content) if content else "",
                published=published,
            ))

        return entries

    async def fetch(self, cursor: Optional[str]) -> FetchResult:
        logger.info(f"Fetching {self.display_name} feed")
        text = await self._fetch_with_retry(self.config.base_url)
        entries = self.parse_feed(text)

        batch = FetchResult(next_cursor=LATEST_CURSOR, has_more=False)
        for entry in entries:
            if self.is_before_min_date(entry.published):
                continue
            batch.seen += 1
            if not is_funding_article(f"{entry.title} {entry.content}"):
                continue
            try:
                record = await extract(
                    entry.title,
                    entry.content,
                    entry.url,
                    self.name,
                    entry.published,
                )
            except Exception as e:
                self._reject(batch, entry.title, entry.url, e)
                continue
            if record is not None:
                batch.items.append(record)

        logger.info(f"{self.name}: {len(batch.items)} funding records from {len(entries)} entries")
        return batch
