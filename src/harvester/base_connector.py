"""
Base Connector - Uniform interface for paginated funding sources.

Every source implements:
- get_initial_cursor(): where a fresh backfill starts
- fetch(cursor): one batch of records plus the cursor to resume from

Cursor strings are opaque to the orchestrator; it only stores and replays
them. Connectors must be idempotent for a given cursor and stop paginating
(has_more=False) once they see an item older than min_date.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import date
from typing import List, Optional

import httpx
from bs4 import BeautifulSoup, Comment

from ..analyst.schemas import RawFundingRecord
from ..common.errors import PermanentParseError
from ..common.http_client import USER_AGENT_BOT, create_scraper_client, fetch_text
from ..common.resilience import TierConfig, get_tier_config, with_retry, with_timeout
from ..config.settings import settings
from ..config.sources import CursorType, SourceConfig, SourceType, Tier

logger = logging.getLogger(__name__)

# dateutil only knows English month names; French archives print "12 mars 2023"
FRENCH_MONTHS = {
    "janvier": "january",
    "février": "february",
    "fevrier": "february",
    "mars": "march",
    "avril": "april",
    "mai": "may",
    "juin": "june",
    "juillet": "july",
    "août": "august",
    "aout": "august",
    "septembre": "september",
    "octobre": "october",
    "novembre": "november",
    "décembre": "december",
    "decembre": "december",
}


@dataclass
class RejectedItem:
    """An article the connector saw but could not turn into a record."""
    title: str
    url: Optional[str]
    reason: str


@dataclass
class FetchResult:
    """One batch returned by a connector.

    `seen` counts the articles or hits the batch looked at, including the
    ones that were not funding news; `rejected` holds the funding articles
    whose extraction failed.
    """
    items: List[RawFundingRecord] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False
    total_estimated: Optional[int] = None
    rejected: List[RejectedItem] = field(default_factory=list)
    seen: int = 0

    @property
    def found(self) -> int:
        return max(self.seen, len(self.items) + len(self.rejected))


def parse_page_cursor(cursor: Optional[str], default: int = 1) -> int:
    """Page number from a cursor string. Malformed cursors restart at `default`."""
    if cursor is None:
        return default
    try:
        page = int(cursor)
    except (TypeError, ValueError):
        logger.warning(f"Malformed page cursor {cursor!r}, restarting at page {default}")
        return default
    return page if page >= 1 else default


@dataclass(frozen=True)
class ListingPageCursor:
    """Composite cursor "index:page" for sources that walk several listings.

    `index` picks the listing (a Sifted sector, an HN search query) and
    `page` the page within it. `first_page` is 1 for HTML archives and 0 for
    the Algolia API.
    """
    index: int = 0
    page: int = 1
    first_page: int = 1

    @classmethod
    def initial(cls, first_page: int = 1) -> "ListingPageCursor":
        return cls(0, first_page, first_page)

    @classmethod
    def parse(cls, cursor: Optional[str], listing_count: int, first_page: int = 1) -> "ListingPageCursor":
        """Parse "i:p". Malformed or out-of-range cursors restart at the first listing."""
        if cursor is None:
            return cls.initial(first_page)
        try:
            index_str, page_str = cursor.split(":")
            parsed = cls(int(index_str), int(page_str), first_page)
        except (AttributeError, ValueError):
            logger.warning(f"Malformed listing cursor {cursor!r}, restarting from the first listing")
            return cls.initial(first_page)
        if not (0 <= parsed.index < listing_count) or parsed.page < first_page:
            logger.warning(f"Out-of-range listing cursor {cursor!r}, restarting from the first listing")
            return cls.initial(first_page)
        return parsed

    def dump(self) -> str:
        return f"{self.index}:{self.page}"

    def next_page(self) -> "ListingPageCursor":
        return replace(self, page=self.page + 1)

    def next_listing(self) -> "ListingPageCursor":
        return replace(self, index=self.index + 1, page=self.first_page)


class PaginatedSourceConnector(ABC):
    """
    Abstract base class for funding sources.

    Subclasses must implement:
    - get_initial_cursor()
    - fetch(cursor)
    """

    user_agent: str = USER_AGENT_BOT

    def __init__(self, config: SourceConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = client is None
        self.client = client or create_scraper_client(
            user_agent=self.user_agent,
            timeout=settings.scrape_timeout,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def display_name(self) -> str:
        return self.config.display_name

    @property
    def source_type(self) -> SourceType:
        return self.config.source_type

    @property
    def cursor_type(self) -> CursorType:
        return self.config.cursor_type

    @property
    def tier(self) -> Tier:
        return self.config.tier

    @property
    def min_date(self) -> date:
        return settings.historical_min_date

    @property
    def batch_tier(self) -> TierConfig:
        """Budget for one whole fetch() call as seen by the orchestrator.

        Archive, scrape and RSS batches make many requests and extraction
        calls, each already under its own budget, so the batch itself only
        gets a wide deadline and no retries.
        """
        if self.source_type in (SourceType.ARCHIVE, SourceType.RSS, SourceType.SCRAPE):
            return replace(
                get_tier_config(self.tier),
                timeout=settings.archive_batch_timeout,
                max_retries=0,
            )
        return get_tier_config(self.tier)

    @abstractmethod
    def get_initial_cursor(self) -> str:
        """Cursor a fresh backfill starts from."""
        pass

    @abstractmethod
    async def fetch(self, cursor: Optional[str]) -> FetchResult:
        """
        Fetch one batch starting at `cursor` (None means initial cursor).

        Raises:
            TransientSourceError: network/5xx/timeout, batch can be retried
            httpx.HTTPStatusError: 4xx, not retried
        """
        pass

    def is_before_min_date(self, published: Optional[date]) -> bool:
        return published is not None and published < self.min_date

    def _extract_text(self, html: str) -> str:
        """Extract clean text from HTML."""
        soup = BeautifulSoup(html, "lxml")

        for element in soup(["script", "style", "nav", "header", "footer"]):
            element.decompose()
        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        text = soup.get_text(separator="\n", strip=True)
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        return "\n".join(lines)

    def _parse_date(self, date_str: Optional[str]) -> Optional[date]:
        """Attempt to parse various date formats."""
        from dateutil import parser as date_parser

        if not date_str:
            return None
        text = date_str.strip()
        lowered = text.lower()
        for french, english in FRENCH_MONTHS.items():
            if french in lowered:
                text = lowered.replace(french, english)
                break
        try:
            return date_parser.parse(text).date()
        except (ValueError, TypeError, OverflowError):
            return None

    def _reject(self, batch: FetchResult, title: str, url: Optional[str], error: Exception) -> None:
        """Record an article whose extraction failed; the batch goes on."""
        reason = str(error) if isinstance(error, PermanentParseError) else f"{type(error).__name__}: {error}"
        logger.warning(f"{self.name}: rejected '{title[:80]}': {reason}")
        batch.rejected.append(RejectedItem(title=title, url=url, reason=reason))

    async def _polite_delay(self) -> None:
        if settings.article_rate_limit_delay > 0:
            await asyncio.sleep(settings.article_rate_limit_delay)

    async def _fetch_with_retry(self, url: str) -> str:
        """Fetch one page under this source's tier budget.

        5xx and timeouts are retried with exponential backoff; 4xx fails fast.
        """
        tier = get_tier_config(self.tier)
        return await with_retry(
            lambda: with_timeout(fetch_text(self.client, url), tier.timeout, operation=url),
            max_retries=tier.max_retries,
            base_delay=tier.base_delay,
            operation=f"{self.name} {url}",
        )
