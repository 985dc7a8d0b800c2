"""
Hacker News Connector - Funding announcements from HN via Algolia search.

Walks several search queries, each paginated, with a "query_index:page"
cursor. Only stories whose title reads like a funding announcement
("Acme raises $12M Series A") become records. The API source never
completes: later runs keep paging the newest results.

API: https://hn.algolia.com/api/v1/search
"""

import logging
import re
from datetime import datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ...analyst.parser import extract_stage
from ...analyst.schemas import RawFundingRecord
from ...common.http_client import fetch_json
from ...config.settings import settings
from ..base_connector import FetchResult, ListingPageCursor, PaginatedSourceConnector

logger = logging.getLogger(__name__)

HN_ITEM_URL = "https://news.ycombinator.com/item?id={id}"

HN_FUNDING_QUERIES = [
    "raises million",
    "seed round",
    "series A",
    "YC funded",
]

# Algolia caps deep pagination; older stories are reached by other queries
MAX_PAGES_PER_QUERY = 10

FUNDING_TITLE_PATTERN = re.compile(
    r"^(?P<company>[A-Z][\w.&'-]*(?:\s+[A-Z][\w.&'-]*){0,3})\s+"
    r"(?:\(YC [A-Z]\d{2}\)\s+)?"
    r"(?:raises?|raised|secures?|closes?)\s+"
    r"\$?(?P<value>[\d.]+)\s*(?P<unit>million|billion|m|b)\b",
    re.IGNORECASE,
)

GENERIC_NAMES = {"the", "a", "an", "show", "hn", "ask", "launch", "startup"}


def parse_funding_title(title: str) -> Optional[Dict[str, Any]]:
    """Company, USD amount and stage from an HN funding headline."""
    match = FUNDING_TITLE_PATTERN.search(title.strip())
    if not match:
        return None

    company = match.group("company").strip()
    if company.lower() in GENERIC_NAMES or len(company) < 2:
        return None

    try:
        value = Decimal(match.group("value"))
    except ArithmeticError:
        return None
    multiplier = Decimal("1e9") if match.group("unit").lower().startswith("b") else Decimal("1e6")

    return {
        "company_name": company,
        "amount": value * multiplier,
        "stage": extract_stage(title),
    }


class HackerNewsConnector(PaginatedSourceConnector):
    """Algolia-backed HN search over funding queries."""

    queries: List[str] = HN_FUNDING_QUERIES

    def get_initial_cursor(self) -> str:
        return ListingPageCursor.initial(first_page=0).dump()

    def _min_timestamp(self) -> int:
        return int(datetime.combine(self.min_date, time.min, tzinfo=timezone.utc).timestamp())

    async def search(self, query: str, page: int) -> Dict[str, Any]:
        params = {
            "query": query,
            "tags": "story",
            "page": page,
            "hitsPerPage": settings.historical_items_per_batch,
            "numericFilters": f"created_at_i>{self._min_timestamp()}",
        }
        return await fetch_json(self.client, self.config.base_url, params=params)

    def hit_to_record(self, hit: Dict[str, Any]) -> Optional[RawFundingRecord]:
        title = (hit.get("title") or "").strip()
        parsed = parse_funding_title(title)
        if parsed is None:
            return None

        created_at = hit.get("created_at_i")
        if created_at is not None:
            published = datetime.fromtimestamp(int(created_at), tz=timezone.utc).date()
        else:
            published = self._parse_date(hit.get("created_at"))
        if published is None or self.is_before_min_date(published):
            return None

        return RawFundingRecord(
            company_name=parsed["company_name"],
            amount=parsed["amount"],
            currency="USD",
            stage=parsed["stage"],
            date=published,
            source_url=hit.get("url") or HN_ITEM_URL.format(id=hit.get("objectID")),
            source_name=self.name,
            description=title,
        )

    async def fetch(self, cursor: Optional[str]) -> FetchResult:
        position = ListingPageCursor.parse(cursor, len(self.queries), first_page=0)
        query = self.queries[position.index]
        logger.info(f'Searching HN for "{query}" (page {position.page})')

        data = await self.search(query, position.page)
        hits = data.get("hits") or []
        nb_pages = int(data.get("nbPages") or 0)

        items: List[RawFundingRecord] = []
        for hit in hits:
            record = self.hit_to_record(hit)
            if record is not None:
                items.append(record)

        logger.info(f"{self.name}: {len(items)} funding stories in {len(hits)} hits")

        has_more_pages = position.page < nb_pages - 1 and position.page < MAX_PAGES_PER_QUERY - 1
        if has_more_pages:
            next_position = position.next_page()
        elif position.index < len(self.queries) - 1:
            next_position = position.next_listing()
        else:
            return FetchResult(
                items=items, next_cursor=None, has_more=False, total_estimated=nb_pages, seen=len(hits),
            )

        return FetchResult(
            items=items,
            next_cursor=next_position.dump(),
            has_more=True,
            total_estimated=nb_pages,
            seen=len(hits),
        )
