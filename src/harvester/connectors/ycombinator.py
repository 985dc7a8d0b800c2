"""
Y Combinator Connector - YC companies, one batch (W21, S21, ...) per fetch.

The public directory embeds its data as Next.js JSON (__NEXT_DATA__); the
HTML company cards are the fallback. Every company becomes a SEED round for
the standard YC deal, dated from its batch. The cursor is the 1-based
position of the batch in yc_batches(); the last batch ends the walk and the
next run starts over.

URL pattern: https://www.ycombinator.com/companies?batch={batch}
"""

import json
import logging
import re
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from ...analyst.schemas import RawFundingRecord
from ..base_connector import FetchResult, PaginatedSourceConnector, parse_page_cursor

logger = logging.getLogger(__name__)

YC_COMPANY_URL = "https://www.ycombinator.com/companies/{slug}"
YC_INVESTOR = "Y Combinator"
YC_STANDARD_DEAL = Decimal("500000")

BATCH_CODE_PATTERN = re.compile(r"^([WS])(\d{2})$")
BATCH_LABEL_PATTERN = re.compile(r"^(winter|summer)\s+(\d{4})$", re.IGNORECASE)

# Winter batches start in January, summer batches in June
SEASON_MONTHS = {"W": 1, "S": 6}


def batch_code(label: str) -> Optional[str]:
    """Canonical "W21" code from "W21" or "Winter 2021"."""
    label = (label or "").strip()
    if BATCH_CODE_PATTERN.match(label.upper()):
        return label.upper()
    match = BATCH_LABEL_PATTERN.match(label)
    if match:
        return f"{match.group(1)[0].upper()}{match.group(2)[2:]}"
    return None


def batch_date(code: str) -> Optional[date]:
    match = BATCH_CODE_PATTERN.match(code or "")
    if not match:
        return None
    return date(2000 + int(match.group(2)), SEASON_MONTHS[match.group(1)], 15)


def yc_batches(since: date, until: date) -> List[str]:
    """Batch codes starting between `since` and `until`, oldest first."""
    batches = []
    for year in range(since.year, until.year + 1):
        for season in ("W", "S"):
            code = f"{season}{year % 100:02d}"
            start = batch_date(code)
            if since <= start <= until:
                batches.append(code)
    return batches


class YCombinatorConnector(PaginatedSourceConnector):
    """YC public directory, walked batch by batch."""

    def get_initial_cursor(self) -> str:
        return "1"

    @property
    def batches(self) -> List[str]:
        return yc_batches(self.min_date, date.today())

    def batch_url(self, code: str) -> str:
        return f"{self.config.base_url}?batch={code}"

    def parse_companies(self, html: str) -> List[Dict[str, Any]]:
        soup = BeautifulSoup(html, "lxml")

        script = soup.find("script", id="__NEXT_DATA__")
        if script is not None and script.string:
            try:
                data = json.loads(script.string)
            except ValueError as e:
                logger.warning(f"{self.name}: unreadable __NEXT_DATA__: {e}")
            else:
                companies = data.get("props", {}).get("pageProps", {}).get("companies") or []
                if companies:
                    return [
                        {
                            "name": (c.get("name") or "").strip(),
                            "slug": c.get("slug") or "",
                            "description": c.get("one_liner") or c.get("long_description") or "",
                            "batch": c.get("batch") or "",
                        }
                        for c in companies
                    ]

        # Fallback: directory cards
        companies = []
        for card in soup.select("a[href^='/companies/'][class*='company']"):
            name_el = card.select_one("[class*='name']")
            if name_el is None:
                continue
            desc_el = card.select_one("[class*='description']")
            batch_el = card.select_one("[class*='batch']")
            companies.append({
                "name": name_el.get_text(strip=True),
                "slug": card["href"].rsplit("/", 1)[-1],
                "description": desc_el.get_text(" ", strip=True) if desc_el else "",
                "batch": batch_el.get_text(strip=True) if batch_el else "",
            })
        return companies

    def company_to_record(self, company: Dict[str, Any], funded_on: date) -> RawFundingRecord:
        return RawFundingRecord(
            company_name=company["name"],
            amount=YC_STANDARD_DEAL,
            currency="USD",
            stage="SEED",
            investors=(YC_INVESTOR,),
            lead_investor=YC_INVESTOR,
            date=funded_on,
            source_url=YC_COMPANY_URL.format(slug=company["slug"]),
            source_name=self.name,
            description=company["description"] or None,
        )

    async def fetch(self, cursor: Optional[str]) -> FetchResult:
        batches = self.batches
        position = parse_page_cursor(cursor)
        if position > len(batches):
            logger.warning(f"{self.name}: cursor {cursor!r} past the last batch, nothing to fetch")
            return FetchResult()

        code = batches[position - 1]
        logger.info(f"Fetching YC batch {code}")
        html = await self._fetch_with_retry(self.batch_url(code))
        companies = self.parse_companies(html)

        funded_on = batch_date(code)
        items = []
        for company in companies:
            # The directory lists every batch when the filter is ignored
            if batch_code(company["batch"]) not in (None, code):
                continue
            if not company["name"] or not company["slug"]:
                continue
            items.append(self.company_to_record(company, funded_on))

        logger.info(f"{self.name}: {len(items)} companies in batch {code}")

        if not companies:
            logger.warning(f"SCRAPER_HEALTH_ALERT: {self.name} batch {code} returned 0 companies")

        batch = FetchResult(items=items, seen=len(companies), total_estimated=len(batches))
        if position < len(batches):
            batch.next_cursor, batch.has_more = str(position + 1), True
        return batch
