"""
Companies House Connector - UK tech companies incorporated since the cutoff.

Companies House has no funding amounts; a newly incorporated, active tech
company is recorded as a SEED signal in GBP with no amount. The cursor is
an offset into the result list.

With COMPANIES_HOUSE_API_KEY the advanced search API is used:
    https://api.company-information.service.gov.uk/advanced-search/companies
Without it, the public search page is scraped (20 results per page):
    https://find-and-update.company-information.service.gov.uk/search/companies
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from ...analyst.schemas import RawFundingRecord
from ...common.http_client import fetch_json
from ...config.settings import settings
from ..base_connector import FetchResult, PaginatedSourceConnector

logger = logging.getLogger(__name__)

CH_PUBLIC_SITE = "https://find-and-update.company-information.service.gov.uk"
CH_COMPANY_URL = CH_PUBLIC_SITE + "/company/{number}"
CH_SEARCH_QUERY = "tech"
SCRAPE_PAGE_SIZE = 20

TECH_SIC_CODES = {
    "62011",  # Computer programming
    "62012",  # Business and domestic software
    "62020",  # IT consultancy
    "62090",  # Other IT services
    "63110",  # Data processing
    "63120",  # Web portals
    "72110",  # Biotech research
    "72190",  # Other R&D
}

TECH_NAME_WORDS = (
    "tech", "software", "digital", "data", "ai", "cloud", "cyber", "fintech",
    "healthtech", "edtech", "app", "platform", "saas", "labs", "systems",
)

LEGAL_TAIL_PATTERN = re.compile(r"\s+(limited|ltd\.?|plc)$", re.IGNORECASE)
INCORPORATED_PATTERN = re.compile(r"Incorporated on (\d{1,2} \w+ \d{4})", re.IGNORECASE)


def parse_offset_cursor(cursor: Optional[str]) -> int:
    """Offset from a cursor string. Malformed cursors restart at 0."""
    if not cursor:
        return 0
    try:
        offset = int(cursor)
    except ValueError:
        logger.warning(f"Malformed offset cursor {cursor!r}, restarting at 0")
        return 0
    return max(offset, 0)


def is_tech_company(company: Dict[str, Any]) -> bool:
    if TECH_SIC_CODES.intersection(company.get("sic_codes") or []):
        return True
    name = company.get("name", "").lower()
    return any(re.search(rf"\b{word}", name) for word in TECH_NAME_WORDS)


class CompaniesHouseConnector(PaginatedSourceConnector):
    """Offset-paged UK company search."""

    def get_initial_cursor(self) -> str:
        return "0"

    async def search_api(self, offset: int) -> Tuple[List[Dict[str, Any]], int]:
        params = {
            "incorporated_from": self.min_date.isoformat(),
            "sic_codes": ",".join(sorted(TECH_SIC_CODES)),
            "company_status": "active",
            "size": settings.historical_items_per_batch,
            "start_index": offset,
        }
        data = await fetch_json(
            self.client,
            f"{self.config.base_url}/advanced-search/companies",
            params=params,
            auth=(settings.companies_house_api_key, ""),
        )
        companies = [
            {
                "number": item.get("company_number", ""),
                "name": item.get("company_name") or item.get("title") or "",
                "status": item.get("company_status", ""),
                "created": item.get("date_of_creation"),
                "sic_codes": item.get("sic_codes") or [],
            }
            for item in data.get("items") or []
        ]
        return companies, int(data.get("hits") or data.get("total_results") or 0)

    def parse_search_page(self, html: str) -> List[Dict[str, Any]]:
        soup = BeautifulSoup(html, "lxml")
        companies = []
        for item in soup.select("li.type-company"):
            link = item.select_one("a[href^='/company/']")
            if link is None:
                continue
            text = item.get_text(" ", strip=True)
            incorporated = INCORPORATED_PATTERN.search(text)
            lowered = text.lower()
            companies.append({
                "number": link["href"].rsplit("/", 1)[-1],
                "name": link.get_text(strip=True),
                "status": "dissolved" if "dissolved" in lowered or "liquidation" in lowered else "active",
                "created": incorporated.group(1) if incorporated else None,
                "sic_codes": [],
            })
        return companies

    async def search_page(self, page: int) -> List[Dict[str, Any]]:
        url = f"{CH_PUBLIC_SITE}/search/companies?q={CH_SEARCH_QUERY}&page={page}"
        return self.parse_search_page(await self._fetch_with_retry(url))

    def company_to_record(self, company: Dict[str, Any]) -> Optional[RawFundingRecord]:
        if company["status"].lower() != "active" or not is_tech_company(company):
            return None
        created = self._parse_date(company["created"])
        if created is None or self.is_before_min_date(created):
            return None

        return RawFundingRecord(
            company_name=LEGAL_TAIL_PATTERN.sub("", company["name"]).strip(),
            amount=None,
            currency="GBP",
            stage="SEED",
            date=created,
            source_url=CH_COMPANY_URL.format(number=company["number"]),
            source_name=self.name,
        )

    async def fetch(self, cursor: Optional[str]) -> FetchResult:
        offset = parse_offset_cursor(cursor)
        logger.info(f"Fetching Companies House (offset {offset})")

        if settings.companies_house_api_key:
            companies, total = await self.search_api(offset)
            has_more = bool(companies) and offset + len(companies) < total
        else:
            logger.warning(f"{self.name}: no COMPANIES_HOUSE_API_KEY, scraping the public search")
            companies = await self.search_page(offset // SCRAPE_PAGE_SIZE + 1)
            total = None
            has_more = len(companies) >= SCRAPE_PAGE_SIZE

        items = []
        for company in companies:
            record = self.company_to_record(company)
            if record is not None:
                items.append(record)

        logger.info(f"{self.name}: {len(items)} tech companies in {len(companies)} results")

        batch = FetchResult(items=items, seen=len(companies), total_estimated=total)
        if has_more:
            batch.next_cursor, batch.has_more = str(offset + len(companies)), True
        return batch
