"""
Crunchbase Connector - Funding rounds from the Crunchbase v4 search API.

Rounds are searched newest first, announced since the cutoff. The API pages
with `after_id`, so the cursor is the uuid of the last round returned.

Without CRUNCHBASE_API_KEY the Crunchbase News venture listing is scraped
instead; its headlines ("Acme raises $12M Series A") are parsed like Hacker
News titles and the listing is read once per run.

API: https://api.crunchbase.com/api/v4/searches/funding_rounds
"""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from ...analyst.schemas import RawFundingRecord
from ...common.http_client import post_json
from ...config.settings import settings
from ..base_connector import FetchResult, PaginatedSourceConnector
from .hackernews import parse_funding_title

logger = logging.getLogger(__name__)

CB_NEWS_URL = "https://news.crunchbase.com/venture/"
CB_ROUND_URL = "https://www.crunchbase.com/funding_round/{permalink}"
START_CURSOR = "start"

CB_FIELDS = [
    "identifier",
    "short_description",
    "announced_on",
    "money_raised",
    "investment_type",
    "lead_investor_identifiers",
    "investor_identifiers",
    "funded_organization_identifier",
]

CB_LOCATIONS = ["europe", "united-states", "france", "united-kingdom", "germany"]

CB_INVESTMENT_TYPES = {
    "angel": "PRE_SEED",
    "pre_seed": "PRE_SEED",
    "seed": "SEED",
    "grant": "SEED",
    "convertible_note": "SEED",
    "series_a": "SERIES_A",
    "series_b": "SERIES_B",
    "series_c": "SERIES_C",
}


def map_investment_type(investment_type: Optional[str]) -> Optional[str]:
    """Stage code for a Crunchbase investment type. Later rounds map to LATER."""
    if not investment_type:
        return None
    key = investment_type.lower()
    if key in CB_INVESTMENT_TYPES:
        return CB_INVESTMENT_TYPES[key]
    if key.startswith("series_") or key in ("private_equity", "debt_financing"):
        return "LATER"
    return None


def identifier_names(identifiers: Optional[List[Dict[str, Any]]]) -> List[str]:
    return [i["value"] for i in identifiers or [] if i.get("value")]


class CrunchbaseConnector(PaginatedSourceConnector):
    """Token-paged funding round search, with a news scrape fallback."""

    def get_initial_cursor(self) -> str:
        return START_CURSOR

    def search_payload(self, after_id: Optional[str]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "field_ids": CB_FIELDS,
            "order": [{"field_id": "announced_on", "sort": "desc"}],
            "query": [
                {
                    "type": "predicate",
                    "field_id": "announced_on",
                    "operator_id": "gte",
                    "values": [self.min_date.isoformat()],
                },
                {
                    "type": "predicate",
                    "field_id": "location_identifiers",
                    "operator_id": "includes",
                    "values": CB_LOCATIONS,
                },
            ],
            "limit": settings.historical_items_per_batch,
        }
        if after_id:
            payload["after_id"] = after_id
        return payload

    def entity_to_record(self, entity: Dict[str, Any]) -> Optional[RawFundingRecord]:
        props = entity.get("properties") or {}
        company = (props.get("funded_organization_identifier") or {}).get("value")
        announced = self._parse_date(props.get("announced_on"))
        if not company or announced is None or self.is_before_min_date(announced):
            return None

        money = props.get("money_raised") or {}
        try:
            amount = Decimal(str(money["value"])) if money.get("value") is not None else None
        except InvalidOperation:
            amount = None
        leads = identifier_names(props.get("lead_investor_identifiers"))
        permalink = (props.get("identifier") or {}).get("permalink") or entity.get("uuid")

        return RawFundingRecord(
            company_name=company,
            amount=amount,
            currency=money.get("currency") or "USD",
            stage=map_investment_type(props.get("investment_type")),
            investors=tuple(identifier_names(props.get("investor_identifiers"))),
            lead_investor=leads[0] if leads else None,
            date=announced,
            source_url=CB_ROUND_URL.format(permalink=permalink),
            source_name=self.name,
            description=props.get("short_description"),
        )

    async def fetch_api(self, cursor: Optional[str]) -> FetchResult:
        after_id = cursor if cursor and cursor != START_CURSOR else None
        data = await post_json(
            self.client,
            f"{self.config.base_url}/searches/funding_rounds",
            self.search_payload(after_id),
            headers={"X-cb-user-key": settings.crunchbase_api_key},
        )
        entities = data.get("entities") or []

        items = []
        for entity in entities:
            record = self.entity_to_record(entity)
            if record is not None:
                items.append(record)

        batch = FetchResult(items=items, seen=len(entities), total_estimated=data.get("count"))
        if len(entities) >= settings.historical_items_per_batch and entities[-1].get("uuid"):
            batch.next_cursor, batch.has_more = entities[-1]["uuid"], True
        return batch

    def parse_news(self, html: str) -> FetchResult:
        soup = BeautifulSoup(html, "lxml")
        cards = soup.select("article")
        records = []
        for card in cards:
            link = card.select_one("h2 a[href], h3 a[href]")
            if link is None:
                continue
            title = link.get_text(" ", strip=True)
            parsed = parse_funding_title(title)
            if parsed is None:
                continue
            time_el = card.select_one("time")
            published = self._parse_date(time_el.get("datetime") or time_el.get_text(strip=True)) if time_el else None
            published = published or date.today()
            if self.is_before_min_date(published):
                continue
            records.append(RawFundingRecord(
                company_name=parsed["company_name"],
                amount=parsed["amount"],
                currency="USD",
                stage=parsed["stage"],
                date=published,
                source_url=urljoin(CB_NEWS_URL, link["href"]),
                source_name=self.name,
                description=title,
            ))
        return FetchResult(items=records, seen=len(cards))

    async def fetch(self, cursor: Optional[str]) -> FetchResult:
        if settings.crunchbase_api_key:
            logger.info(f"Fetching Crunchbase funding rounds (after {cursor!r})")
            batch = await self.fetch_api(cursor)
        else:
            logger.warning(f"{self.name}: no CRUNCHBASE_API_KEY, scraping Crunchbase News")
            html = await self._fetch_with_retry(CB_NEWS_URL)
            batch = self.parse_news(html)

        logger.info(f"{self.name}: {len(batch.items)} rounds in {batch.seen} results")
        return batch
