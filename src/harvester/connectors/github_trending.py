"""
GitHub Trending Connector - Weekly trending repositories as early-stage signals.

Trending repos are not funding rounds; startup-like ones (product topics or
more than 1000 stars) created since the cutoff are recorded as PRE_SEED
with no amount. The cursor is the 1-based position in TRENDING_LANGUAGES.

Pages: https://github.com/trending/{language}?since=weekly
Repo details: https://api.github.com/repos/{owner}/{name}
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from bs4 import BeautifulSoup

from ...analyst.schemas import RawFundingRecord
from ...common.errors import TransientSourceError
from ...common.http_client import fetch_json
from ...config.settings import settings
from ..base_connector import FetchResult, PaginatedSourceConnector, parse_page_cursor

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"

# "" is the all-languages page
TRENDING_LANGUAGES = ["", "typescript", "python", "rust", "go"]

STARTUP_INDICATORS = (
    "saas", "startup", "api", "platform", "tool", "sdk",
    "developer-tools", "devtools", "productivity", "automation",
    "ai", "machine-learning", "llm", "gpt", "openai",
    "database", "infrastructure", "cloud", "serverless",
)

POPULAR_STARS = 1000

STARS_PATTERN = re.compile(r"([\d,]+)\s*stars?\s*(?:today|this week)", re.IGNORECASE)


@dataclass
class TrendingRepo:
    full_name: str
    description: str = ""
    stars: int = 0
    language: str = ""
    topics: List[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.full_name.split("/", 1)[-1]

    @property
    def url(self) -> str:
        return f"https://github.com/{self.full_name}"


def is_startup_like(repo: TrendingRepo) -> bool:
    text = f"{repo.description} {' '.join(repo.topics)}".lower()
    return repo.stars > POPULAR_STARS or any(word in text for word in STARTUP_INDICATORS)


class GitHubTrendingConnector(PaginatedSourceConnector):
    """Trending page per language plus one API call per repo."""

    def get_initial_cursor(self) -> str:
        return "1"

    def trending_url(self, language: str) -> str:
        base = self.config.base_url.rstrip("/")
        return f"{base}/{language}?since=weekly" if language else f"{base}?since=weekly"

    def parse_trending(self, html: str) -> List[TrendingRepo]:
        soup = BeautifulSoup(html, "lxml")
        repos = []
        for row in soup.select("article.Box-row"):
            link = row.select_one("h2 a[href]")
            if link is None:
                continue
            full_name = link["href"].strip("/")
            if full_name.count("/") != 1:
                continue

            desc_el = row.select_one("p")
            lang_el = row.select_one("[itemprop='programmingLanguage']")
            stars_match = STARS_PATTERN.search(row.get_text(" ", strip=True))
            repos.append(TrendingRepo(
                full_name=full_name,
                description=desc_el.get_text(" ", strip=True) if desc_el else "",
                stars=int(stars_match.group(1).replace(",", "")) if stars_match else 0,
                language=lang_el.get_text(strip=True) if lang_el else "",
            ))
        return repos

    async def repo_details(self, full_name: str) -> Optional[Dict[str, Any]]:
        headers = {"Accept": "application/vnd.github+json"}
        if settings.github_token:
            headers["Authorization"] = f"Bearer {settings.github_token}"
        try:
            return await fetch_json(self.client, f"{GITHUB_API_URL}/repos/{full_name}", headers=headers)
        except (TransientSourceError, httpx.HTTPError) as e:
            logger.warning(f"{self.name}: no details for {full_name}: {e}")
            return None

    async def fetch(self, cursor: Optional[str]) -> FetchResult:
        position = parse_page_cursor(cursor)
        if position > len(TRENDING_LANGUAGES):
            return FetchResult()

        language = TRENDING_LANGUAGES[position - 1]
        logger.info(f"Fetching GitHub trending ({language or 'all'})")
        html = await self._fetch_with_retry(self.trending_url(language))
        repos = self.parse_trending(html)[: settings.historical_items_per_batch]

        items: List[RawFundingRecord] = []
        for repo in repos:
            details = await self.repo_details(repo.full_name)
            await self._polite_delay()
            if details is None:
                continue
            repo.topics = details.get("topics") or []
            if not is_startup_like(repo):
                continue

            created = self._parse_date(details.get("created_at"))
            if created is None or self.is_before_min_date(created):
                continue

            items.append(RawFundingRecord(
                company_name=repo.name,
                amount=None,
                currency="USD",
                stage="PRE_SEED",
                date=created,
                source_url=repo.url,
                source_name=self.name,
                description=repo.description or None,
            ))

        logger.info(f"{self.name}: {len(items)} startup-like repos of {len(repos)} trending")

        batch = FetchResult(items=items, seen=len(repos))
        if position < len(TRENDING_LANGUAGES):
            batch.next_cursor, batch.has_more = str(position + 1), True
        return batch
