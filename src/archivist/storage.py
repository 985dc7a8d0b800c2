"""
Funding store - persistence of companies and rounds for the dedup engine.

Two implementations share the FundingStore interface:
- SQLFundingStore: PostgreSQL via SQLModel/AsyncSession. Writes are
  per-entity upserts (INSERT ... ON CONFLICT on slug / source_url) so
  concurrent source tasks racing on the same company converge.
- InMemoryFundingStore: dict-backed, serialised by an asyncio.Lock. Used by
  tests and dry runs.

Each SQL operation opens its own session; source tasks run concurrently and
an AsyncSession must not be shared between tasks.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlmodel import select

from ..common.errors import PersistenceConflict
from ..common.normalization import normalize_company_name
from .database import get_session
from .models import Company, CompanyEnrichment, FundingRound, utc_now_naive

logger = logging.getLogger(__name__)

DEFAULT_DATA_QUALITY = 20  # Imported from an article, needs enrichment
MAX_PREFIX_CANDIDATES = 50


def merge_aliases(aliases: List[str], name: str, canonical: str) -> List[str]:
    """Aliases with `name` added, unless it is the canonical name or already known."""
    name = name.strip()
    if not name or name == canonical or name in aliases:
        return list(aliases)
    return [*aliases, name]


def should_replace_last_round(current: Optional[date], new: Optional[date]) -> bool:
    """Backfill runs newest-first, so an older round must not overwrite last_round_*."""
    if new is None:
        return current is None
    return current is None or new >= current


class FundingStore(ABC):
    """Key-value style store of companies and rounds with upsert semantics."""

    @abstractmethod
    async def find_company_by_slug_or_alias(self, name: str) -> Optional[Company]:
        """Company whose slug equals the name's slug, starts with "slug-", or lists the name as alias."""

    @abstractmethod
    async def find_companies_by_slug_prefix(self, prefix: str, limit: int = MAX_PREFIX_CANDIDATES) -> List[Company]:
        """Companies whose slug starts with `prefix` (fuzzy-match candidates)."""

    @abstractmethod
    async def upsert_company(
        self,
        name: str,
        slug: str,
        description: Optional[str] = None,
    ) -> Tuple[Company, bool]:
        """Insert a company or return the existing row with the same slug.

        Returns (company, created).
        """

    @abstractmethod
    async def update_company_after_round(
        self,
        company_id: int,
        seen_name: str,
        stage: Optional[str],
        round_date: Optional[date],
        amount_usd: Optional[Decimal],
    ) -> Company:
        """Record an accepted round on its company (alias, last round, total raised)."""

    @abstractmethod
    async def create_round(self, funding_round: FundingRound) -> Optional[FundingRound]:
        """Insert a round. Returns None if a round with the same source_url already exists."""

    @abstractmethod
    async def find_round_by_source_url(self, source_url: str) -> Optional[FundingRound]:
        pass

    @abstractmethod
    async def find_rounds_for_company_near(
        self,
        company_id: int,
        on: date,
        window_days: int,
    ) -> List[FundingRound]:
        """Rounds of a company dated within ±window_days of `on` (inclusive)."""

    @abstractmethod
    async def log_enrichment(self, enrichment: CompanyEnrichment) -> CompanyEnrichment:
        """Append an audit row describing what an import wrote to a company."""


# =============================================================================
# PostgreSQL
# =============================================================================

class SQLFundingStore(FundingStore):
    """FundingStore backed by PostgreSQL."""

    def __init__(self, session_factory: Callable = get_session):
        self.session_factory = session_factory

    async def find_company_by_slug_or_alias(self, name: str) -> Optional[Company]:
        slug = normalize_company_name(name)
        if not slug:
            return None

        async with self.session_factory() as session:
            # Exact slug wins over prefix/alias matches
            stmt = select(Company).where(Company.slug == slug)
            result = await session.execute(stmt)
            company = result.scalars().first()
            if company:
                return company

            stmt = (
                select(Company)
                .where(or_(
                    Company.slug.startswith(f"{slug}-", autoescape=True),
                    Company.aliases.contains([name.strip()]),
                ))
                .order_by(Company.id)
                .limit(1)
            )
            result = await session.execute(stmt)
            return result.scalars().first()

    async def find_companies_by_slug_prefix(self, prefix: str, limit: int = MAX_PREFIX_CANDIDATES) -> List[Company]:
        if not prefix:
            return []
        async with self.session_factory() as session:
            stmt = (
                select(Company)
                .where(Company.slug.startswith(prefix, autoescape=True))
                .order_by(Company.id)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def upsert_company(
        self,
        name: str,
        slug: str,
        description: Optional[str] = None,
    ) -> Tuple[Company, bool]:
        now = utc_now_naive()

        async with self.session_factory() as session:
            # ON CONFLICT DO NOTHING: a concurrent insert of the same slug wins,
            # we read its row back instead of creating a duplicate
            stmt = pg_insert(Company).values(
                name=name,
                slug=slug,
                aliases=[],
                description=description,
                data_quality=DEFAULT_DATA_QUALITY,
                created_at=now,
                updated_at=now,
            ).on_conflict_do_nothing(
                index_elements=["slug"]
            ).returning(Company)

            result = await session.execute(stmt)
            company = result.scalar_one_or_none()
            if company:
                logger.info(f"Created company: {name} (slug={slug})")
                return company, True

            existing = await session.execute(select(Company).where(Company.slug == slug))
            company = existing.scalars().first()
            if company is None:
                raise PersistenceConflict(f"Company slug {slug!r} conflicted but no row was found")
            logger.debug(f"Company {slug} already exists, reusing #{company.id}")
            return company, False

    async def update_company_after_round(
        self,
        company_id: int,
        seen_name: str,
        stage: Optional[str],
        round_date: Optional[date],
        amount_usd: Optional[Decimal],
    ) -> Company:
        async with self.session_factory() as session:
            stmt = select(Company).where(Company.id == company_id).with_for_update()
            result = await session.execute(stmt)
            company = result.scalars().first()
            if company is None:
                raise PersistenceConflict(f"Company #{company_id} disappeared while recording a round")

            # Reassign (not mutate) so the JSONB change is detected
            company.aliases = merge_aliases(company.aliases or [], seen_name, company.name)
            if should_replace_last_round(company.last_round_date, round_date):
                company.last_round_stage = stage
                company.last_round_date = round_date
            if amount_usd:
                company.total_raised = (company.total_raised or Decimal("0")) + amount_usd
            company.updated_at = utc_now_naive()

            session.add(company)
            await session.flush()
            return company

    async def create_round(self, funding_round: FundingRound) -> Optional[FundingRound]:
        values = funding_round.model_dump(exclude={"id"})
        async with self.session_factory() as session:
            stmt = pg_insert(FundingRound).values(**values).on_conflict_do_nothing(
                index_elements=["source_url"]
            ).returning(FundingRound)
            result = await session.execute(stmt)
            created = result.scalar_one_or_none()

        if created is None:
            logger.warning(f"Race condition duplicate prevented by source_url: {funding_round.source_url}")
        return created

    async def find_round_by_source_url(self, source_url: str) -> Optional[FundingRound]:
        if not source_url:
            return None
        async with self.session_factory() as session:
            stmt = select(FundingRound).where(FundingRound.source_url == source_url).limit(1)
            result = await session.execute(stmt)
            return result.scalars().first()

    async def find_rounds_for_company_near(
        self,
        company_id: int,
        on: date,
        window_days: int,
    ) -> List[FundingRound]:
        window = timedelta(days=window_days)
        async with self.session_factory() as session:
            stmt = (
                select(FundingRound)
                .where(FundingRound.company_id == company_id)
                .where(FundingRound.funding_date >= on - window)
                .where(FundingRound.funding_date <= on + window)
                .order_by(FundingRound.funding_date)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def log_enrichment(self, enrichment: CompanyEnrichment) -> CompanyEnrichment:
        async with self.session_factory() as session:
            session.add(enrichment)
            await session.flush()
            return enrichment


# =============================================================================
# In-memory
# =============================================================================

class InMemoryFundingStore(FundingStore):
    """FundingStore kept in process memory."""

    def __init__(self):
        self.companies: Dict[int, Company] = {}
        self.rounds: Dict[int, FundingRound] = {}
        self.enrichments: List[CompanyEnrichment] = []
        self._lock = asyncio.Lock()
        self._next_company_id = 1
        self._next_round_id = 1

    async def find_company_by_slug_or_alias(self, name: str) -> Optional[Company]:
        slug = normalize_company_name(name)
        if not slug:
            return None

        async with self._lock:
            for company in self.companies.values():
                if company.slug == slug:
                    return company
            stripped = name.strip()
            for company in self.companies.values():
                if company.slug.startswith(f"{slug}-") or stripped in (company.aliases or []):
                    return company
        return None

    async def find_companies_by_slug_prefix(self, prefix: str, limit: int = MAX_PREFIX_CANDIDATES) -> List[Company]:
        if not prefix:
            return []
        async with self._lock:
            matches = [c for c in self.companies.values() if c.slug.startswith(prefix)]
        return matches[:limit]

    async def upsert_company(
        self,
        name: str,
        slug: str,
        description: Optional[str] = None,
    ) -> Tuple[Company, bool]:
        async with self._lock:
            for company in self.companies.values():
                if company.slug == slug:
                    return company, False

            now = utc_now_naive()
            company = Company(
                id=self._next_company_id,
                name=name,
                slug=slug,
                aliases=[],
                description=description,
                data_quality=DEFAULT_DATA_QUALITY,
                created_at=now,
                updated_at=now,
            )
            self.companies[company.id] = company
            self._next_company_id += 1
            logger.info(f"Created company: {name} (slug={slug})")
            return company, True

    async def update_company_after_round(
        self,
        company_id: int,
        seen_name: str,
        stage: Optional[str],
        round_date: Optional[date],
        amount_usd: Optional[Decimal],
    ) -> Company:
        async with self._lock:
            company = self.companies.get(company_id)
            if company is None:
                raise PersistenceConflict(f"Company #{company_id} disappeared while recording a round")

            company.aliases = merge_aliases(company.aliases or [], seen_name, company.name)
            if should_replace_last_round(company.last_round_date, round_date):
                company.last_round_stage = stage
                company.last_round_date = round_date
            if amount_usd:
                company.total_raised = (company.total_raised or Decimal("0")) + amount_usd
            company.updated_at = utc_now_naive()
            return company

    async def create_round(self, funding_round: FundingRound) -> Optional[FundingRound]:
        async with self._lock:
            if funding_round.source_url and any(
                r.source_url == funding_round.source_url for r in self.rounds.values()
            ):
                logger.warning(f"Race condition duplicate prevented by source_url: {funding_round.source_url}")
                return None
            funding_round.id = self._next_round_id
            self.rounds[funding_round.id] = funding_round
            self._next_round_id += 1
            return funding_round

    async def find_round_by_source_url(self, source_url: str) -> Optional[FundingRound]:
        if not source_url:
            return None
        async with self._lock:
            for funding_round in self.rounds.values():
                if funding_round.source_url == source_url:
                    return funding_round
        return None

    async def find_rounds_for_company_near(
        self,
        company_id: int,
        on: date,
        window_days: int,
    ) -> List[FundingRound]:
        window = timedelta(days=window_days)
        async with self._lock:
            return [
                r for r in self.rounds.values()
                if r.company_id == company_id
                and r.funding_date is not None
                and on - window <= r.funding_date <= on + window
            ]

    async def log_enrichment(self, enrichment: CompanyEnrichment) -> CompanyEnrichment:
        async with self._lock:
            enrichment.id = len(self.enrichments) + 1
            self.enrichments.append(enrichment)
            return enrichment
