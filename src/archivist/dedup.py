"""
Identity resolution - is this record a round we already have?

Decision order, first positive wins:

1. Exact source_url match on any stored round -> duplicate.
2. Company lookup by slug (exact, "slug-" prefix, alias). If that misses,
   fall back to fuzzy name similarity against companies sharing the slug's
   first token (threshold settings.similarity_threshold).
3. No company -> new company.
4. Company found -> compare with its rounds within ±dedup_window_days:
   a. both amounts known: USD difference / larger <= tolerance and stages
      agree (or either side has no stage) -> duplicate
   b. an amount is missing: both stages known and equal -> duplicate
   c. otherwise -> new round for that company.

Accepted records always create a round (rounds are append-only); only the
duplicate check prevents a row. Every created round also logs a CompanyEnrichment
audit row.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from ..analyst.schemas import RawFundingRecord
from ..common.errors import PermanentParseError, PersistenceConflict
from ..common.normalization import convert_to_usd, normalize_company_name, normalize_stage
from ..common.similarity import combined_similarity
from ..config.settings import settings
from .models import Company, CompanyEnrichment, FundingRound
from .storage import FundingStore

logger = logging.getLogger(__name__)

# Fuzzy fallback needs a distinctive first token to pick candidates
MIN_FUZZY_TOKEN_LENGTH = 3

# Enrichment audit for automated imports
ENRICHMENT_SOURCE = "ARTICLE_IMPORT"
IMPORT_CONFIDENCE = 70
NEW_COMPANY_FIELDS = ["name", "slug", "description"]
ROUND_FIELDS = ["last_round_stage", "last_round_date", "total_raised"]


class DedupOutcome(str, Enum):
    DUPLICATE = "duplicate"
    NEW_ROUND = "new_round"
    NEW_COMPANY = "new_company"


@dataclass
class DuplicateDecision:
    """Result of check_duplicate."""
    is_duplicate: bool
    reason: str
    company: Optional[Company] = None
    matched_round: Optional[FundingRound] = None
    # Set when the company was found by fuzzy name similarity
    similarity: Optional[float] = None


@dataclass
class CreateResult:
    company_id: int
    company_created: bool
    round_id: Optional[int]
    round_created: bool


def amount_usd(record: RawFundingRecord) -> Optional[Decimal]:
    if record.amount is None:
        return None
    return convert_to_usd(record.amount, record.currency).quantize(Decimal("0.01"))


def is_same_round(
    record: RawFundingRecord,
    existing: FundingRound,
    amount_tolerance: Optional[float] = None,
) -> bool:
    """Whether `record` describes `existing` (dates already known to be close)."""
    tolerance = Decimal(str(settings.dedup_amount_tolerance if amount_tolerance is None else amount_tolerance))
    new_amount = amount_usd(record)
    new_stage = normalize_stage(record.stage)
    existing_stage = existing.stage_normalized

    if new_amount is not None and existing.amount_usd is not None:
        larger = max(new_amount, existing.amount_usd)
        smaller = min(new_amount, existing.amount_usd)
        diff = (larger - smaller) / larger if larger > 0 else Decimal("0")
        if diff > tolerance:
            return False
        if new_stage and existing_stage:
            return new_stage == existing_stage
        return True

    # Missing amount on either side: only a shared stage identifies the round
    if new_stage and existing_stage:
        return new_stage == existing_stage
    return False


async def find_similar_company(
    name: str,
    store: FundingStore,
    threshold: Optional[float] = None,
) -> Tuple[Optional[Company], Optional[float]]:
    """Best fuzzy match among companies whose slug shares the first token of `name`."""
    threshold = settings.similarity_threshold if threshold is None else threshold
    slug = normalize_company_name(name)
    first_token = slug.split("-")[0] if slug else ""
    if len(first_token) < MIN_FUZZY_TOKEN_LENGTH:
        return None, None

    best: Optional[Company] = None
    best_score = 0.0
    for candidate in await store.find_companies_by_slug_prefix(first_token):
        score = combined_similarity(name, candidate.name).combined
        if score > best_score:
            best, best_score = candidate, score

    if best is not None and best_score >= threshold:
        logger.info(f"Fuzzy company match: '{name}' -> '{best.name}' (score={best_score:.2f})")
        return best, best_score
    return None, None


async def find_company(record: RawFundingRecord, store: FundingStore) -> Tuple[Optional[Company], Optional[float]]:
    """Company the record belongs to: slug/alias lookup, then fuzzy fallback."""
    company = await store.find_company_by_slug_or_alias(record.company_name)
    if company is not None:
        return company, None
    return await find_similar_company(record.company_name, store)


async def check_duplicate(
    record: RawFundingRecord,
    store: FundingStore,
    window_days: Optional[int] = None,
    amount_tolerance: Optional[float] = None,
) -> DuplicateDecision:
    """Decide whether `record` is already stored. See module docstring."""
    window_days = settings.dedup_window_days if window_days is None else window_days

    if record.source_url:
        existing = await store.find_round_by_source_url(record.source_url)
        if existing is not None:
            return DuplicateDecision(True, "source_url", matched_round=existing)

    company, similarity = await find_company(record, store)
    if company is None:
        return DuplicateDecision(False, "new_company")

    nearby = await store.find_rounds_for_company_near(company.id, record.date, window_days)
    for existing in nearby:
        if is_same_round(record, existing, amount_tolerance):
            return DuplicateDecision(True, "similar_round", company, existing, similarity)

    return DuplicateDecision(False, "new_round", company, similarity=similarity)


async def create_company_and_round(
    record: RawFundingRecord,
    store: FundingStore,
    company: Optional[Company] = None,
) -> CreateResult:
    """Persist an accepted record, creating its company when `company` is None."""
    slug = normalize_company_name(record.company_name)
    company_created = False

    if company is None:
        try:
            company, company_created = await store.upsert_company(record.company_name, slug, record.description)
        except PersistenceConflict as e:
            # The competing insert has committed by now
            logger.warning(f"Retrying company upsert for {slug}: {e}")
            company, company_created = await store.upsert_company(record.company_name, slug, record.description)

    usd = amount_usd(record)
    stage = normalize_stage(record.stage)
    funding_round = await store.create_round(FundingRound(
        company_id=company.id,
        company_name=record.company_name,
        company_slug=slug,
        description=record.description,
        amount=record.amount,
        amount_usd=usd,
        currency=record.currency,
        stage=record.stage,
        stage_normalized=stage,
        investors=list(record.investors),
        lead_investor=record.lead_investor,
        funding_date=record.date,
        source=record.source_name,
        source_url=record.source_url,
        is_migrated=True,
    ))

    if funding_round is None:
        # Another source stored the same URL between check and insert
        return CreateResult(company.id, company_created, None, False)

    await store.update_company_after_round(company.id, record.company_name, stage, record.date, usd)
    await store.log_enrichment(CompanyEnrichment(
        company_id=company.id,
        source=ENRICHMENT_SOURCE,
        source_url=record.source_url,
        source_date=record.date,
        fields_updated=list(NEW_COMPANY_FIELDS if company_created else ROUND_FIELDS),
        new_data={
            "round_id": funding_round.id,
            "source": record.source_name,
            "amount": str(record.amount) if record.amount is not None else None,
            "currency": record.currency,
            "stage": stage,
            "investors": list(record.investors),
        },
        confidence=IMPORT_CONFIDENCE,
    ))
    return CreateResult(company.id, company_created, funding_round.id, True)


async def process_record(record: RawFundingRecord, store: FundingStore) -> DedupOutcome:
    """Run one record through the duplicate check and store it if it is new.

    Raises:
        PermanentParseError: the company name has no usable slug ("SAS", "Inc")
    """
    if not normalize_company_name(record.company_name):
        raise PermanentParseError(f"Company name {record.company_name!r} has no usable slug")

    decision = await check_duplicate(record, store)
    if decision.is_duplicate:
        logger.debug(f"Duplicate ({decision.reason}): {record.company_name} {record.source_url}")
        return DedupOutcome.DUPLICATE

    result = await create_company_and_round(record, store, decision.company)
    if not result.round_created:
        return DedupOutcome.DUPLICATE
    return DedupOutcome.NEW_COMPANY if result.company_created else DedupOutcome.NEW_ROUND
