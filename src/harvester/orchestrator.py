"""
Sourcer orchestrator - runs funding sources and feeds the dedup engine.

One run:
1. Select sources (all, legacy RSS only, paginated only, or by name).
   Inactive sources and archives whose backfill is complete are skipped.
2. Run sources concurrently (bounded by max_parallel_sources). Inside a
   source, up to MAX_BATCHES_PER_RUN fetch() calls run sequentially, each
   resuming from the cursor the previous one returned.
3. Each batch goes through the circuit breaker and the source's tier budget.
   An open circuit skips the source; a failed batch ends the source for this
   run (the next run resumes from the saved cursor).
4. Items are deduplicated and stored one by one; an item error never aborts
   its batch.
5. A source's checkpoint is persisted after each batch it processes, so a
   run cut short by the job timeout keeps the work already done.

Status: COMPLETED (no errors), PARTIAL (some errors), FAILED (every source
that was attempted failed).
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..archivist.checkpoints import CheckpointStore, SourceCheckpoint, SQLCheckpointStore
from ..archivist.dedup import DedupOutcome, process_record
from ..archivist.models import utc_now_naive
from ..archivist.storage import FundingStore, SQLFundingStore
from ..common.circuit_breaker import CircuitBreakerRegistry, circuit_breakers
from ..common.errors import AgentError, CircuitOpenError, PermanentParseError, create_agent_error
from ..common.resilience import call_with_tier
from ..config.settings import settings
from ..config.sources import SOURCE_REGISTRY, SourceConfig, SourceType
from .base_connector import FetchResult, PaginatedSourceConnector
from .connectors import build_connector

logger = logging.getLogger(__name__)

ConnectorFactory = Callable[[SourceConfig], PaginatedSourceConnector]


class SourcerStatus(str, Enum):
    COMPLETED = "COMPLETED"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


@dataclass
class SourceStats:
    """Per-source counters for one run."""
    source_name: str
    found: int = 0
    parsed: int = 0
    new_companies: int = 0
    new_rounds: int = 0
    duplicates: int = 0
    errors: int = 0
    batches: int = 0
    failed: bool = False
    skipped: bool = False
    skip_reason: Optional[str] = None
    backfill_complete: bool = False
    oldest_date: Optional[date] = None
    cursor: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.oldest_date:
            data["oldest_date"] = self.oldest_date.isoformat()
        return data


class SourcerResult:
    """Aggregate result of a sourcer run."""

    def __init__(self):
        self.status = SourcerStatus.COMPLETED
        self.source_breakdown: Dict[str, SourceStats] = {}
        self.errors: List[AgentError] = []
        self.started_at = datetime.now(timezone.utc)
        self.completed_at: Optional[datetime] = None

    @property
    def items_processed(self) -> int:
        return sum(s.parsed for s in self.source_breakdown.values())

    @property
    def items_created(self) -> int:
        return sum(s.new_rounds for s in self.source_breakdown.values())

    @property
    def items_skipped(self) -> int:
        return sum(s.duplicates for s in self.source_breakdown.values())

    @property
    def items_failed(self) -> int:
        return sum(s.errors for s in self.source_breakdown.values())

    @property
    def duration_ms(self) -> int:
        end = self.completed_at or datetime.now(timezone.utc)
        return int((end - self.started_at).total_seconds() * 1000)

    def complete(self):
        self.completed_at = datetime.now(timezone.utc)
        self.status = compute_status(list(self.source_breakdown.values()), self.errors)

    def log_metrics(self):
        """Log performance metrics."""
        for stats in self.source_breakdown.values():
            logger.info(
                f"METRICS source={stats.source_name} "
                f"found={stats.found} "
                f"parsed={stats.parsed} "
                f"new_companies={stats.new_companies} "
                f"new_rounds={stats.new_rounds} "
                f"duplicates={stats.duplicates} "
                f"errors={stats.errors} "
                f"batches={stats.batches} "
                f"skipped={stats.skipped}"
            )
        logger.info(
            f"METRICS sourcer status={self.status.value} "
            f"processed={self.items_processed} "
            f"created={self.items_created} "
            f"skipped={self.items_skipped} "
            f"failed={self.items_failed} "
            f"duration_ms={self.duration_ms}"
        )

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "items_processed": self.items_processed,
            "items_created": self.items_created,
            "items_skipped": self.items_skipped,
            "items_failed": self.items_failed,
            "duration_ms": self.duration_ms,
            "source_breakdown": {name: s.to_dict() for name, s in self.source_breakdown.items()},
            "errors": [e.to_dict() for e in self.errors],
        }


def compute_status(stats: List[SourceStats], errors: List[AgentError]) -> SourcerStatus:
    """COMPLETED with no errors, FAILED when every attempted source failed, else PARTIAL."""
    if not errors and not any(s.errors or s.failed for s in stats):
        return SourcerStatus.COMPLETED
    attempted = [s for s in stats if not s.skipped]
    if attempted and all(s.failed for s in attempted):
        return SourcerStatus.FAILED
    return SourcerStatus.PARTIAL


def select_sources(
    legacy_only: bool = False,
    paginated_only: bool = False,
    sources: Optional[List[str]] = None,
    registry: Optional[Dict[str, SourceConfig]] = None,
) -> List[SourceConfig]:
    """Source configs a run should consider, in registry order."""
    registry = SOURCE_REGISTRY if registry is None else registry

    if sources:
        unknown = [name for name in sources if name not in registry]
        if unknown:
            logger.warning(f"Ignoring unknown sources: {unknown}")
        selected = [registry[name] for name in sources if name in registry]
    else:
        selected = list(registry.values())

    if legacy_only:
        selected = [s for s in selected if not s.is_paginated]
    elif paginated_only:
        selected = [s for s in selected if s.is_paginated]

    return [s for s in selected if s.is_active]


def default_connector_factory(config: SourceConfig) -> PaginatedSourceConnector:
    return build_connector(config.name)


def new_checkpoint(config: SourceConfig) -> SourceCheckpoint:
    return SourceCheckpoint(
        source_name=config.name,
        display_name=config.display_name,
        source_type=config.source_type.value,
        cursor_type=config.cursor_type.value,
    )


async def process_batch(
    batch: FetchResult,
    stats: SourceStats,
    store: FundingStore,
    errors: List[AgentError],
) -> None:
    """Run a batch's items through the dedup engine in order.

    Articles the connector saw but could not turn into a record are counted
    as parse errors.
    """
    stats.found += batch.found

    for rejected in batch.rejected:
        stats.errors += 1
        errors.append(create_agent_error(rejected.reason, rejected.url or rejected.title, "parse"))

    for record in batch.items:
        if not record.company_name or not record.company_name.strip():
            stats.errors += 1
            errors.append(create_agent_error("Record without company name", record.source_url, "parse"))
            continue

        try:
            outcome = await process_record(record, store)
        except PermanentParseError as e:
            stats.errors += 1
            errors.append(create_agent_error(e, record.source_url, "parse"))
            logger.warning(f"{stats.source_name}: rejected {record.company_name!r}: {e}")
            continue
        except Exception as e:
            stats.parsed += 1
            stats.errors += 1
            errors.append(create_agent_error(e, record.company_name, "dedup"))
            logger.error(f"{stats.source_name}: failed to store {record.company_name}: {e}")
            continue

        stats.parsed += 1
        if record.date and (stats.oldest_date is None or record.date < stats.oldest_date):
            stats.oldest_date = record.date

        if outcome == DedupOutcome.DUPLICATE:
            stats.duplicates += 1
        else:
            stats.new_rounds += 1
            if outcome == DedupOutcome.NEW_COMPANY:
                stats.new_companies += 1


def apply_progress(
    checkpoint: SourceCheckpoint,
    config: SourceConfig,
    stats: SourceStats,
    cursor: Optional[str],
    base_total: int,
) -> None:
    """Fold this run's progress so far into the source checkpoint."""
    stats.cursor = cursor
    checkpoint.cursor = cursor if config.is_paginated else None
    checkpoint.historical_import_complete = checkpoint.historical_import_complete or stats.backfill_complete
    if stats.oldest_date and (
        checkpoint.oldest_date_imported is None or stats.oldest_date < checkpoint.oldest_date_imported
    ):
        checkpoint.oldest_date_imported = stats.oldest_date
    checkpoint.last_import_at = utc_now_naive()
    checkpoint.last_import_count = stats.new_rounds
    checkpoint.total_rounds = base_total + stats.new_rounds


async def run_source(
    config: SourceConfig,
    checkpoints: CheckpointStore,
    connector_factory: ConnectorFactory,
    store: FundingStore,
    max_batches: int,
    errors: List[AgentError],
    registry: CircuitBreakerRegistry,
) -> SourceStats:
    """
    Run up to `max_batches` sequential batches of one source.

    The checkpoint is saved after every processed batch, so a run cancelled
    mid-source keeps the batches it finished. A skipped source leaves its
    checkpoint untouched.
    """
    stats = SourceStats(source_name=config.name)
    checkpoint = await checkpoints.load(config.name) or new_checkpoint(config)

    if not checkpoint.is_active:
        stats.skipped, stats.skip_reason = True, "inactive"
        logger.info(f"SOURCE_SKIPPED: {config.name} is deactivated")
        return stats

    if config.source_type == SourceType.ARCHIVE and checkpoint.historical_import_complete:
        stats.skipped, stats.skip_reason = True, "backfill_complete"
        stats.backfill_complete = True
        logger.info(f"SOURCE_SKIPPED: {config.name} historical backfill already complete")
        return stats

    base_total = checkpoint.total_rounds
    save_failed = False

    async with connector_factory(config) as connector:
        cursor = checkpoint.cursor if config.is_paginated and checkpoint.cursor else connector.get_initial_cursor()
        logger.info(f"Starting {config.name} from cursor {cursor!r}")

        for batch_number in range(max_batches):
            try:
                batch = await call_with_tier(
                    config.name,
                    lambda: connector.fetch(cursor),
                    connector.batch_tier,
                    registry=registry,
                )
            except CircuitOpenError:
                logger.warning(f"SOURCE_SKIPPED: {config.name} circuit open")
                if batch_number == 0:
                    stats.skipped, stats.skip_reason = True, "circuit_open"
                break
            except Exception as e:
                stats.failed = True
                stats.errors += 1
                errors.append(create_agent_error(e, config.name, "fetch"))
                logger.error(f"{config.name}: batch {batch_number + 1} failed at cursor {cursor!r}: {e}")
                break

            stats.batches += 1
            await process_batch(batch, stats, store, errors)

            exhausted = not (batch.has_more and batch.next_cursor)
            if exhausted:
                # Source exhausted (or reached the historical cutoff)
                cursor = None
                if config.source_type == SourceType.ARCHIVE:
                    stats.backfill_complete = True
                    logger.info(f"BACKFILL_COMPLETE: {config.name}")
            else:
                cursor = batch.next_cursor

            apply_progress(checkpoint, config, stats, cursor, base_total)
            try:
                await checkpoints.save(checkpoint)
            except Exception as e:
                # Best effort: the next run replays these batches and dedup absorbs them
                logger.error(f"{config.name}: failed to save checkpoint: {e}")
                if not save_failed:
                    errors.append(create_agent_error(e, config.name, "checkpoint"))
                save_failed = True

            if exhausted:
                break

    return stats


async def run_sourcer(
    legacy_only: bool = False,
    paginated_only: bool = False,
    sources: Optional[List[str]] = None,
    max_batches_per_run: Optional[int] = None,
    funding_store: Optional[FundingStore] = None,
    checkpoint_store: Optional[CheckpointStore] = None,
    connector_factory: ConnectorFactory = default_connector_factory,
    source_registry: Optional[Dict[str, SourceConfig]] = None,
    breaker_registry: Optional[CircuitBreakerRegistry] = None,
) -> SourcerResult:
    """
    Run the funding sourcer once.

    Args:
        legacy_only: Only RSS feeds (weekly schedule).
        paginated_only: Only archives/APIs (daily backfill schedule).
        sources: Explicit source names; combined with the flags above.
        max_batches_per_run: Sequential fetch() calls per source.
        funding_store / checkpoint_store: Default to PostgreSQL.

    Returns:
        SourcerResult with per-source breakdown and structured errors.
    """
    result = SourcerResult()
    store = funding_store or SQLFundingStore()
    checkpoints = checkpoint_store or SQLCheckpointStore()
    registry = breaker_registry or circuit_breakers
    max_batches = max_batches_per_run or settings.max_batches_per_run

    selected = select_sources(legacy_only, paginated_only, sources, source_registry)
    logger.info(
        f"Starting sourcer run: {len(selected)} sources, {max_batches} batches each "
        f"({[s.name for s in selected]})"
    )

    semaphore = asyncio.Semaphore(settings.max_parallel_sources)

    async def run_with_limit(config: SourceConfig) -> SourceStats:
        async with semaphore:
            return await run_source(
                config, checkpoints, connector_factory, store, max_batches, result.errors, registry,
            )

    outcomes = await asyncio.gather(*(run_with_limit(c) for c in selected), return_exceptions=True)

    for config, outcome in zip(selected, outcomes):
        if isinstance(outcome, BaseException):
            stats = SourceStats(source_name=config.name, failed=True, errors=1)
            result.errors.append(create_agent_error(outcome, config.name, "source"))
            logger.error(f"{config.name}: source task crashed: {outcome}")
        else:
            stats = outcome
        result.source_breakdown[config.name] = stats

    result.complete()
    result.log_metrics()
    return result


async def run_sourcer_cli(
    legacy_only: bool = False,
    paginated_only: bool = False,
    sources: Optional[List[str]] = None,
    max_batches_per_run: Optional[int] = None,
) -> SourcerResult:
    """CLI entry point: run once and print a summary."""
    started = time.monotonic()
    result = await run_sourcer(
        legacy_only=legacy_only,
        paginated_only=paginated_only,
        sources=sources,
        max_batches_per_run=max_batches_per_run,
    )

    print(f"\n=== Sourcer Run: {result.status.value} ===")
    print(f"Items processed: {result.items_processed}")
    print(f"Rounds created: {result.items_created}")
    print(f"Duplicates skipped: {result.items_skipped}")
    print(f"Item errors: {result.items_failed}")
    for name, stats in result.source_breakdown.items():
        note = f" (skipped: {stats.skip_reason})" if stats.skipped else ""
        print(
            f"  {name}: found={stats.found} new_rounds={stats.new_rounds} "
            f"duplicates={stats.duplicates} errors={stats.errors}{note}"
        )
    if result.errors:
        print("Errors:")
        for error in result.errors:
            print(f"  - [{error.phase}] {error.item_name}: {error.message}")
    print(f"Duration: {time.monotonic() - started:.2f}s")
    return result
