"""
Parallel fetcher - one logical query fanned out over several connectors.

Every connector call runs under its tier budget (timeout, retries with
exponential backoff, circuit breaker). Results are tracked per connector and
the merged items are deduplicated by a normalized identity key, first
occurrence wins.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, List, Optional, Tuple, TypeVar

from ..analyst.schemas import RawFundingRecord
from ..common.circuit_breaker import CircuitBreakerRegistry, circuit_breakers
from ..common.errors import CircuitOpenError
from ..common.normalization import normalize_stage
from ..common.resilience import TierConfig, call_with_tier
from ..config.sources import SOURCE_REGISTRY, SourceConfig, SourceType
from .base_connector import PaginatedSourceConnector
from .connectors import build_connector

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ConnectorResult(Generic[T]):
    """Outcome of one connector call."""
    connector_name: str
    success: bool
    data: Optional[T] = None
    latency_ms: int = 0
    error: Optional[str] = None
    retries: int = 0
    skipped: bool = False
    skip_reason: Optional[str] = None


@dataclass
class FetchMetrics:
    total_connectors: int
    successful_connectors: int
    failed_connectors: int
    skipped_connectors: int
    total_latency_ms: int
    avg_latency_ms: int
    connector_details: List[ConnectorResult] = field(default_factory=list)


@dataclass
class ConnectorCall(Generic[T]):
    """A named zero-argument query and the tier that guards it."""
    name: str
    fn: Callable[[], Awaitable[T]]
    tier: TierConfig


def company_key(item: Any) -> str:
    """Default identity key: lowercased, trimmed company name."""
    name = item.company_name if hasattr(item, "company_name") else item.get("company_name", "")
    return (name or "").lower().strip()


def dedupe_by_key(items: Iterable[T], key: Callable[[T], str] = company_key) -> List[T]:
    """Drop items whose key was already seen. Order is preserved."""
    seen = set()
    unique = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        unique.append(item)
    return unique


async def run_connector_call(
    call: ConnectorCall[T],
    registry: Optional[CircuitBreakerRegistry] = None,
) -> ConnectorResult[T]:
    """Run one call and describe the outcome. Never raises."""
    started = time.monotonic()
    attempts = 0

    async def attempt() -> T:
        nonlocal attempts
        attempts += 1
        return await call.fn()

    try:
        data = await call_with_tier(call.name, attempt, call.tier, registry=registry or circuit_breakers)
    except CircuitOpenError:
        return ConnectorResult(call.name, success=False, skipped=True, skip_reason="circuit_open")
    except Exception as e:
        return ConnectorResult(
            call.name,
            success=False,
            latency_ms=int((time.monotonic() - started) * 1000),
            error=str(e) or type(e).__name__,
            retries=max(attempts - 1, 0),
        )

    return ConnectorResult(
        call.name,
        success=True,
        data=data,
        latency_ms=int((time.monotonic() - started) * 1000),
        retries=attempts - 1,
    )


async def fetch_parallel(
    calls: List[ConnectorCall[List[T]]],
    key: Callable[[T], str] = company_key,
    registry: Optional[CircuitBreakerRegistry] = None,
    label: str = "items",
) -> Tuple[List[T], List[ConnectorResult[List[T]]]]:
    """
    Run all calls concurrently and merge their item lists.

    Returns (deduplicated items, per-connector results). A failing connector
    contributes nothing and never affects its siblings.
    """
    started = time.monotonic()
    results = await asyncio.gather(*(run_connector_call(c, registry) for c in calls))

    merged: List[T] = []
    for result in results:
        if result.success and result.data:
            merged.extend(result.data)
    unique = dedupe_by_key(merged, key)

    successful = sum(1 for r in results if r.success)
    logger.info(
        f"ParallelFetcher {label}: {len(unique)} from {successful}/{len(calls)} connectors "
        f"in {int((time.monotonic() - started) * 1000)}ms"
    )
    return unique, list(results)


def aggregate_metrics(results: List[ConnectorResult]) -> FetchMetrics:
    successful = [r for r in results if r.success]
    failed = [r for r in results if not r.success and not r.skipped]
    skipped = [r for r in results if r.skipped]
    total_latency = sum(r.latency_ms for r in results)

    return FetchMetrics(
        total_connectors=len(results),
        successful_connectors=len(successful),
        failed_connectors=len(failed),
        skipped_connectors=len(skipped),
        total_latency_ms=total_latency,
        avg_latency_ms=round(total_latency / len(results)) if results else 0,
        connector_details=list(results),
    )


def matches_deal_query(
    record: RawFundingRecord,
    stage: Optional[str] = None,
    keywords: Iterable[str] = (),
) -> bool:
    """Stage must agree when given; at least one keyword must appear when given."""
    wanted_stage = normalize_stage(stage)
    if wanted_stage and normalize_stage(record.stage) != wanted_stage:
        return False

    keywords = [k.lower() for k in keywords if k.strip()]
    if keywords:
        haystack = f"{record.company_name} {record.description or ''}".lower()
        return any(k in haystack for k in keywords)
    return True


def _latest_deals_call(
    connector: PaginatedSourceConnector,
    stage: Optional[str],
    keywords: List[str],
) -> ConnectorCall[List[RawFundingRecord]]:
    async def latest() -> List[RawFundingRecord]:
        batch = await connector.fetch(connector.get_initial_cursor())
        return [r for r in batch.items if matches_deal_query(r, stage, keywords)]

    return ConnectorCall(connector.name, latest, connector.batch_tier)


async def fetch_similar_deals(
    stage: Optional[str] = None,
    keywords: Iterable[str] = (),
    sources: Optional[List[str]] = None,
    connector_factory: Callable[[SourceConfig], PaginatedSourceConnector] = lambda c: build_connector(c.name),
    registry: Optional[CircuitBreakerRegistry] = None,
) -> Tuple[List[RawFundingRecord], List[ConnectorResult[List[RawFundingRecord]]]]:
    """
    Recent deals similar to a stage/keyword query, from the live sources.

    Defaults to every active non-archive source (latest items only); archives
    are for backfill and too slow for an interactive lookup.
    """
    keywords = list(keywords)
    if sources:
        configs = [SOURCE_REGISTRY[name] for name in sources if name in SOURCE_REGISTRY]
    else:
        configs = [
            s for s in SOURCE_REGISTRY.values()
            if s.is_active and s.source_type != SourceType.ARCHIVE
        ]

    connectors = [connector_factory(config) for config in configs]
    try:
        calls = [_latest_deals_call(c, stage, keywords) for c in connectors]
        return await fetch_parallel(calls, registry=registry, label="similar_deals")
    finally:
        await asyncio.gather(*(c.aclose() for c in connectors), return_exceptions=True)
