from .base_connector import FetchResult, ListingPageCursor, PaginatedSourceConnector
from .connectors import CONNECTOR_REGISTRY, build_connector
from .orchestrator import (
    SourceStats,
    SourcerResult,
    SourcerStatus,
    run_sourcer,
    run_sourcer_cli,
    select_sources,
)
from .parallel_fetcher import (
    ConnectorCall,
    ConnectorResult,
    aggregate_metrics,
    fetch_parallel,
    fetch_similar_deals,
)

__all__ = [
    "FetchResult",
    "ListingPageCursor",
    "PaginatedSourceConnector",
    "CONNECTOR_REGISTRY",
    "build_connector",
    "SourceStats",
    "SourcerResult",
    "SourcerStatus",
    "run_sourcer",
    "run_sourcer_cli",
    "select_sources",
    "ConnectorCall",
    "ConnectorResult",
    "aggregate_metrics",
    "fetch_parallel",
    "fetch_similar_deals",
]
