"""Database models, stores and the deduplication engine."""

from .models import Company, FundingRound, FundingSource
from .database import get_session, init_db, close_db
from .storage import FundingStore, SQLFundingStore, InMemoryFundingStore
from .checkpoints import (
    SourceCheckpoint,
    CheckpointStore,
    SQLCheckpointStore,
    InMemoryCheckpointStore,
)
from .dedup import (
    DedupOutcome,
    DuplicateDecision,
    CreateResult,
    check_duplicate,
    create_company_and_round,
    find_similar_company,
    is_same_round,
    process_record,
)

__all__ = [
    "Company",
    "FundingRound",
    "FundingSource",
    "get_session",
    "init_db",
    "close_db",
    "FundingStore",
    "SQLFundingStore",
    "InMemoryFundingStore",
    "SourceCheckpoint",
    "CheckpointStore",
    "SQLCheckpointStore",
    "InMemoryCheckpointStore",
    "DedupOutcome",
    "DuplicateDecision",
    "CreateResult",
    "check_duplicate",
    "create_company_and_round",
    "find_similar_company",
    "is_same_round",
    "process_record",
]
