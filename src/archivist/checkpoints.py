"""
Checkpoint store - per-source cursor and backfill state between runs.

One checkpoint per source name: the cursor to resume from, whether the
historical backfill is complete, and import stats. Saving is best effort;
a crash mid-batch replays that batch next run and the dedup engine absorbs
the repeats.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlmodel import select

from .database import get_session
from .models import FundingSource, utc_now_naive

logger = logging.getLogger(__name__)


@dataclass
class SourceCheckpoint:
    """Persisted import state of one source."""
    source_name: str
    display_name: str = ""
    source_type: str = "rss"
    cursor_type: Optional[str] = None
    cursor: Optional[str] = None
    historical_import_complete: bool = False
    oldest_date_imported: Optional[date] = None
    last_import_at: Optional[datetime] = None
    last_import_count: int = 0
    total_rounds: int = 0
    is_active: bool = True

    @classmethod
    def from_model(cls, source: FundingSource) -> "SourceCheckpoint":
        return cls(
            source_name=source.name,
            display_name=source.display_name,
            source_type=source.source_type,
            cursor_type=source.cursor_type,
            cursor=source.cursor,
            historical_import_complete=source.historical_import_complete,
            oldest_date_imported=source.oldest_date_imported,
            last_import_at=source.last_import_at,
            last_import_count=source.last_import_count,
            total_rounds=source.total_rounds,
            is_active=source.is_active,
        )


class CheckpointStore(ABC):
    @abstractmethod
    async def load(self, source_name: str) -> Optional[SourceCheckpoint]:
        """Checkpoint for a source, or None if it never ran."""

    @abstractmethod
    async def save(self, checkpoint: SourceCheckpoint) -> None:
        """Create or overwrite the checkpoint of checkpoint.source_name."""

    @abstractmethod
    async def list_all(self) -> List[SourceCheckpoint]:
        pass


class SQLCheckpointStore(CheckpointStore):
    """Checkpoints in the funding_sources table."""

    def __init__(self, session_factory: Callable = get_session):
        self.session_factory = session_factory

    async def load(self, source_name: str) -> Optional[SourceCheckpoint]:
        async with self.session_factory() as session:
            stmt = select(FundingSource).where(FundingSource.name == source_name)
            result = await session.execute(stmt)
            source = result.scalars().first()
        return SourceCheckpoint.from_model(source) if source else None

    async def save(self, checkpoint: SourceCheckpoint) -> None:
        now = utc_now_naive()
        state = {
            "cursor": checkpoint.cursor,
            "cursor_type": checkpoint.cursor_type,
            "historical_import_complete": checkpoint.historical_import_complete,
            "oldest_date_imported": checkpoint.oldest_date_imported,
            "last_import_at": checkpoint.last_import_at,
            "last_import_count": checkpoint.last_import_count,
            "total_rounds": checkpoint.total_rounds,
            "updated_at": now,
        }

        # Created on first save; is_active is never overwritten here so a
        # source deactivated by an operator stays deactivated
        stmt = pg_insert(FundingSource).values(
            name=checkpoint.source_name,
            display_name=checkpoint.display_name or checkpoint.source_name,
            source_type=checkpoint.source_type,
            is_active=checkpoint.is_active,
            created_at=now,
            **state,
        ).on_conflict_do_update(
            index_elements=["name"],
            set_=state,
        )

        async with self.session_factory() as session:
            await session.execute(stmt)

        logger.debug(
            f"Checkpoint saved: {checkpoint.source_name} cursor={checkpoint.cursor!r} "
            f"complete={checkpoint.historical_import_complete}"
        )

    async def list_all(self) -> List[SourceCheckpoint]:
        async with self.session_factory() as session:
            result = await session.execute(select(FundingSource).order_by(FundingSource.name))
            return [SourceCheckpoint.from_model(s) for s in result.scalars().all()]


class InMemoryCheckpointStore(CheckpointStore):
    """Checkpoints kept in process memory."""

    def __init__(self, checkpoints: Optional[Dict[str, SourceCheckpoint]] = None):
        self._checkpoints: Dict[str, SourceCheckpoint] = dict(checkpoints or {})
        self._lock = asyncio.Lock()

    async def load(self, source_name: str) -> Optional[SourceCheckpoint]:
        async with self._lock:
            checkpoint = self._checkpoints.get(source_name)
            # Copies, so callers can't mutate stored state without save()
            return replace(checkpoint) if checkpoint else None

    async def save(self, checkpoint: SourceCheckpoint) -> None:
        async with self._lock:
            existing = self._checkpoints.get(checkpoint.source_name)
            stored = replace(checkpoint)
            if existing is not None:
                stored.is_active = existing.is_active
            self._checkpoints[checkpoint.source_name] = stored

    async def list_all(self) -> List[SourceCheckpoint]:
        async with self._lock:
            return [replace(c) for _, c in sorted(self._checkpoints.items())]
