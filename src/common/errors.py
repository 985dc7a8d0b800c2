"""
Error taxonomy for the funding sourcer.

Connectors and stores raise these; the orchestrator catches them at the
per-item and per-source boundaries and turns them into AgentError records.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional


class SourcerError(Exception):
    """Base class for all sourcer errors."""


class TransientSourceError(SourcerError):
    """Network failure, timeout or 5xx from a source. Safe to retry."""

    def __init__(self, message: str, source_name: Optional[str] = None):
        super().__init__(message)
        self.source_name = source_name


class PermanentParseError(SourcerError):
    """Content could not be turned into a funding record. Item is skipped."""


class CircuitOpenError(SourcerError):
    """The circuit for a source is open; the call was rejected without running."""

    def __init__(self, name: str):
        super().__init__(f"Circuit open for {name}")
        self.name = name


class PersistenceConflict(SourcerError):
    """Unique-key race on upsert (slug or source_url). Absorbed by the store."""


@dataclass
class AgentError:
    """Structured error recorded on a sourcer run."""
    message: str
    item_name: Optional[str] = None
    phase: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


def create_agent_error(
    error: BaseException | str,
    item_name: Optional[str] = None,
    phase: Optional[str] = None,
) -> AgentError:
    """Build an AgentError from an exception (or plain message)."""
    if isinstance(error, BaseException):
        message = str(error) or type(error).__name__
    else:
        message = error
    return AgentError(message=message, item_name=item_name, phase=phase)
