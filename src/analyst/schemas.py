"""
Schemas for funding extraction.

ParsedFields is the structured output requested from the LLM through
Instructor. RawFundingRecord is the immutable record every connector emits
and the dedup engine consumes.
"""

from dataclasses import dataclass, field
import datetime as dt
from decimal import Decimal
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class ParsedFields(BaseModel):
    """Funding facts extracted from one article."""

    company_name: Optional[str] = Field(
        default=None,
        description="Exact company name as written in the article, or null",
    )
    amount: Optional[float] = Field(
        default=None,
        description="Amount raised in base units (5 millions d'euros -> 5000000), or null",
    )
    currency: Optional[Literal["EUR", "USD", "GBP"]] = Field(
        default=None,
        description="Currency of the amount",
    )
    stage: Optional[str] = Field(
        default=None,
        description=(
            "One of: pre_seed, seed, series_a, series_b, series_c, series_d, "
            "growth, bridge, late_stage. Null if not stated."
        ),
    )
    investors: List[str] = Field(default_factory=list)
    lead_investor: Optional[str] = None
    date: Optional[dt.date] = Field(default=None, description="Announcement date (YYYY-MM-DD)")
    description: Optional[str] = Field(
        default=None,
        description="Brief company description, max 200 characters",
    )
    confidence_score: int = Field(
        default=0,
        ge=0,
        le=100,
        description="0-100 confidence that this is a real, new funding announcement",
    )

    @field_validator("company_name", "lead_investor", "description", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def non_positive_amount_is_unknown(cls, v):
        if v is not None and float(v) <= 0:
            return None
        return v

    @field_validator("description")
    @classmethod
    def truncate_description(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) > 200:
            return v[:197].rstrip() + "..."
        return v


@dataclass(frozen=True)
class RawFundingRecord:
    """One funding event as reported by a source. Consumed once by dedup."""
    company_name: str
    date: dt.date
    source_url: Optional[str]
    source_name: str
    amount: Optional[Decimal] = None
    currency: str = "EUR"
    stage: Optional[str] = None  # normalized stage code (SERIES_A, ...)
    investors: Tuple[str, ...] = field(default_factory=tuple)
    lead_investor: Optional[str] = None
    description: Optional[str] = None
