"""
Database models using SQLModel (SQLAlchemy + Pydantic).

Schema:
- Company: Canonical startup identity, keyed by normalized slug
- FundingRound: One accepted funding event (append-only)
- FundingSource: Per-source checkpoint (cursor, backfill completeness, stats)
- CompanyEnrichment: What an import changed on a company, and from where
"""

from datetime import datetime, date, timezone
from decimal import Decimal
from typing import Optional, List
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, Numeric
from sqlalchemy.dialects.postgresql import JSONB


def utc_now_naive() -> datetime:
    """Return current UTC time as timezone-naive datetime.

    PostgreSQL TIMESTAMP WITHOUT TIME ZONE columns require naive datetimes.
    Using timezone-aware datetimes causes asyncpg DataError.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Company(SQLModel, table=True):
    """A startup that received funding."""
    __tablename__ = "companies"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    # Unique so that racing sources converge on one row (ON CONFLICT)
    slug: str = Field(unique=True, index=True)
    # Alternative spellings seen in sources ("Foo Inc", "FOO SAS")
    aliases: List[str] = Field(default_factory=list, sa_column=Column(JSONB, nullable=False, server_default="[]"))
    description: Optional[str] = None

    # Latest round info, refreshed on every accepted round
    last_round_stage: Optional[str] = None
    last_round_date: Optional[date] = None
    total_raised: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(14, 2)))  # USD

    # 0-100, imported companies start low and need enrichment
    data_quality: int = Field(default=20)

    created_at: datetime = Field(default_factory=utc_now_naive)
    updated_at: datetime = Field(default_factory=utc_now_naive)

    # Relationships
    rounds: List["FundingRound"] = Relationship(back_populates="company")


class FundingRound(SQLModel, table=True):
    """A funding round. Never mutated after creation."""
    __tablename__ = "funding_rounds"

    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: int = Field(foreign_key="companies.id", index=True)
    company_name: str
    company_slug: Optional[str] = Field(default=None, index=True)
    description: Optional[str] = None

    # Round details
    amount: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(14, 2)))
    amount_usd: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(14, 2)))
    currency: str = "USD"
    stage: Optional[str] = None
    stage_normalized: Optional[str] = Field(default=None, index=True)
    investors: List[str] = Field(default_factory=list, sa_column=Column(JSONB, nullable=False, server_default="[]"))
    lead_investor: Optional[str] = None
    funding_date: Optional[date] = Field(default=None, index=True)

    # Provenance. source_url is the primary anti-duplicate key (NULLs allowed)
    source: str = Field(index=True)
    source_url: Optional[str] = Field(default=None, unique=True, index=True)
    is_migrated: bool = Field(default=True)  # Linked to a Company row

    created_at: datetime = Field(default_factory=utc_now_naive, index=True)

    # Relationships
    company: Optional[Company] = Relationship(back_populates="rounds")


class FundingSource(SQLModel, table=True):
    """Import state for one funding source."""
    __tablename__ = "funding_sources"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)
    display_name: str
    source_type: str = "rss"  # rss, archive, api, scrape

    # Resumable backfill
    cursor: Optional[str] = None
    cursor_type: Optional[str] = None
    historical_import_complete: bool = Field(default=False)
    oldest_date_imported: Optional[date] = None  # Backfill progress, oldest round seen

    # Stats
    last_import_at: Optional[datetime] = None
    last_import_count: int = Field(default=0)
    total_rounds: int = Field(default=0)

    # Deactivated sources are skipped, never deleted
    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utc_now_naive)
    updated_at: datetime = Field(default_factory=utc_now_naive)


class CompanyEnrichment(SQLModel, table=True):
    """Audit row for every automated write to a company."""
    __tablename__ = "company_enrichments"

    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: int = Field(foreign_key="companies.id", index=True)
    source: str = "ARTICLE_IMPORT"
    source_url: Optional[str] = None
    source_date: Optional[date] = None
    fields_updated: List[str] = Field(default_factory=list, sa_column=Column(JSONB, nullable=False, server_default="[]"))
    new_data: dict = Field(default_factory=dict, sa_column=Column(JSONB))
    confidence: int = Field(default=70)  # 0-100

    created_at: datetime = Field(default_factory=utc_now_naive)
