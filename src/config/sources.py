"""
Source Registry - Configuration for every funding-news source.

Each source declares how it paginates, how its cursor is shaped, and which
resilience tier guards its outbound calls.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List


class SourceType(str, Enum):
    """Kind of upstream a connector talks to."""
    RSS = "rss"           # Legacy feed, latest items only
    ARCHIVE = "archive"   # Paginated HTML archive (historical backfill)
    API = "api"           # Public JSON API
    SCRAPE = "scrape"     # Scraped directory or news hub


class CursorType(str, Enum):
    """Native pagination scheme of a source."""
    PAGE = "page"
    DATE = "date"
    OFFSET = "offset"
    TOKEN = "token"


class Tier(str, Enum):
    """Resilience tier (timeout / retry budget) for a source's calls."""
    INTERNAL = "internal"
    FAST = "fast"
    SLOW = "slow"


@dataclass
class SourceConfig:
    """Configuration for a single funding-news source."""
    name: str
    display_name: str
    source_type: SourceType
    cursor_type: CursorType
    tier: Tier
    base_url: str

    # Archive and scrape sources may walk several listing URLs (sectors, news hubs)
    listing_urls: List[str] = field(default_factory=list)
    is_active: bool = True

    @property
    def is_paginated(self) -> bool:
        """Paginated sources keep a cursor across runs and can complete."""
        return self.source_type != SourceType.RSS


SOURCE_REGISTRY: dict[str, SourceConfig] = {
    # =========================================================================
    # Historical archives (paginated backfill)
    # =========================================================================
    "frenchweb-archive": SourceConfig(
        name="frenchweb-archive",
        display_name="FrenchWeb (Archive)",
        source_type=SourceType.ARCHIVE,
        cursor_type=CursorType.PAGE,
        tier=Tier.SLOW,
        base_url="https://www.frenchweb.fr/tag/levees-de-fonds/page/{page}",
    ),
    "eu-startups-archive": SourceConfig(
        name="eu-startups-archive",
        display_name="EU-Startups (Archive)",
        source_type=SourceType.ARCHIVE,
        cursor_type=CursorType.PAGE,
        tier=Tier.SLOW,
        base_url="https://www.eu-startups.com/category/funding/page/{page}",
    ),
    "maddyness-archive": SourceConfig(
        name="maddyness-archive",
        display_name="Maddyness (Archive)",
        source_type=SourceType.ARCHIVE,
        cursor_type=CursorType.PAGE,
        tier=Tier.SLOW,
        base_url="https://www.maddyness.com/page/{page}/?s=levee+de+fonds",
    ),
    "sifted-archive": SourceConfig(
        name="sifted-archive",
        display_name="Sifted (Archive)",
        source_type=SourceType.ARCHIVE,
        cursor_type=CursorType.PAGE,
        tier=Tier.SLOW,
        base_url="https://sifted.eu/sector/",
        listing_urls=[
            "https://sifted.eu/sector/fintech",
            "https://sifted.eu/sector/healthtech",
            "https://sifted.eu/sector/deeptech",
            "https://sifted.eu/sector/sustainability",
        ],
    ),

    # =========================================================================
    # Public APIs (paginated, never complete)
    # =========================================================================
    "hackernews": SourceConfig(
        name="hackernews",
        display_name="Hacker News",
        source_type=SourceType.API,
        cursor_type=CursorType.PAGE,
        tier=Tier.FAST,
        base_url="https://hn.algolia.com/api/v1/search",
    ),
    "companies-house": SourceConfig(
        name="companies-house",
        display_name="Companies House UK",
        source_type=SourceType.API,
        cursor_type=CursorType.OFFSET,
        tier=Tier.SLOW,
        base_url="https://api.company-information.service.gov.uk",
    ),
    "crunchbase": SourceConfig(
        name="crunchbase",
        display_name="Crunchbase",
        source_type=SourceType.API,
        cursor_type=CursorType.TOKEN,
        tier=Tier.SLOW,
        base_url="https://api.crunchbase.com/api/v4",
    ),
    "producthunt": SourceConfig(
        name="producthunt",
        display_name="ProductHunt",
        source_type=SourceType.API,
        cursor_type=CursorType.TOKEN,
        tier=Tier.FAST,
        base_url="https://api.producthunt.com/v2/api/graphql",
    ),

    # =========================================================================
    # Scraped directories and news hubs (paginated, never complete)
    # =========================================================================
    "ycombinator": SourceConfig(
        name="ycombinator",
        display_name="Y Combinator",
        source_type=SourceType.SCRAPE,
        cursor_type=CursorType.PAGE,
        tier=Tier.SLOW,
        base_url="https://www.ycombinator.com/companies",
    ),
    "bpifrance": SourceConfig(
        name="bpifrance",
        display_name="Bpifrance",
        source_type=SourceType.SCRAPE,
        cursor_type=CursorType.PAGE,
        tier=Tier.SLOW,
        base_url="https://www.bpifrance.fr/nos-actualites",
        listing_urls=[
            "https://www.bpifrance.fr/nos-actualites",
            "https://bigmedia.bpifrance.fr/nos-actualites",
        ],
    ),
    "github-trending": SourceConfig(
        name="github-trending",
        display_name="GitHub Trending",
        source_type=SourceType.SCRAPE,
        cursor_type=CursorType.PAGE,
        tier=Tier.FAST,
        base_url="https://github.com/trending",
    ),

    # =========================================================================
    # Legacy RSS feeds (latest items only)
    # =========================================================================
    "frenchweb": SourceConfig(
        name="frenchweb",
        display_name="FrenchWeb",
        source_type=SourceType.RSS,
        cursor_type=CursorType.DATE,
        tier=Tier.FAST,
        base_url="https://www.frenchweb.fr/feed",
    ),
    "maddyness": SourceConfig(
        name="maddyness",
        display_name="Maddyness",
        source_type=SourceType.RSS,
        cursor_type=CursorType.DATE,
        tier=Tier.FAST,
        base_url="https://www.maddyness.com/feed/",
    ),
    "techcrunch": SourceConfig(
        name="techcrunch",
        display_name="TechCrunch",
        source_type=SourceType.RSS,
        cursor_type=CursorType.DATE,
        tier=Tier.FAST,
        base_url="https://techcrunch.com/category/venture/feed/",
    ),
    "eu-startups": SourceConfig(
        name="eu-startups",
        display_name="EU-Startups",
        source_type=SourceType.RSS,
        cursor_type=CursorType.DATE,
        tier=Tier.FAST,
        base_url="https://www.eu-startups.com/category/funding/feed/",
    ),
    "sifted": SourceConfig(
        name="sifted",
        display_name="Sifted",
        source_type=SourceType.RSS,
        cursor_type=CursorType.DATE,
        tier=Tier.FAST,
        base_url="https://sifted.eu/feed",
    ),
    "tech-eu": SourceConfig(
        name="tech-eu",
        display_name="Tech.eu",
        source_type=SourceType.RSS,
        cursor_type=CursorType.DATE,
        tier=Tier.FAST,
        base_url="https://tech.eu/feed/",
    ),
}


def get_source_config(name: str) -> SourceConfig:
    """Get configuration for a specific source by name."""
    if name not in SOURCE_REGISTRY:
        raise ValueError(f"Unknown source: {name}. Available: {list(SOURCE_REGISTRY.keys())}")
    return SOURCE_REGISTRY[name]


def get_legacy_sources() -> List[SourceConfig]:
    """Get RSS sources (latest-items feeds, no persistent cursor)."""
    return [s for s in SOURCE_REGISTRY.values() if not s.is_paginated]


def get_paginated_sources() -> List[SourceConfig]:
    """Get sources that paginate and keep a checkpoint between runs."""
    return [s for s in SOURCE_REGISTRY.values() if s.is_paginated]
