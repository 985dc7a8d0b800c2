"""
Connector registry - maps source names to connector classes.

Source metadata lives in config.sources.SOURCE_REGISTRY; this table only
says which class knows how to paginate each source.
"""

from typing import Dict, Optional, Type

import httpx

from ...config.sources import get_source_config
from ..base_connector import PaginatedSourceConnector
from .archive import ArchiveConnector, ArchiveEntry, MultiListingArchiveConnector
from .bpifrance import BpifranceConnector
from .companies_house import CompaniesHouseConnector
from .crunchbase import CrunchbaseConnector
from .eu_startups_archive import EUStartupsArchiveConnector
from .frenchweb_archive import FrenchWebArchiveConnector
from .github_trending import GitHubTrendingConnector
from .hackernews import HackerNewsConnector, parse_funding_title
from .maddyness_archive import MaddynessArchiveConnector
from .producthunt import ProductHuntConnector
from .rss_feeds import RSSFeedConnector
from .sifted_archive import SiftedArchiveConnector
from .ycombinator import YCombinatorConnector

CONNECTOR_REGISTRY: Dict[str, Type[PaginatedSourceConnector]] = {
    # Archives
    "frenchweb-archive": FrenchWebArchiveConnector,
    "eu-startups-archive": EUStartupsArchiveConnector,
    "maddyness-archive": MaddynessArchiveConnector,
    "sifted-archive": SiftedArchiveConnector,
    # APIs
    "hackernews": HackerNewsConnector,
    "companies-house": CompaniesHouseConnector,
    "crunchbase": CrunchbaseConnector,
    "producthunt": ProductHuntConnector,
    # Scrapes
    "ycombinator": YCombinatorConnector,
    "bpifrance": BpifranceConnector,
    "github-trending": GitHubTrendingConnector,
    # RSS
    "frenchweb": RSSFeedConnector,
    "maddyness": RSSFeedConnector,
    "techcrunch": RSSFeedConnector,
    "eu-startups": RSSFeedConnector,
    "sifted": RSSFeedConnector,
    "tech-eu": RSSFeedConnector,
}


def build_connector(name: str, client: Optional[httpx.AsyncClient] = None) -> PaginatedSourceConnector:
    """Instantiate the connector for a registered source."""
    if name not in CONNECTOR_REGISTRY:
        raise ValueError(f"No connector for source: {name}. Available: {list(CONNECTOR_REGISTRY.keys())}")
    return CONNECTOR_REGISTRY[name](get_source_config(name), client=client)


__all__ = [
    "CONNECTOR_REGISTRY",
    "build_connector",
    "ArchiveConnector",
    "ArchiveEntry",
    "BpifranceConnector",
    "CompaniesHouseConnector",
    "CrunchbaseConnector",
    "EUStartupsArchiveConnector",
    "FrenchWebArchiveConnector",
    "GitHubTrendingConnector",
    "HackerNewsConnector",
    "MaddynessArchiveConnector",
    "MultiListingArchiveConnector",
    "ProductHuntConnector",
    "RSSFeedConnector",
    "SiftedArchiveConnector",
    "YCombinatorConnector",
    "parse_funding_title",
]
