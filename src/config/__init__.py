from .sources import (
    SOURCE_REGISTRY,
    SourceConfig,
    SourceType,
    CursorType,
    Tier,
    get_source_config,
    get_legacy_sources,
    get_paginated_sources,
)
from .settings import settings

__all__ = [
    "SOURCE_REGISTRY",
    "SourceConfig",
    "SourceType",
    "CursorType",
    "Tier",
    "settings",
    "get_source_config",
    "get_legacy_sources",
    "get_paginated_sources",
]
