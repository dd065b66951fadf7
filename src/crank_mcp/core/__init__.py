"""Core zone scanning, wikilinking and response caching for crank-mcp."""

from crank_mcp.core.zones import (
    ZoneType,
    ProtectedZone,
    find_frontmatter_end,
    get_protected_zones,
    is_in_protected_zone,
    range_overlaps_protected_zone,
    zones_of_type,
)

from crank_mcp.core.wikilinks import (
    EntityWithAliases,
    WikilinkResult,
    apply_wikilinks,
)

from crank_mcp.core.cache import (
    CacheTier,
    ResponseCache,
    TOOL_TIERS,
    cache_key,
    classify_tool,
)

__all__ = [
    "ZoneType",
    "ProtectedZone",
    "find_frontmatter_end",
    "get_protected_zones",
    "is_in_protected_zone",
    "range_overlaps_protected_zone",
    "zones_of_type",
    "EntityWithAliases",
    "WikilinkResult",
    "apply_wikilinks",
    "CacheTier",
    "ResponseCache",
    "TOOL_TIERS",
    "cache_key",
    "classify_tool",
]
