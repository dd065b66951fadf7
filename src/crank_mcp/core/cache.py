"""
Tiered response cache for remote MCP tool calls.

Each tool name is classified into a TTL tier. Read-only tools are memoized
for their tier's lifetime and concurrent identical calls share one remote
call. Tools with side effects (and any tool not in the table) bypass the
cache entirely.

Tiers:
    bypass  - never cached, never coalesced
    session - cached until invalidated or cleared (expiry 0)
    short   - 5 second TTL (link graphs, suggestions, analytics)
    medium  - 30 second TTL (health/status)

Example:
    from crank_mcp.core.cache import ResponseCache

    cache = ResponseCache()
    backlinks = await cache.get(
        "get_backlinks", {"path": "notes/a.md"},
        lambda: session_call("get_backlinks", {"path": "notes/a.md"}),
    )
    cache.invalidate_path("notes/a.md")

Thread safety:
    The lookup / in-flight check / in-flight registration sequence runs
    under a lock, and in-flight markers are ``concurrent.futures.Future``
    objects, so event loops on different threads sharing one cache still
    issue at most one outstanding remote call per key.
"""

import asyncio
import concurrent.futures
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = [
    "CacheTier",
    "CacheEntry",
    "CacheStats",
    "ResponseCache",
    "TOOL_TIERS",
    "DEFAULT_TIER_TTLS",
    "cache_key",
    "classify_tool",
]


class CacheTier(str, Enum):
    """Caching policy for a tool, by how fast its result goes stale."""

    BYPASS = "bypass"
    SESSION = "session"
    SHORT = "short"
    MEDIUM = "medium"


# -----------------------------------------------------------------------------
# Tool tier table
#
# These names are the indexing server's tool surface; keep them in sync with
# the server rather than guessing at new ones.
# -----------------------------------------------------------------------------

SESSION_TOOLS = frozenset(
    {
        "get_folder_structure",
        "list_entities",
        "flywheel_config",
    }
)

SHORT_TTL_TOOLS = frozenset(
    {
        "get_backlinks",
        "get_forward_links",
        "vault_schema",
        "find_similar",
        "suggest_wikilinks",
        "note_intelligence",
        "graph_analysis",
        "get_vault_stats",
        "tasks",
        "server_log",
        "validate_links",
    }
)

MEDIUM_TTL_TOOLS = frozenset(
    {
        "health_check",
    }
)

# Side-effecting or always-fresh tools
NO_CACHE_TOOLS = frozenset(
    {
        "search",
        "vault_toggle_task",
        "vault_update_frontmatter",
        "vault_add_to_section",
        "vault_remove_from_section",
        "vault_replace_in_section",
        "vault_create_note",
        "vault_delete_note",
        "vault_move_note",
        "vault_rename_note",
        "vault_add_task",
        "merge_entities",
        "refresh_index",
        "init_semantic",
        "policy",
        "rename_field",
        "migrate_field_values",
        "rename_tag",
        "vault_undo_last_mutation",
        "dismiss_merge_suggestion",
        "wikilink_feedback",
    }
)


def _build_tool_tiers() -> Dict[str, CacheTier]:
    tiers: Dict[str, CacheTier] = {}
    tiers.update(dict.fromkeys(SHORT_TTL_TOOLS, CacheTier.SHORT))
    tiers.update(dict.fromkeys(MEDIUM_TTL_TOOLS, CacheTier.MEDIUM))
    tiers.update(dict.fromkeys(SESSION_TOOLS, CacheTier.SESSION))
    tiers.update(dict.fromkeys(NO_CACHE_TOOLS, CacheTier.BYPASS))
    return tiers


TOOL_TIERS: Dict[str, CacheTier] = _build_tool_tiers()

# Seconds; 0 means the entry never expires
DEFAULT_TIER_TTLS: Dict[CacheTier, float] = {
    CacheTier.SESSION: 0.0,
    CacheTier.SHORT: 5.0,
    CacheTier.MEDIUM: 30.0,
}


def classify_tool(
    tool: str, tiers: Optional[Mapping[str, CacheTier]] = None
) -> CacheTier:
    """Look up a tool's tier; unknown tools bypass the cache."""
    table = TOOL_TIERS if tiers is None else tiers
    return table.get(tool, CacheTier.BYPASS)


def _serialize_args(args: Optional[Mapping[str, Any]]) -> str:
    return json.dumps(
        dict(args or {}),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def cache_key(tool: str, args: Optional[Mapping[str, Any]]) -> str:
    """Build the lookup key; structurally equal arguments share a key."""
    return f"{tool}:{_serialize_args(args)}"


@dataclass
class CacheEntry:
    """A stored tool result.

    Attributes:
        data: The tool result, returned as-is on a hit
        expiry: Unix timestamp (seconds) after which the entry is stale;
            0 means it lives until invalidated
        tool: Tool name component of the key
        args_json: Serialized arguments component of the key
    """

    data: Any
    expiry: float
    tool: str
    args_json: str

    def is_live(self, now: float) -> bool:
        return self.expiry == 0 or self.expiry > now


@dataclass
class CacheStats:
    """Counters describing cache behaviour since creation or reset."""

    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    bypassed: int = 0
    failures: int = 0
    evictions: int = 0


class ResponseCache:
    """In-memory tool result cache with TTL tiers and request coalescing."""

    def __init__(
        self,
        *,
        tiers: Optional[Mapping[str, CacheTier]] = None,
        ttls: Optional[Mapping[CacheTier, float]] = None,
        max_entries: Optional[int] = None,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the cache.

        Args:
            tiers: Tool name to tier mapping (defaults to ``TOOL_TIERS``)
            ttls: Per-tier TTL overrides in seconds
            max_entries: Optional bound on stored entries (0 or None = unbounded)
            enabled: When False every tool is treated as bypass
            clock: Time source returning Unix seconds
        """
        self.tiers: Dict[str, CacheTier] = dict(TOOL_TIERS if tiers is None else tiers)
        self.ttls: Dict[CacheTier, float] = dict(DEFAULT_TIER_TTLS)
        if ttls:
            self.ttls.update(ttls)
        self.max_entries = max_entries or None
        self.enabled = enabled
        self._clock = clock

        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._inflight: Dict[str, concurrent.futures.Future] = {}
        self._lock = threading.Lock()
        self._generation = 0
        self._stats = CacheStats()

    def classify(self, tool: str) -> CacheTier:
        """Get the effective tier for a tool."""
        if not self.enabled:
            return CacheTier.BYPASS
        tier = classify_tool(tool, self.tiers)
        # A non-positive TTL on an expiring tier disables caching for it
        if tier in (CacheTier.SHORT, CacheTier.MEDIUM) and self.ttls.get(tier, 0.0) <= 0:
            return CacheTier.BYPASS
        return tier

    def _expiry_for(self, tier: CacheTier) -> float:
        if tier is CacheTier.SESSION:
            return 0.0
        return self._clock() + self.ttls[tier]

    async def get(
        self,
        tool: str,
        args: Optional[Mapping[str, Any]],
        execute: Callable[[], Awaitable[T]],
    ) -> T:
        """Return a cached result or run ``execute`` and cache its result.

        Concurrent calls with the same tool and arguments share a single
        ``execute`` call; every caller receives the same result or the same
        exception. Failures are never cached.

        Args:
            tool: Tool name, used for tier classification
            args: Tool arguments, used for the cache key
            execute: Zero-argument callable returning an awaitable result

        Returns:
            The tool result
        """
        tier = self.classify(tool)
        if tier is CacheTier.BYPASS:
            with self._lock:
                self._stats.bypassed += 1
            return await execute()

        args_json = _serialize_args(args)
        key = f"{tool}:{args_json}"

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if entry.is_live(self._clock()):
                    self._stats.hits += 1
                    logger.debug("Cache hit for %s", tool, extra={"cache_key": key})
                    return entry.data
                del self._entries[key]

            pending = self._inflight.get(key)
            if pending is None:
                pending = concurrent.futures.Future()
                self._inflight[key] = pending
                self._stats.misses += 1
                generation = self._generation
                owner = True
            else:
                self._stats.coalesced += 1
                owner = False

        if not owner:
            logger.debug(
                "Joining in-flight call for %s", tool, extra={"cache_key": key}
            )
            return await asyncio.shield(asyncio.wrap_future(pending))

        try:
            result = await execute()
        except asyncio.CancelledError:
            self._settle(key, pending)
            pending.cancel()
            raise
        except BaseException as exc:
            self._settle(key, pending)
            pending.set_exception(exc)
            raise

        self._settle(
            key,
            pending,
            entry=CacheEntry(
                data=result,
                expiry=self._expiry_for(tier),
                tool=tool,
                args_json=args_json,
            ),
            generation=generation,
        )
        pending.set_result(result)
        return result

    def _settle(
        self,
        key: str,
        pending: concurrent.futures.Future,
        *,
        entry: Optional[CacheEntry] = None,
        generation: Optional[int] = None,
    ) -> None:
        with self._lock:
            if self._inflight.get(key) is pending:
                del self._inflight[key]

            if entry is None:
                self._stats.failures += 1
                logger.debug("Remote call failed for %s, nothing cached", key)
                return

            if generation != self._generation:
                # Cache was cleared while the call was running.
                return

            self._entries[key] = entry
            self._entries.move_to_end(key)
            self._enforce_bound()

    def _enforce_bound(self) -> None:
        if self.max_entries is None or len(self._entries) <= self.max_entries:
            return

        now = self._clock()
        for key in [k for k, e in self._entries.items() if not e.is_live(now)]:
            del self._entries[key]
            self._stats.evictions += 1

        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            self._stats.evictions += 1

    def invalidate_tool(self, tool: str) -> int:
        """Drop every stored entry for ``tool``.

        In-flight calls are left alone and still populate the cache when
        they complete.

        Returns:
            Number of entries removed
        """
        with self._lock:
            keys = [k for k, e in self._entries.items() if e.tool == tool]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.debug("Invalidated %d entries for tool %s", len(keys), tool)
        return len(keys)

    def invalidate_path(self, path: str) -> int:
        """Drop every stored entry whose arguments mention ``path``.

        Returns:
            Number of entries removed
        """
        if not path:
            return 0

        escaped = json.dumps(path, ensure_ascii=False)[1:-1]
        with self._lock:
            keys = [
                k
                for k, e in self._entries.items()
                if path in e.args_json or escaped in e.args_json
            ]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.debug("Invalidated %d entries for path %s", len(keys), path)
        return len(keys)

    def clear(self) -> None:
        """Drop all entries and in-flight trackers.

        Calls already running still return to their callers but no longer
        populate the cache.
        """
        with self._lock:
            self._entries.clear()
            self._inflight.clear()
            self._generation += 1
        logger.debug("Response cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def inflight_count(self) -> int:
        with self._lock:
            return len(self._inflight)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache counters plus current entry and in-flight counts."""
        with self._lock:
            now = self._clock()
            live = sum(1 for e in self._entries.values() if e.is_live(now))
            return {
                **asdict(self._stats),
                "enabled": self.enabled,
                "total_entries": len(self._entries),
                "active_entries": live,
                "expired_entries": len(self._entries) - live,
                "inflight": len(self._inflight),
                "max_entries": self.max_entries,
            }

    def reset_stats(self) -> None:
        with self._lock:
            self._stats = CacheStats()

    @classmethod
    def from_config(cls, cache_config: Any) -> "ResponseCache":
        """Create a cache from a ``CacheConfig`` section."""
        tiers = dict(TOOL_TIERS)
        tiers.update(cache_config.tier_overrides)
        return cls(
            tiers=tiers,
            ttls={
                CacheTier.SHORT: cache_config.short_ttl,
                CacheTier.MEDIUM: cache_config.medium_ttl,
            },
            max_entries=cache_config.max_entries,
            enabled=cache_config.enabled,
        )
