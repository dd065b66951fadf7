"""
Protected zone detection for markdown documents.

A protected zone is a span of a document that automated rewriting (wikilink
insertion, frontmatter edits) must never touch: frontmatter, code, existing
links, URLs, math, HTML, comments, headers and callouts.

Scanning is a pure function of the input text. Every rule family runs over
the whole document and the results are concatenated and sorted by start
offset. Zones of different types may overlap; consumers should only ask
"is this position/range inside any zone" rather than assume disjoint
intervals.

Example:
    from crank_mcp.core.zones import (
        get_protected_zones, range_overlaps_protected_zone
    )

    zones = get_protected_zones(text)
    if not range_overlaps_protected_zone(start, end, zones):
        text = text[:start] + "[[" + text[start:end] + "]]" + text[end:]

Unterminated constructs:
    - frontmatter without a closing ``---`` line is not a zone
    - an unclosed code fence extends to the end of the document
    - an unclosed ``$$`` block is not a zone
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from crank_mcp.core.ranges import any_range_overlaps, mask_ranges, position_in_ranges

logger = logging.getLogger(__name__)

__all__ = [
    "ZoneType",
    "ProtectedZone",
    "find_frontmatter_end",
    "get_protected_zones",
    "is_in_protected_zone",
    "range_overlaps_protected_zone",
    "zones_of_type",
]


class ZoneType(str, Enum):
    """Kinds of protected spans.

    The scanner assigns no precedence between types; how each type is
    treated (e.g. headers block link insertion but stay searchable) is up
    to the consumer.
    """

    FRONTMATTER = "frontmatter"
    CODE_BLOCK = "code_block"
    INLINE_CODE = "inline_code"
    WIKILINK = "wikilink"
    MARKDOWN_LINK = "markdown_link"
    URL = "url"
    HASHTAG = "hashtag"
    HTML_TAG = "html_tag"
    OBSIDIAN_COMMENT = "obsidian_comment"
    MATH = "math"
    HEADER = "header"
    OBSIDIAN_CALLOUT = "obsidian_callout"


@dataclass(frozen=True)
class ProtectedZone:
    """A protected span ``[start, end)`` of a document snapshot.

    Attributes:
        start: Offset of the first protected character
        end: Offset one past the last protected character
        type: Rule family that produced the zone
    """

    start: int
    end: int
    type: ZoneType

    def __post_init__(self) -> None:
        if self.start < 0 or self.end <= self.start:
            raise ValueError(
                f"Invalid zone bounds: start={self.start}, end={self.end}"
            )

    @property
    def length(self) -> int:
        return self.end - self.start

    def contains(self, position: int) -> bool:
        """Check if a position lies inside the zone (end exclusive)."""
        return self.start <= position < self.end

    def overlaps(self, start: int, end: int) -> bool:
        """Check if ``[start, end)`` intersects the zone."""
        return start < self.end and end > self.start

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start, "end": self.end, "type": self.type.value}


# -----------------------------------------------------------------------------
# Patterns
# -----------------------------------------------------------------------------

_CODE_FENCE_RE = re.compile(r"```[\s\S]*?(?:```|\Z)")
_INLINE_CODE_RE = re.compile(r"`[^`]+`")
_WIKILINK_RE = re.compile(r"\[\[.+?\]\]")
_MARKDOWN_LINK_RE = re.compile(r"\[[^\[\]\n]*\]\([^)\n]*\)")
_URL_RE = re.compile(r"https?://\S+")
_HASHTAG_RE = re.compile(r"(?<![\w#])#[\w-]+")
_HTML_TAG_RE = re.compile(r"</?[A-Za-z][A-Za-z0-9-]*(?:\s[^<>]*)?/?>")
_COMMENT_RE = re.compile(r"%%[\s\S]*?%%")
_BLOCK_MATH_RE = re.compile(r"\$\$[\s\S]+?\$\$")
_INLINE_MATH_RE = re.compile(r"(?<!\$)\$(?!\$)[^$\n]+?\$(?!\$)")
_HEADER_RE = re.compile(r"^#{1,6} [^\n]*", re.MULTILINE)
_CALLOUT_RE = re.compile(r"^> *\[![^\]\n]+\][^\n]*(?:\n>[^\n]*)*", re.MULTILINE)


def find_frontmatter_end(content: str) -> int:
    """Find the offset just past a leading YAML frontmatter block.

    The document must open with a ``---`` line, and a later line must be
    exactly ``---`` (trailing whitespace allowed). The returned offset
    includes the closing line's newline, so ``content[end:]`` is the body.

    Args:
        content: Full document text

    Returns:
        Offset of the first body character, or 0 when there is no
        (closed) frontmatter
    """
    if not content.startswith("---"):
        return 0

    lines = content.split("\n")
    if len(lines) < 2 or lines[0].rstrip() != "---":
        return 0

    offset = len(lines[0]) + 1
    for line in lines[1:]:
        offset += len(line) + 1
        if line.rstrip() == "---":
            return min(offset, len(content))

    return 0


def _pattern_zones(
    pattern: "re.Pattern[str]", text: str, zone_type: ZoneType
) -> List[ProtectedZone]:
    return [
        ProtectedZone(m.start(), m.end(), zone_type)
        for m in pattern.finditer(text)
        if m.end() > m.start()
    ]


def _spans(zones: Iterable[ProtectedZone], *types: ZoneType) -> List[Tuple[int, int]]:
    return [(z.start, z.end) for z in zones if not types or z.type in types]


# -----------------------------------------------------------------------------
# Rules
#
# Each rule takes the raw text plus the zones found by earlier rules and
# returns its own zones. Rules that must skip spans already claimed by
# another rule mask those spans instead of post-filtering, so a match can
# never start outside a claimed span and end inside it.
# -----------------------------------------------------------------------------


def _frontmatter_rule(text: str, found: Sequence[ProtectedZone]) -> List[ProtectedZone]:
    end = find_frontmatter_end(text)
    if end <= 0:
        return []
    return [ProtectedZone(0, end, ZoneType.FRONTMATTER)]


def _code_block_rule(text: str, found: Sequence[ProtectedZone]) -> List[ProtectedZone]:
    return _pattern_zones(_CODE_FENCE_RE, text, ZoneType.CODE_BLOCK)


def _inline_code_rule(text: str, found: Sequence[ProtectedZone]) -> List[ProtectedZone]:
    masked = mask_ranges(text, _spans(found, ZoneType.CODE_BLOCK))
    return _pattern_zones(_INLINE_CODE_RE, masked, ZoneType.INLINE_CODE)


def _wikilink_rule(text: str, found: Sequence[ProtectedZone]) -> List[ProtectedZone]:
    return _pattern_zones(_WIKILINK_RE, text, ZoneType.WIKILINK)


def _markdown_link_rule(text: str, found: Sequence[ProtectedZone]) -> List[ProtectedZone]:
    return _pattern_zones(_MARKDOWN_LINK_RE, text, ZoneType.MARKDOWN_LINK)


def _url_rule(text: str, found: Sequence[ProtectedZone]) -> List[ProtectedZone]:
    links = _spans(found, ZoneType.MARKDOWN_LINK, ZoneType.WIKILINK)
    return [
        zone
        for zone in _pattern_zones(_URL_RE, text, ZoneType.URL)
        if not any_range_overlaps(zone.start, zone.end, links)
    ]


def _html_tag_rule(text: str, found: Sequence[ProtectedZone]) -> List[ProtectedZone]:
    return _pattern_zones(_HTML_TAG_RE, text, ZoneType.HTML_TAG)


def _comment_rule(text: str, found: Sequence[ProtectedZone]) -> List[ProtectedZone]:
    return _pattern_zones(_COMMENT_RE, text, ZoneType.OBSIDIAN_COMMENT)


def _math_rule(text: str, found: Sequence[ProtectedZone]) -> List[ProtectedZone]:
    blocks = _pattern_zones(_BLOCK_MATH_RE, text, ZoneType.MATH)
    masked = mask_ranges(text, _spans(blocks))
    return blocks + _pattern_zones(_INLINE_MATH_RE, masked, ZoneType.MATH)


def _header_rule(text: str, found: Sequence[ProtectedZone]) -> List[ProtectedZone]:
    return _pattern_zones(_HEADER_RE, text, ZoneType.HEADER)


def _callout_rule(text: str, found: Sequence[ProtectedZone]) -> List[ProtectedZone]:
    return _pattern_zones(_CALLOUT_RE, text, ZoneType.OBSIDIAN_CALLOUT)


def _hashtag_rule(text: str, found: Sequence[ProtectedZone]) -> List[ProtectedZone]:
    # Runs last: anything claimed by another rule (headers included) is masked.
    masked = mask_ranges(text, _spans(found))
    return _pattern_zones(_HASHTAG_RE, masked, ZoneType.HASHTAG)


_RULES: Tuple[
    Tuple[ZoneType, Callable[[str, Sequence[ProtectedZone]], List[ProtectedZone]]], ...
] = (
    (ZoneType.FRONTMATTER, _frontmatter_rule),
    (ZoneType.CODE_BLOCK, _code_block_rule),
    (ZoneType.INLINE_CODE, _inline_code_rule),
    (ZoneType.WIKILINK, _wikilink_rule),
    (ZoneType.MARKDOWN_LINK, _markdown_link_rule),
    (ZoneType.URL, _url_rule),
    (ZoneType.HTML_TAG, _html_tag_rule),
    (ZoneType.OBSIDIAN_COMMENT, _comment_rule),
    (ZoneType.MATH, _math_rule),
    (ZoneType.HEADER, _header_rule),
    (ZoneType.OBSIDIAN_CALLOUT, _callout_rule),
    (ZoneType.HASHTAG, _hashtag_rule),
)


def get_protected_zones(
    content: str,
    *,
    types: Optional[Iterable[str]] = None,
) -> Tuple[ProtectedZone, ...]:
    """Scan a document and return its protected zones.

    A rule that fails unexpectedly is logged and contributes no zones;
    scanning itself never raises on malformed markup.

    Args:
        content: Full document text
        types: Optional zone types to return (names or ``ZoneType``).
            All rules still run so dependent rules see the same input.

    Returns:
        Zones sorted ascending by start offset
    """
    if not content:
        return ()

    found: List[ProtectedZone] = []
    for zone_type, rule in _RULES:
        try:
            found.extend(rule(content, tuple(found)))
        except Exception:
            logger.warning(
                "Protected zone rule failed, %s zones not detected",
                zone_type.value,
                exc_info=True,
            )

    if types is not None:
        wanted = {ZoneType(t) for t in types}
        found = [zone for zone in found if zone.type in wanted]

    return tuple(sorted(found, key=lambda zone: zone.start))


def is_in_protected_zone(position: int, zones: Iterable[ProtectedZone]) -> bool:
    """Check if a position falls inside any zone (start inclusive, end exclusive)."""
    return position_in_ranges(position, _spans(zones))


def range_overlaps_protected_zone(
    range_start: int, range_end: int, zones: Iterable[ProtectedZone]
) -> bool:
    """Check if ``[range_start, range_end)`` intersects any zone.

    A range that merely abuts a zone (ends where it starts, or starts
    where it ends) does not overlap it.
    """
    return any_range_overlaps(range_start, range_end, _spans(zones))


def zones_of_type(
    zones: Iterable[ProtectedZone], zone_type: "ZoneType | str"
) -> List[ProtectedZone]:
    """Filter zones down to one type."""
    wanted = ZoneType(zone_type)
    return [zone for zone in zones if zone.type == wanted]
