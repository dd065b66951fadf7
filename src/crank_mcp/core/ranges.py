"""Half-open range helpers shared by the zone scanner and its consumers.

All ranges are ``(start, end)`` pairs with ``start`` inclusive and ``end``
exclusive, measured in string offsets.
"""

from typing import Iterable, List, Tuple

Range = Tuple[int, int]


def position_in_ranges(position: int, ranges: Iterable[Range]) -> bool:
    """Check if a character position falls within any range."""
    for start, end in ranges:
        if start <= position < end:
            return True
    return False


def range_overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Standard half-open overlap test; abutting ranges do not overlap."""
    return a_start < b_end and a_end > b_start


def any_range_overlaps(start: int, end: int, ranges: Iterable[Range]) -> bool:
    """Check if ``[start, end)`` overlaps any of the given ranges."""
    for r_start, r_end in ranges:
        if range_overlaps(start, end, r_start, r_end):
            return True
    return False


def mask_ranges(text: str, ranges: Iterable[Range], fill: str = " ") -> str:
    """Return a same-length copy of ``text`` with the given ranges blanked.

    Line breaks inside a masked range are preserved so line-anchored
    patterns keep working on the masked copy.

    Args:
        text: Source text.
        ranges: Ranges to blank. May overlap or be unsorted.
        fill: Single replacement character.

    Returns:
        Masked text with ``len(result) == len(text)``.
    """
    spans = merge_ranges(ranges)
    if not spans:
        return text

    parts: List[str] = []
    prev_end = 0
    for start, end in spans:
        start = max(start, 0)
        end = min(end, len(text))
        if start >= end:
            continue
        parts.append(text[prev_end:start])
        parts.append(
            "".join(ch if ch in "\r\n" else fill for ch in text[start:end])
        )
        prev_end = end
    parts.append(text[prev_end:])
    return "".join(parts)


def merge_ranges(ranges: Iterable[Range]) -> List[Range]:
    """Sort ranges and coalesce overlapping or touching ones.

    Empty ranges are dropped.
    """
    merged: List[Range] = []
    for start, end in sorted(r for r in ranges if r[0] < r[1]):
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged
