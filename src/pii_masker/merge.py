"""Range merger — normalizes any list of ranges into a RangeSet.

Overlapping *and* touching ranges collapse into one span, so a consumer
never renders two adjacent masks as separate regions.  The category of a
merged span is whichever was accumulated first; it carries no meaning
after merging.
"""

from __future__ import annotations
from typing import Iterable

from .types import Range


def merge(ranges: Iterable[Range]) -> list[Range]:
    """Sort by (start, end) and coalesce in a single sweep."""
    merged: list[Range] = []
    for cand in sorted(ranges, key=lambda r: (r.start, r.end)):
        if merged and cand.start <= merged[-1].end:
            last = merged[-1]
            if cand.end > last.end:
                merged[-1] = Range(last.start, cand.end, last.category)
            continue
        merged.append(cand)
    return merged


def is_normalized(ranges: list[Range]) -> bool:
    """True if ranges are sorted, non-empty spans with gaps between them."""
    for r in ranges:
        if r.start < 0 or r.start >= r.end:
            return False
    return all(a.end < b.start for a, b in zip(ranges, ranges[1:]))
