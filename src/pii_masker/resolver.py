"""Offset resolver — re-anchors extractor values onto the source text.

Extractors are good at spotting *what* is sensitive and bad at counting
characters, so they report values only.  Positions are recovered here by
literal search.  A value that does not occur verbatim (paraphrase,
normalization, hallucination) is a re-anchor miss: dropped, not an error.
"""

from __future__ import annotations
import logging
import re
from typing import Iterable

from .merge import merge
from .types import Category, Detection, Range

logger = logging.getLogger(__name__)


def unique_values(detections: Iterable[Detection]) -> dict[str, Category]:
    """Map each distinct value to a category.

    Values compare case-sensitively.  When the same value is reported
    under two categories the first one seen wins; the choice is arbitrary.
    """
    seen: dict[str, Category] = {}
    for d in detections:
        if d.value and d.value not in seen:
            seen[d.value] = d.category
    return seen


def resolve_raw(text: str, detections: Iterable[Detection]) -> list[Range]:
    """All literal occurrences of every unique value, unmerged."""
    if not isinstance(text, str) or not text:
        return []
    ranges: list[Range] = []
    for value, category in unique_values(detections).items():
        hits = [
            Range(m.start(), m.end(), category)
            for m in re.finditer(re.escape(value), text)
        ]
        if not hits:
            logger.debug("re-anchor miss: %s value of length %d not in text", category.value, len(value))
        ranges.extend(hits)
    return ranges


def resolve(text: str, detections: Iterable[Detection]) -> list[Range]:
    """Re-anchor detections and merge into a RangeSet."""
    return merge(resolve_raw(text, detections))
