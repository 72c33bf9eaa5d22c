"""Pattern detector — fast regex rules for structured PII.

Runs on every partial buffer while a response streams, so it must stay
cheap and deterministic.  Only emails and phone numbers are matched here;
names need the semantic extractor, except in the widened fallback pass
which adds a fixed vocabulary of common first names.
"""

from __future__ import annotations
import re
from typing import Iterable

from .merge import merge
from .types import Category, Range

# Each rule: (category, compiled_regex).  Order does not matter — output is merged.
_PATTERNS: list[tuple[Category, re.Pattern]] = [
    # Anchored to the start of a local-part run so the scan stays linear.
    (Category.EMAIL, re.compile(
        r"(?<![A-Za-z0-9._%+\-])"
        r"[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}"
    )),

    # 3-3-4 digits, optional +CC and (AAA), separators space/dash/dot.
    # All separators optional, which also covers a bare 10-digit run.
    (Category.PHONE, re.compile(
        r"(?<![\d+])"
        r"(?:\+\d{1,3}[ .\-]?)?"
        r"(?:\(\d{3}\)|\d{3})[ .\-]?"
        r"\d{3}[ .\-]?\d{4}"
        r"(?!\d)"
    )),
]


def scan_patterns(
    text: str,
    extra: Iterable[tuple[Category, re.Pattern]] = (),
) -> list[Range]:
    """Run every rule against text.  Returns raw, possibly overlapping ranges."""
    if not isinstance(text, str) or not text.strip():
        return []
    ranges: list[Range] = []
    for category, pattern in [*_PATTERNS, *extra]:
        for m in pattern.finditer(text):
            if m.end() > m.start():
                ranges.append(Range(m.start(), m.end(), category))
    return ranges


def detect(text: str) -> list[Range]:
    """Pattern pass: emails and phones, merged into a RangeSet."""
    return merge(scan_patterns(text))


def name_pattern(names: Iterable[str]) -> re.Pattern | None:
    """Whole-word, case-insensitive alternation over a name vocabulary."""
    words = sorted({n.strip() for n in names if n and n.strip()}, key=len, reverse=True)
    if not words:
        return None
    return re.compile(r"\b(?:" + "|".join(re.escape(w) for w in words) + r")\b", re.IGNORECASE)


def detect_with_names(text: str, names: Iterable[str]) -> list[Range]:
    """Widened pattern pass used when the semantic extractor is unavailable."""
    pattern = name_pattern(names)
    extra = [(Category.NAME, pattern)] if pattern is not None else []
    return merge(scan_patterns(text, extra))
