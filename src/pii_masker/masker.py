"""Masker — the one-shot detection API.  Layered: patterns, then semantics.

Usage:
    from pii_masker import Masker, OpenAIExtractor

    masker = Masker(OpenAIExtractor())
    masker.quick_scan("mail a@b.com")          # pattern pass, synchronous
    await masker.scan("Bob's mail is a@b.com")  # semantic pass, with fallback

Both return a RangeSet.  ``scan`` is also what the reconciler runs once
when a stream finalizes, so the "is the extractor usable" decision and
its fallback live here and nowhere else.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field

from .errors import ExtractionUnavailable
from .extractor import DEFAULT_MODEL, Extractor, extract_within
from .merge import merge
from .patterns import name_pattern, scan_patterns
from .resolver import resolve_raw
from .types import Category, Range

logger = logging.getLogger(__name__)

MAX_EXTRACTOR_TIMEOUT_MS = 60_000

# Used only when the semantic extractor is unavailable.
DEFAULT_NAME_FALLBACK: frozenset[str] = frozenset({
    "Aral", "John Doe", "Jane Smith", "Michael Johnson", "Sarah Williams",
    "James", "John", "Robert", "Michael", "William", "David", "Richard",
    "Joseph", "Thomas", "Charles", "Mary", "Patricia", "Jennifer", "Linda",
    "Barbara", "Elizabeth", "Susan", "Jessica", "Sarah", "Karen",
    "Alice", "Bob", "Charlie", "Eve", "Frank", "Grace", "Henry", "Ivy",
    "Jack", "Kelly", "Liam", "Mia", "Noah", "Olivia", "Peter", "Quinn",
    "Rose", "Sam", "Tina", "Uma", "Victor", "Wendy", "Xander", "Yara", "Zane",
})


@dataclass
class MaskerConfig:
    """Configuration for the Masker and the reconcilers built on it."""
    pattern_scan_threshold: int = 50      # min new chars before a rescan
    extractor_timeout_ms: int = 10_000
    name_fallback_list: frozenset[str] = DEFAULT_NAME_FALLBACK
    extractor: str = "openai"             # "openai" | "presidio" | "none"
    model: str = DEFAULT_MODEL
    language: str = "en"
    score_threshold: float = 0.35         # presidio only
    final_policy: str = "replace"         # "replace" | "union"
    offset_encoding: str = "codepoint"    # "codepoint" | "utf-16"
    # Values that should NEVER be masked
    allow_list: set[str] = field(default_factory=set)
    skip_categories: set[Category] = field(default_factory=set)

    def __post_init__(self) -> None:
        if self.pattern_scan_threshold < 1:
            raise ValueError("pattern_scan_threshold must be >= 1")
        if self.extractor_timeout_ms <= 0:
            raise ValueError("extractor_timeout_ms must be > 0")
        if self.extractor_timeout_ms > MAX_EXTRACTOR_TIMEOUT_MS:
            logger.warning(
                "extractor_timeout_ms=%d above ceiling, clamping to %d",
                self.extractor_timeout_ms, MAX_EXTRACTOR_TIMEOUT_MS,
            )
            self.extractor_timeout_ms = MAX_EXTRACTOR_TIMEOUT_MS
        if self.final_policy not in ("replace", "union"):
            raise ValueError(f"unknown final_policy: {self.final_policy!r}")
        if self.offset_encoding not in ("codepoint", "utf-16"):
            raise ValueError(f"unknown offset_encoding: {self.offset_encoding!r}")

    @property
    def extractor_timeout_s(self) -> float:
        return self.extractor_timeout_ms / 1000


class Masker:
    """Layered PII detector.

    Pass 1: Fast regex patterns (emails, phones) — ``quick_scan``
    Pass 2: Semantic extractor + offset resolver — ``scan``
    Fallback: patterns widened with a fixed name vocabulary
    """

    def __init__(self, extractor: Extractor | None = None, config: MaskerConfig | None = None) -> None:
        self.extractor = extractor
        self.config = config or MaskerConfig()

    def quick_scan(self, text: str) -> list[Range]:
        """Pattern pass only."""
        return self._normalize(text, scan_patterns(text))

    def fallback_scan(self, text: str) -> list[Range]:
        """Widened pattern pass used when the extractor is unavailable."""
        pattern = name_pattern(self.config.name_fallback_list)
        extra = [(Category.NAME, pattern)] if pattern is not None else []
        return self._normalize(text, scan_patterns(text, extra))

    async def scan(self, text: str) -> list[Range]:
        """Semantic pass, degrading to ``fallback_scan`` on extractor failure.

        Errors raised by the fallback itself propagate.
        """
        if not isinstance(text, str) or not text.strip():
            return []
        if self.extractor is None:
            logger.info("no semantic extractor configured, using fallback pass")
            return self.fallback_scan(text)
        try:
            detections = await extract_within(self.extractor, text, self.config.extractor_timeout_s)
        except ExtractionUnavailable as e:
            logger.warning("semantic extraction unavailable, using fallback pass: %s", e)
            return self.fallback_scan(text)
        return self._normalize(text, resolve_raw(text, detections))

    def _normalize(self, text: str, ranges: list[Range]) -> list[Range]:
        """Drop allowed values and skipped categories, then merge.

        Filtering runs on raw ranges; a merged span's category is arbitrary.
        """
        if not self.config.allow_list and not self.config.skip_categories:
            return merge(ranges)
        kept = [
            r for r in ranges
            if r.category not in self.config.skip_categories
            and text[r.start:r.end] not in self.config.allow_list
        ]
        return merge(kept)
