"""Core types."""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum


class Category(str, Enum):
    """PII categories the engine knows about."""
    EMAIL = "email"
    PHONE = "phone"
    NAME = "name"


@dataclass(frozen=True, slots=True)
class Range:
    """A masked character span, offsets relative to one text snapshot."""
    start: int
    end: int               # exclusive
    category: Category

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end, "category": self.category.value}


@dataclass(frozen=True, slots=True)
class Detection:
    """A value reported by a semantic extractor — no position."""
    value: str
    category: Category


@dataclass(frozen=True, slots=True)
class Snapshot:
    """One complete, normalized mask state for a text of ``length`` chars."""
    ranges: tuple[Range, ...] = field(default_factory=tuple)
    length: int = 0
    final: bool = False

    def to_dict(self, text: str | None = None, *, offset_encoding: str = "codepoint") -> dict:
        ranges = list(self.ranges)
        length = self.length
        if offset_encoding == "utf-16":
            if text is None:
                raise ValueError("utf-16 offsets need the source text")
            ranges = to_utf16(text, ranges)
            length = _utf16_len(text[:self.length])
        elif offset_encoding != "codepoint":
            raise ValueError(f"unknown offset encoding: {offset_encoding!r}")
        return {
            "ranges": [r.to_dict() for r in ranges],
            "length": length,
            "final": self.final,
        }


def _utf16_len(s: str) -> int:
    return sum(2 if ord(ch) > 0xFFFF else 1 for ch in s)


def to_utf16(text: str, ranges: list[Range]) -> list[Range]:
    """Convert code-point offsets to UTF-16 code-unit offsets."""
    if not ranges:
        return []
    # prefix[i] = utf-16 length of text[:i]
    prefix = [0]
    for ch in text:
        prefix.append(prefix[-1] + (2 if ord(ch) > 0xFFFF else 1))
    return [Range(prefix[r.start], prefix[r.end], r.category) for r in ranges]
