"""Tests for the detection layers — patterns, merge, resolver, extractor, masker."""

import asyncio
import logging
import random
import time
import sys, os
from types import SimpleNamespace
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from pii_masker import (
    Category, Detection, ExtractionUnavailable, Masker, MaskerConfig, OpenAIExtractor,
    Range, Snapshot, detect, detect_with_names, merge, resolve,
)
from pii_masker.config import create_masker, load_config, load_from_env
from pii_masker.extractor import extract_within, parse_response
from pii_masker.merge import is_normalized
from pii_masker.resolver import resolve_raw, unique_values

E, P, N = Category.EMAIL, Category.PHONE, Category.NAME


class FakeExtractor:
    def __init__(self, items):
        self.items = items
        self.calls = 0

    async def extract(self, text):
        self.calls += 1
        return [Detection(v, Category(c)) for v, c in self.items]


class FailingExtractor:
    async def extract(self, text):
        raise ExtractionUnavailable("service down")


class SlowExtractor:
    async def extract(self, text):
        await asyncio.sleep(5)
        return []


def covered(ranges):
    return {i for r in ranges for i in range(r.start, r.end)}


# ── Pattern detector ─────────────────────────────────────────────────

def test_email_and_phone():
    text = "Contact me at a@b.com or 555-123-4567"
    ranges = detect(text)
    assert len(ranges) == 2
    assert ranges[0].category == E
    assert text[ranges[0].start:ranges[0].end] == "a@b.com"
    assert ranges[1].category == P
    assert text[ranges[1].start:ranges[1].end] == "555-123-4567"


@pytest.mark.parametrize("phone", [
    "(555) 123-4567",
    "+1 555.123.4567",
    "5551234567",
    "555 123 4567",
])
def test_phone_formats(phone):
    text = f"call {phone} today"
    ranges = detect(text)
    assert len(ranges) == 1
    assert text[ranges[0].start:ranges[0].end] == phone


def test_phone_not_inside_longer_digit_run():
    assert detect("order 123456789012345") == []


def test_empty_and_blank_text():
    assert detect("") == []
    assert detect("   \n\t") == []
    assert detect(None) == []


def test_clean_text_has_no_matches():
    assert detect("The weather is nice today in Melbourne") == []


def test_detect_is_linear_on_long_runs():
    # long tokens without "@" (hashes, base64) must not be rescanned per position
    start = time.perf_counter()
    detect("a" * 200_000)
    detect("x" * 100_000 + " mail a@b.com")
    assert time.perf_counter() - start < 1.0


def test_email_still_found_after_punctuation():
    text = "(alice.smith+tag@mail.example.org)"
    ranges = detect(text)
    assert [text[r.start:r.end] for r in ranges] == ["alice.smith+tag@mail.example.org"]


def test_detect_is_deterministic():
    text = "a@b.com, c@d.org and 555-123-4567 then (555) 987-6543"
    assert detect(text) == detect(text)


def test_detect_with_names_matches_whole_words_case_insensitively():
    text = "ping alice and Bobby, cc Bob"
    ranges = detect_with_names(text, {"Alice", "Bob"})
    assert [text[r.start:r.end] for r in ranges] == ["alice", "Bob"]
    assert all(r.category == N for r in ranges)


def test_detect_with_empty_vocabulary_is_plain_detect():
    text = "Alice at a@b.com"
    assert detect_with_names(text, []) == detect(text)


# ── Range merger ─────────────────────────────────────────────────────

def test_merge_overlapping():
    merged = merge([Range(0, 5, E), Range(3, 8, P)])
    assert [(r.start, r.end) for r in merged] == [(0, 8)]


def test_merge_adjacent():
    merged = merge([Range(4, 6, P), Range(0, 4, E)])
    assert merged == [Range(0, 6, E)]


def test_merge_keeps_gaps():
    ranges = [Range(0, 2, E), Range(3, 5, P)]
    assert merge(ranges) == ranges


def test_merge_contained_range():
    assert merge([Range(0, 10, N), Range(2, 4, E)]) == [Range(0, 10, N)]


def test_merge_does_not_mutate_input():
    a, b = Range(0, 5, E), Range(3, 8, P)
    merge([a, b])
    assert a == Range(0, 5, E)


def test_merge_properties_on_random_input():
    rng = random.Random(7)
    for _ in range(200):
        raw = []
        for _ in range(rng.randint(0, 12)):
            start = rng.randint(0, 60)
            raw.append(Range(start, start + rng.randint(1, 10), rng.choice([E, P, N])))
        once = merge(raw)
        assert is_normalized(once)
        assert merge(once) == once
        assert covered(once) == covered(raw)


def test_is_normalized_rejects_touching():
    assert not is_normalized([Range(0, 3, E), Range(3, 5, E)])
    assert is_normalized([])


# ── Offset resolver ──────────────────────────────────────────────────

def test_resolve_all_occurrences():
    text = "Email Bob at bob@x.com, cc Bob too"
    detections = [Detection("Bob", N), Detection("bob@x.com", E)]
    raw = resolve_raw(text, detections)
    assert len(raw) == 3
    for r in raw:
        assert text[r.start:r.end] == ("Bob" if r.category == N else "bob@x.com")
    assert [r.start for r in resolve(text, detections)] == [6, 13, 27]


def test_resolve_drops_missing_values():
    assert resolve("Bob is here", [Detection("Robert", N)]) == []


def test_resolve_miss_log_omits_value(caplog):
    with caplog.at_level(logging.DEBUG, logger="pii_masker.resolver"):
        resolve("Bob is here", [Detection("robert@secret.example", E)])
    assert "re-anchor miss" in caplog.text
    assert "robert@secret.example" not in caplog.text


def test_resolve_escapes_metacharacters():
    text = "call +1 (555) 123-4567 or 5551234567"
    ranges = resolve(text, [Detection("+1 (555) 123-4567", P)])
    assert len(ranges) == 1
    assert text[ranges[0].start:ranges[0].end] == "+1 (555) 123-4567"


def test_resolve_is_case_sensitive():
    assert resolve("alice and ALICE", [Detection("Alice", N)]) == []


def test_resolve_first_category_wins():
    assert unique_values([Detection("Jordan", N), Detection("Jordan", E)]) == {"Jordan": N}
    ranges = resolve("Jordan", [Detection("Jordan", N), Detection("Jordan", E)])
    assert ranges == [Range(0, 6, N)]


def test_resolve_nested_values_merge():
    text = "Mary Ann Smith called"
    ranges = resolve(text, [Detection("Mary Ann", N), Detection("Ann Smith", N)])
    assert [(r.start, r.end) for r in ranges] == [(0, 14)]


def test_resolve_non_overlapping_occurrences():
    raw = resolve_raw("aaaa", [Detection("aa", N)])
    assert [(r.start, r.end) for r in raw] == [(0, 2), (2, 4)]


def test_resolve_ignores_empty_values_and_text():
    assert resolve("hello", [Detection("", N)]) == []
    assert resolve("", [Detection("Bob", N)]) == []


# ── Extractor adapter ────────────────────────────────────────────────

def test_parse_response_valid():
    body = '{"items": [{"value": "Bob", "category": "name"}, {"value": "a@b.com", "category": "email"}]}'
    assert parse_response(body) == [Detection("Bob", N), Detection("a@b.com", E)]


@pytest.mark.parametrize("body", [
    None,
    "",
    "not json",
    '{"items": [{"value": "Bob", "category": "address"}]}',
    '{"things": []}',
])
def test_parse_response_fails_closed(body):
    with pytest.raises(ExtractionUnavailable):
        parse_response(body)


def _fake_openai_client(content=None, error=None):
    async def create(**kwargs):
        if error is not None:
            raise error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def test_openai_extractor_parses_structured_output():
    client = _fake_openai_client('{"items": [{"value": "Bob", "category": "name"}]}')
    extractor = OpenAIExtractor(client=client)
    assert asyncio.run(extractor.extract("Hi Bob")) == [Detection("Bob", N)]


def test_openai_extractor_wraps_transport_errors():
    extractor = OpenAIExtractor(client=_fake_openai_client(error=ConnectionError("reset")))
    with pytest.raises(ExtractionUnavailable):
        asyncio.run(extractor.extract("Hi Bob"))


def test_openai_extractor_skips_blank_text():
    extractor = OpenAIExtractor(client=_fake_openai_client(error=AssertionError("called")))
    assert asyncio.run(extractor.extract("  ")) == []


def test_extract_within_timeout():
    with pytest.raises(ExtractionUnavailable):
        asyncio.run(extract_within(SlowExtractor(), "text", 0.01))


# ── Masker ───────────────────────────────────────────────────────────

def test_masker_semantic_pass():
    text = "Bob wrote from bob@x.com"
    masker = Masker(FakeExtractor([("Bob", "name"), ("bob@x.com", "email")]))
    ranges = asyncio.run(masker.scan(text))
    assert [text[r.start:r.end] for r in ranges] == ["Bob", "bob@x.com"]


def test_masker_falls_back_on_failure():
    text = "Alice: a@b.com"
    ranges = asyncio.run(Masker(FailingExtractor()).scan(text))
    assert [text[r.start:r.end] for r in ranges] == ["Alice", "a@b.com"]


def test_masker_falls_back_on_timeout():
    masker = Masker(SlowExtractor(), MaskerConfig(extractor_timeout_ms=10))
    ranges = asyncio.run(masker.scan("Grace called"))
    assert ranges == [Range(0, 5, N)]


def test_masker_without_extractor_uses_fallback():
    masker = Masker(None, MaskerConfig(name_fallback_list=frozenset({"Zed"})))
    assert asyncio.run(masker.scan("Zed and Alice")) == [Range(0, 3, N)]


def test_masker_blank_text_skips_extractor():
    extractor = FakeExtractor([("Bob", "name")])
    assert asyncio.run(Masker(extractor).scan("   ")) == []
    assert extractor.calls == 0


def test_masker_allow_list_and_skip_categories():
    text = "Bob at support@x.com, 555-123-4567"
    config = MaskerConfig(allow_list={"support@x.com"}, skip_categories={P})
    masker = Masker(FakeExtractor([("Bob", "name"), ("support@x.com", "email")]), config)
    assert [text[r.start:r.end] for r in masker.quick_scan(text)] == []
    assert [text[r.start:r.end] for r in asyncio.run(masker.scan(text))] == ["Bob"]


def test_skip_category_does_not_drop_overlapping_email():
    masker = Masker(None, MaskerConfig(skip_categories={N}))
    text = "mail bob@x.com"
    assert masker.fallback_scan(text) == [Range(5, 14, E)]


def test_allow_listed_name_does_not_unmask_email():
    masker = Masker(None, MaskerConfig(allow_list={"bob"}))
    assert masker.fallback_scan("mail bob@x.com") == [Range(5, 14, E)]


def test_fallback_vocabulary_includes_full_names():
    text = "Aral met Jane Smith and Quinn"
    ranges = Masker(FailingExtractor()).fallback_scan(text)
    assert [text[r.start:r.end] for r in ranges] == ["Aral", "Jane Smith", "Quinn"]


def test_masker_config_validation():
    with pytest.raises(ValueError):
        MaskerConfig(pattern_scan_threshold=0)
    with pytest.raises(ValueError):
        MaskerConfig(final_policy="merge")
    assert MaskerConfig(extractor_timeout_ms=120_000).extractor_timeout_ms == 60_000


# ── Snapshot serialization ───────────────────────────────────────────

def test_snapshot_to_dict():
    snap = Snapshot((Range(1, 3, E),), 10, final=True)
    assert snap.to_dict() == {
        "ranges": [{"start": 1, "end": 3, "category": "email"}],
        "length": 10,
        "final": True,
    }


def test_snapshot_utf16_offsets():
    text = "\U0001F600 a@b.com"
    snap = Snapshot(tuple(detect(text)), len(text))
    out = snap.to_dict(text, offset_encoding="utf-16")
    assert out["ranges"] == [{"start": 3, "end": 10, "category": "email"}]
    assert out["length"] == 10


def test_snapshot_utf16_needs_text():
    with pytest.raises(ValueError):
        Snapshot().to_dict(offset_encoding="utf-16")


# ── Config ───────────────────────────────────────────────────────────

def test_load_config_nested_and_upper_case_keys():
    cfg = load_config({"pii_masker": {
        "PATTERN_SCAN_THRESHOLD": 30,
        "EXTRACTOR_TIMEOUT_MS": 2000,
        "NAME_FALLBACK_LIST": ["Zed"],
        "skip_categories": ["phone"],
    }})
    assert cfg["pattern_scan_threshold"] == 30
    assert cfg["extractor_timeout_ms"] == 2000
    assert cfg["name_fallback_list"] == frozenset({"Zed"})
    assert cfg["skip_categories"] == {P}
    assert cfg["extractor"] == "openai"


def test_load_from_env():
    cfg = load_from_env({
        "PII_MASKER_EXTRACTOR": "none",
        "PII_MASKER_PATTERN_SCAN_THRESHOLD": "40",
        "PII_MASKER_ALLOW_LIST": "a@b.com, c@d.com",
    })
    assert cfg["extractor"] == "none"
    assert cfg["pattern_scan_threshold"] == 40
    assert cfg["allow_list"] == {"a@b.com", "c@d.com"}


def test_create_masker_without_extractor():
    masker = create_masker({"extractor": "none", "final_policy": "union"})
    assert masker.extractor is None
    assert masker.config.final_policy == "union"


def test_create_masker_unknown_backend():
    with pytest.raises(ValueError):
        create_masker({"extractor": "telepathy"})
