"""YAML/dict config loader for pii-masker.

Supports loading from a YAML file or a plain dict (for embedding
in a larger config, e.g. a chat server's settings file).  Keys may be
snake_case or the upper-case option names.

Example YAML:

    pii_masker:
      extractor: openai          # "openai", "presidio" or "none"
      model: gpt-4o-mini
      PATTERN_SCAN_THRESHOLD: 50
      EXTRACTOR_TIMEOUT_MS: 8000
      NAME_FALLBACK_LIST:
        - Alice
        - Bob
      final_policy: replace      # or "union"
      offset_encoding: utf-16
      skip_categories:
        - name
      allow_list:
        - support@example.com
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Any, Callable

from .extractor import DEFAULT_MODEL, Extractor, OpenAIExtractor
from .masker import DEFAULT_NAME_FALLBACK, Masker, MaskerConfig
from .presidio_layer import PresidioExtractor
from .reconciler import Reconciler
from .types import Category, Snapshot

# Upper-case option names → MaskerConfig fields
_ALIASES = {
    "PATTERN_SCAN_THRESHOLD": "pattern_scan_threshold",
    "EXTRACTOR_TIMEOUT_MS": "extractor_timeout_ms",
    "NAME_FALLBACK_LIST": "name_fallback_list",
}


def load_config(data: dict[str, Any] | None) -> dict[str, Any]:
    """Normalize a config dict (from YAML or inline)."""
    data = dict(data or {})
    # Support nested under "pii_masker" key or flat
    if "pii_masker" in data:
        data = dict(data["pii_masker"] or {})
    for upper, lower in _ALIASES.items():
        if upper in data:
            data[lower] = data.pop(upper)

    names = data.get("name_fallback_list")
    return {
        "pattern_scan_threshold": int(data.get("pattern_scan_threshold", 50)),
        "extractor_timeout_ms": int(data.get("extractor_timeout_ms", 10_000)),
        "name_fallback_list": frozenset(names) if names is not None else DEFAULT_NAME_FALLBACK,
        "extractor": data.get("extractor", "openai"),
        "model": data.get("model", DEFAULT_MODEL),
        "language": data.get("language", "en"),
        "score_threshold": float(data.get("score_threshold", 0.35)),
        "final_policy": data.get("final_policy", "replace"),
        "offset_encoding": data.get("offset_encoding", "codepoint"),
        "allow_list": set(data.get("allow_list", [])),
        "skip_categories": {Category(c) for c in data.get("skip_categories", [])},
    }


def load_from_yaml(path: str | Path) -> dict[str, Any]:
    """Load config from a YAML file."""
    import yaml
    with open(path) as f:
        return load_config(yaml.safe_load(f))


def load_from_env(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Read ``PII_MASKER_*`` variables (e.g. PII_MASKER_EXTRACTOR=none)."""
    environ = os.environ if environ is None else environ
    data: dict[str, Any] = {}
    for key in ("PATTERN_SCAN_THRESHOLD", "EXTRACTOR_TIMEOUT_MS", "EXTRACTOR",
                "MODEL", "LANGUAGE", "SCORE_THRESHOLD", "FINAL_POLICY", "OFFSET_ENCODING"):
        value = environ.get(f"PII_MASKER_{key}")
        if value:
            data[_ALIASES.get(key, key.lower())] = value
    for key in ("NAME_FALLBACK_LIST", "ALLOW_LIST", "SKIP_CATEGORIES"):
        value = environ.get(f"PII_MASKER_{key}")
        if value:
            data[_ALIASES.get(key, key.lower())] = [v.strip() for v in value.split(",") if v.strip()]
    return load_config(data)


def _normalized(config: dict[str, Any]) -> dict[str, Any]:
    return load_config(config) if "pattern_scan_threshold" not in config else config


def masker_config(config: dict[str, Any]) -> MaskerConfig:
    cfg = _normalized(config)
    return MaskerConfig(
        pattern_scan_threshold=cfg["pattern_scan_threshold"],
        extractor_timeout_ms=cfg["extractor_timeout_ms"],
        name_fallback_list=cfg["name_fallback_list"],
        extractor=cfg["extractor"],
        model=cfg["model"],
        language=cfg["language"],
        score_threshold=cfg["score_threshold"],
        final_policy=cfg["final_policy"],
        offset_encoding=cfg["offset_encoding"],
        allow_list=cfg["allow_list"],
        skip_categories=cfg["skip_categories"],
    )


def create_extractor(config: dict[str, Any]) -> Extractor | None:
    """Build the configured semantic extractor, or None for fallback-only."""
    cfg = _normalized(config)
    backend = cfg["extractor"]
    if backend == "openai":
        return OpenAIExtractor(cfg["model"])
    if backend == "presidio":
        return PresidioExtractor(language=cfg["language"], score_threshold=cfg["score_threshold"])
    if backend in ("none", "", None):
        return None
    raise ValueError(f"unknown extractor backend: {backend!r}")


def create_masker(config: dict[str, Any], extractor: Extractor | None = None) -> Masker:
    """Create a fully configured masker from a config dict."""
    cfg = _normalized(config)
    if extractor is None:
        extractor = create_extractor(cfg)
    return Masker(extractor, masker_config(cfg))


def create_reconciler(
    config: dict[str, Any],
    on_snapshot: Callable[[Snapshot], None] | None = None,
    *,
    masker: Masker | None = None,
) -> Reconciler:
    """One reconciler per streamed response; share the masker between them."""
    return Reconciler(masker or create_masker(config), on_snapshot=on_snapshot)
