"""Local semantic extractor backed by Presidio NER.

An offline alternative to the OpenAI extractor.  Presidio does report
positions, but this adapter deliberately returns only values so both
backends flow through the same re-anchoring path in ``resolver``.
Uses spaCy under the hood; the engine is built lazily on first use.
"""

from __future__ import annotations
import asyncio
import logging
from typing import TYPE_CHECKING

from .errors import ExtractionUnavailable
from .types import Category, Detection

if TYPE_CHECKING:
    from presidio_analyzer import AnalyzerEngine

logger = logging.getLogger(__name__)

# Presidio entity → our category
ENTITY_MAP: dict[str, Category] = {
    "PERSON": Category.NAME,
    "EMAIL_ADDRESS": Category.EMAIL,
    "PHONE_NUMBER": Category.PHONE,
}


class PresidioExtractor:
    """Extractor that runs Presidio's AnalyzerEngine in a worker thread."""

    def __init__(self, *, language: str = "en", score_threshold: float = 0.35) -> None:
        self.language = language
        self.score_threshold = score_threshold
        self._engine: AnalyzerEngine | None = None

    def _get_engine(self) -> AnalyzerEngine:
        if self._engine is None:
            from presidio_analyzer import AnalyzerEngine
            from presidio_analyzer.nlp_engine import NlpEngineProvider

            provider = NlpEngineProvider(nlp_configuration={
                "nlp_engine_name": "spacy",
                "models": [{"lang_code": self.language, "model_name": f"{self.language}_core_web_sm"}],
            })
            self._engine = AnalyzerEngine(
                nlp_engine=provider.create_engine(),
                supported_languages=[self.language],
            )
        return self._engine

    def analyze(self, text: str) -> list[Detection]:
        """Synchronous analysis; returns values in order of appearance."""
        results = self._get_engine().analyze(
            text=text,
            language=self.language,
            entities=list(ENTITY_MAP),
            score_threshold=self.score_threshold,
        )
        return [
            Detection(value=text[r.start:r.end], category=ENTITY_MAP[r.entity_type])
            for r in sorted(results, key=lambda r: r.start)
            if r.entity_type in ENTITY_MAP and r.end > r.start
        ]

    async def extract(self, text: str) -> list[Detection]:
        if not isinstance(text, str) or not text.strip():
            return []
        try:
            return await asyncio.to_thread(self.analyze, text)
        except ImportError as e:
            raise ExtractionUnavailable("presidio-analyzer is not installed") from e
        except Exception as e:
            logger.debug("presidio analysis failed", exc_info=True)
            raise ExtractionUnavailable(f"presidio analysis failed: {e}") from e
