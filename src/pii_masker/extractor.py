"""Semantic extractor adapter — asks a language model *which values* are PII.

The model is told to return verbatim substrings and nothing else; it is
never asked for offsets.  Positions are recovered by ``resolver.resolve``.

Any failure at this boundary — transport, timeout, bad JSON, schema
mismatch — surfaces as ``ExtractionUnavailable`` so the caller can fall
back to the widened pattern pass.
"""

from __future__ import annotations
import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ValidationError

from .errors import ExtractionUnavailable
from .types import Category, Detection

if TYPE_CHECKING:
    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"


@runtime_checkable
class Extractor(Protocol):
    """Anything that can turn text into a list of (value, category) pairs."""

    async def extract(self, text: str) -> list[Detection]: ...


# ── Wire format ──────────────────────────────────────────────────────

class ExtractedItem(BaseModel):
    value: str
    category: Literal["email", "phone", "name"]


class ExtractionResponse(BaseModel):
    items: list[ExtractedItem]


RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "items": {
            "type": "array",
            "description": "Every email, phone number and personal name found",
            "items": {
                "type": "object",
                "properties": {
                    "value": {
                        "type": "string",
                        "description": "The exact text of the item, copied verbatim from the input",
                    },
                    "category": {
                        "type": "string",
                        "enum": ["email", "phone", "name"],
                    },
                },
                "required": ["value", "category"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["items"],
    "additionalProperties": False,
}

_SYSTEM_PROMPT = (
    "You find personally identifiable information in text. "
    "Report every email address, phone number and person's name. "
    "Copy each value EXACTLY as it appears in the text, character for character. "
    "Do not normalize, translate, complete or reformat values. "
    "Do not report anything else."
)


def parse_response(content: str | None) -> list[Detection]:
    """Validate a raw JSON body and convert it to detections."""
    if not content:
        raise ExtractionUnavailable("empty extractor response")
    try:
        parsed = ExtractionResponse.model_validate_json(content)
    except ValidationError as e:
        raise ExtractionUnavailable(f"extractor response failed validation: {e}") from e
    return [Detection(value=i.value, category=Category(i.category)) for i in parsed.items]


# ── OpenAI backend ───────────────────────────────────────────────────

class OpenAIExtractor:
    """Extractor backed by an OpenAI chat model with structured output."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        *,
        client: AsyncOpenAI | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self.model = model
        self._client = client
        self._api_key = api_key
        self._base_url = base_url

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)
        return self._client

    async def extract(self, text: str) -> list[Detection]:
        if not isinstance(text, str) or not text.strip():
            return []
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                temperature=0,
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": json.dumps({"text": text}, ensure_ascii=False)},
                ],
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "pii_items",
                        "strict": True,
                        "schema": RESPONSE_SCHEMA,
                    },
                },
            )
        except Exception as e:
            raise ExtractionUnavailable(f"extractor call failed: {e}") from e

        if not response.choices:
            raise ExtractionUnavailable("extractor returned no choices")
        detections = parse_response(response.choices[0].message.content)
        logger.debug("extractor %s returned %d items", self.model, len(detections))
        return detections


# ── Timeout wrapper ──────────────────────────────────────────────────

async def extract_within(extractor: Extractor, text: str, timeout_s: float) -> list[Detection]:
    """Run one extraction with a hard ceiling; every failure fails closed."""
    try:
        return await asyncio.wait_for(extractor.extract(text), timeout=timeout_s)
    except ExtractionUnavailable:
        raise
    except asyncio.TimeoutError as e:
        raise ExtractionUnavailable(f"extractor timed out after {timeout_s:.1f}s") from e
    except Exception as e:
        raise ExtractionUnavailable(f"extractor failed: {e!r}") from e
