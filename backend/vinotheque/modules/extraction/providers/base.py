"""Vinotheque ProviderAdapter: shared chunk loop, prompt and JSON parsing.

Subclasses implement one structured-output request per chunk; the base
class walks the chunks strictly in order and fuses the per-chunk records
into the provider's single answer.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from typing import Any

import structlog

from vinotheque.core.config import Settings
from vinotheque.modules.extraction.cost_tracker import CostTracker
from vinotheque.modules.extraction.errors import ProviderError
from vinotheque.modules.extraction.fusion import fuse_results
from vinotheque.modules.extraction.schemas import TextChunk

logger = structlog.get_logger()

SYSTEM_PROMPT = """You are an expert wine export analyst. You read technical sheets (fiches techniques) of wines and extract structured product data.

You will receive the text of one or more consecutive pages. Each page is introduced by its page number.

Return a single JSON object with these fields (null when the document does not state it):
{
  "productName": "Cuvée name as printed",
  "producer": "Estate / winery",
  "brand": "Commercial brand if different from producer",
  "appellation": "AOC / DOC / AVA",
  "region": "Bordeaux",
  "country": "France",
  "color": "red|white|rosé|sparkling|orange",
  "style": "dry, off-dry, sweet, brut, ...",
  "vintage": 2020,
  "grapes": [{"variety": "Merlot", "percent": 60}],
  "abv_percent": 13.5,
  "residualSugar_gL": 2.1,
  "acidity_gL": 3.4,
  "closure": "natural cork|screwcap|...",
  "volume_ml": 750,
  "sulfites": true,
  "organicCert": "AB, Ecocert, ... or null",
  "awards": ["Gold, Concours Général Agricole 2022"],
  "tastingNotes": "Short tasting note",
  "foodPairing": ["Lamb", "Hard cheeses"],
  "servingTemp_C": 16,
  "ageingPotential_years": 10,
  "exportNetPrice_EUR": 8.5,
  "availableVolume_cases": 1200,
  "packaging": "6 x 75cl carton",
  "allergenInfo": ["Contains sulfites"],
  "labelComplianceNotes": "Any mandatory label mention",
  "citations": {"productName": [1], "abv_percent": [2]}
}

Rules:
- Only extract what the text states; never guess
- Numbers must be plain numbers in the units named by the field (ml, g/L, °C, years, EUR)
- citations maps each field you filled to the page numbers where you read it
- Return JSON only, no prose"""


# ---------------------------------------------------------------------------
# Helper: strip markdown code fences from LLM output
# ---------------------------------------------------------------------------


def strip_code_fences(raw_text: str) -> str:
    """Strip markdown code fences (```json ... ```) from LLM response."""
    text = raw_text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def parse_json_object(raw_text: str | None) -> dict[str, Any]:
    """Parse a provider answer into a dict, or raise ProviderError."""
    if not raw_text:
        raise ProviderError("Provider returned an empty response")
    try:
        data = json.loads(strip_code_fences(raw_text))
    except json.JSONDecodeError as exc:
        raise ProviderError(f"Provider returned invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ProviderError("Provider returned JSON that is not an object")
    return data


def build_user_content(chunk: TextChunk, text: str | None = None) -> str:
    pages = (
        f"Page {chunk.page_start}"
        if chunk.page_start == chunk.page_end
        else f"Pages {chunk.page_start}-{chunk.page_end}"
    )
    return f"{pages}:\n\n{chunk.text if text is None else text}"


# ---------------------------------------------------------------------------
# Adapter contract
# ---------------------------------------------------------------------------


class ProviderAdapter(ABC):
    """Base class for all provider adapters."""

    name: str = "base"

    def __init__(
        self,
        config: Settings,
        cost_tracker: CostTracker | None = None,
        max_chars: int | None = None,
    ) -> None:
        self.config = config
        # Chunk budget this request was packed with
        self.max_chars = max_chars or config.chunk_size
        self.cost_tracker = cost_tracker or CostTracker()
        self._client: Any = None

    @property
    @abstractmethod
    def model(self) -> str:
        ...

    @classmethod
    @abstractmethod
    def has_credentials(cls, config: Settings) -> bool:
        """True when the configuration carries an API key for this vendor."""
        ...

    @abstractmethod
    async def _extract_chunk(self, chunk: TextChunk) -> dict[str, Any]:
        """Run one structured-output request for one chunk."""
        ...

    async def extract(self, chunks: list[TextChunk]) -> dict[str, Any]:
        """Extract every chunk in order and fuse the per-chunk records."""
        if not chunks:
            raise ProviderError(f"{self.name}: nothing to extract (no chunks)")

        results: list[dict[str, Any]] = []
        for chunk in chunks:
            results.append(await self._extract_chunk(chunk))

        logger.info(
            f"{self.name} extraction complete",
            model=self.model,
            chunks=len(chunks),
        )
        return fuse_results(results).model_dump()

    def usage(self) -> dict[str, Any] | None:
        return self.cost_tracker.usage()

    def _track(self, input_tokens: int, output_tokens: int, start: float) -> None:
        self.cost_tracker.record(
            self.name,
            self.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
