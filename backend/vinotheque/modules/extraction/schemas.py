"""Vinotheque Extraction Engine: Pydantic schemas for wine technical sheets.

Request-scoped data only: pages in, probes and a fused product record out.
Nothing here is persisted or reused across requests.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Field catalogue
# ---------------------------------------------------------------------------

# Canonical product fields, in reporting order
CANONICAL_FIELDS: tuple[str, ...] = (
    "productName",
    "producer",
    "brand",
    "appellation",
    "region",
    "country",
    "color",
    "style",
    "vintage",
    "grapes",
    "abv_percent",
    "residualSugar_gL",
    "acidity_gL",
    "closure",
    "volume_ml",
    "sulfites",
    "organicCert",
    "awards",
    "tastingNotes",
    "foodPairing",
    "servingTemp_C",
    "ageingPotential_years",
    "exportNetPrice_EUR",
    "availableVolume_cases",
    "packaging",
    "allergenInfo",
    "labelComplianceNotes",
)

NUMERIC_FIELDS = frozenset({
    "vintage", "abv_percent", "residualSugar_gL", "acidity_gL", "volume_ml",
    "servingTemp_C", "ageingPotential_years", "exportNetPrice_EUR",
    "availableVolume_cases",
})

# Numeric fields that are whole numbers once normalized
INTEGER_FIELDS = frozenset({
    "vintage", "volume_ml", "servingTemp_C", "ageingPotential_years",
    "availableVolume_cases",
})

STRING_ARRAY_FIELDS = frozenset({"awards", "foodPairing", "allergenInfo"})

ProviderName = Literal["openai", "anthropic", "google"]
FusionMode = Literal["primary_only", "consensus"]


# ---------------------------------------------------------------------------
# Document input
# ---------------------------------------------------------------------------


class PageBlock(BaseModel):
    """Extracted text for a single document page."""

    model_config = ConfigDict(frozen=True)

    page: int = Field(..., ge=1)
    text: str = ""


class TextChunk(BaseModel):
    """Contiguous pages joined under a character budget."""

    model_config = ConfigDict(frozen=True)

    page_start: int
    page_end: int
    text: str


# ---------------------------------------------------------------------------
# Fused product record
# ---------------------------------------------------------------------------


class GrapeShare(BaseModel):
    """One grape variety with its blend share, if stated."""

    variety: str
    percent: float | None = None


class FusedSpec(BaseModel):
    """Consensus record built from one or more provider guesses.

    Every canonical field is always present (possibly null), and
    ``confidence`` carries exactly one entry per canonical field.
    """

    productName: Any = None
    producer: Any = None
    brand: Any = None
    appellation: Any = None
    region: Any = None
    country: Any = None
    color: Any = None
    style: Any = None
    vintage: int | float | None = None
    grapes: list[GrapeShare] | None = None
    abv_percent: int | float | None = None
    residualSugar_gL: int | float | None = None
    acidity_gL: int | float | None = None
    closure: Any = None
    volume_ml: int | float | None = None
    sulfites: Any = None
    organicCert: Any = None
    awards: list[str] | None = None
    tastingNotes: Any = None
    foodPairing: list[str] | None = None
    servingTemp_C: int | float | None = None
    ageingPotential_years: int | float | None = None
    exportNetPrice_EUR: int | float | None = None
    availableVolume_cases: int | float | None = None
    packaging: Any = None
    allergenInfo: list[str] | None = None
    labelComplianceNotes: Any = None

    citations: dict[str, list[int]] = {}
    confidence: dict[str, float] = {}


# ---------------------------------------------------------------------------
# Provider outcomes
# ---------------------------------------------------------------------------


class Probe(BaseModel):
    """Outcome of one attempted provider call."""

    model_config = ConfigDict(frozen=True)

    provider: str
    ok: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    status: int | None = None
    code: str | None = None
    ms: int = 0
    usage: dict[str, Any] | None = Field(
        None, description="Token counts and estimated USD cost for this attempt"
    )


class ProviderFailureDetail(BaseModel):
    """Per-provider entry reported when no provider succeeded."""

    provider: str
    status: int | None = None
    code: str | None = None
    message: str = ""


class OrchestratorResult(BaseModel):
    """Aggregated provider outcomes plus the fused record."""

    successes: list[Probe] = []
    failures: list[Probe] = []
    fused: FusedSpec
    mode: FusionMode


# ---------------------------------------------------------------------------
# Pipeline output
# ---------------------------------------------------------------------------


class Acceptance(BaseModel):
    """Adaptive quality gate verdict (advisory)."""

    accepted: bool
    threshold: int
    min_fields: int
    filled_fields: int
    critical_fields: list[str] = []
    quota_issues: bool = False


class ExtractionOutcome(BaseModel):
    """Everything downstream consumers need from one extraction."""

    spec: dict[str, Any]
    quality_score: int = Field(..., ge=0, le=100)
    mode: FusionMode
    providers: list[Probe] = []
    validation_errors: list[str] = []
    acceptance: Acceptance


# ---------------------------------------------------------------------------
# API request / response
# ---------------------------------------------------------------------------


class ExtractionRequest(BaseModel):
    """Body of POST /extraction/extract."""

    pages: list[PageBlock]
    max_chars_per_chunk: int | None = Field(None, gt=0)


class ExtractionResponse(BaseModel):
    """API response for a single extraction request."""

    success: bool
    data: dict[str, Any] | None = None
    quality_score: int | None = None
    mode: FusionMode | None = None
    providers: list[Probe] = []
    validation_errors: list[str] = []
    acceptance: Acceptance | None = None
    error: str | None = None
    details: list[ProviderFailureDetail] = []
    message: str | None = None
    processing_time_ms: int = 0
