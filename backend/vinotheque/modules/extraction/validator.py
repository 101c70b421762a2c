"""Advisory schema validation for normalized product records.

Validation never blocks the pipeline: on failure the first violation is
logged and the normalized record is passed through unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = structlog.get_logger()


class GrapeEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    variety: str = Field(..., min_length=1)
    percent: float | None = Field(None, ge=0, le=100)


class WineProductSpec(BaseModel):
    """Strict shape of a normalized wine technical sheet."""

    model_config = ConfigDict(extra="forbid")

    productName: str | None = None
    producer: str | None = None
    brand: str | None = None
    appellation: str | None = None
    region: str | None = None
    country: str | None = None
    color: Literal["red", "white", "rosé", "sparkling", "orange"] | None = None
    style: str | None = None
    vintage: int | None = Field(None, ge=1900, le=2100)
    grapes: list[GrapeEntry] | None = None
    abv_percent: float | None = Field(None, ge=0, le=100)
    residualSugar_gL: float | None = Field(None, ge=0, le=400)
    acidity_gL: float | None = Field(None, ge=0, le=20)
    closure: str | None = None
    volume_ml: int | None = Field(None, ge=0)
    sulfites: bool | None = None
    organicCert: str | None = None
    awards: list[str] | None = None
    tastingNotes: str | None = None
    foodPairing: list[str] | None = None
    servingTemp_C: int | None = Field(None, ge=0, le=30)
    ageingPotential_years: int | None = Field(None, ge=0, le=50)
    exportNetPrice_EUR: float | None = Field(None, ge=0)
    availableVolume_cases: int | None = Field(None, ge=0)
    packaging: str | None = None
    allergenInfo: list[str] | None = None
    labelComplianceNotes: str | None = None
    certifications: list[str] | None = None

    citations: dict[str, list[int]] = {}
    confidence: dict[str, float] = {}


@dataclass
class SpecValidation:
    valid: bool
    spec: dict[str, Any]
    errors: list[str] = field(default_factory=list)


def _format_error(error: dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
    return f"{location}: {error.get('msg', 'invalid value')}"


def validate_spec(spec: dict[str, Any]) -> SpecValidation:
    """Validate a normalized record; returns it unchanged if it fails."""
    try:
        model = WineProductSpec.model_validate(spec)
    except ValidationError as exc:
        errors = [_format_error(e) for e in exc.errors()]
        logger.warning(
            "Spec validation failed (advisory)",
            first_error=errors[0] if errors else None,
            error_count=len(errors),
        )
        return SpecValidation(valid=False, spec=spec, errors=errors)

    return SpecValidation(valid=True, spec=model.model_dump(exclude_unset=True))
