"""Vinotheque Quality Scorer.

Turns a normalized product record into a single 0-100 score:

    score = 100 * (0.55 * coverage + 0.25 * consistency + 0.20 * evidence)

  - coverage:    share of the 26 tracked fields that carry a value
  - consistency: mean of three plausibility checks (abv, vintage, grapes)
  - evidence:    1 if any field cites a source page, else 0

Also hosts the adaptive acceptance gate used to flag low-quality extractions.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from vinotheque.modules.extraction.normalizer import round_half_up, to_number
from vinotheque.modules.extraction.schemas import CANONICAL_FIELDS, Acceptance, Probe

COVERAGE_WEIGHT = 0.55
CONSISTENCY_WEIGHT = 0.25
EVIDENCE_WEIGHT = 0.20

# acidity_gL is rarely printed on sheets and is left out of coverage
TRACKED_FIELDS: tuple[str, ...] = tuple(f for f in CANONICAL_FIELDS if f != "acidity_gL")

ABV_RANGE = (5.0, 75.0)
MIN_VINTAGE = 1990

CRITICAL_FIELDS = ("productName", "producer", "region", "country")

# Acceptance thresholds: (score threshold, minimum filled fields)
DEFAULT_THRESHOLD = (20, 3)
QUOTA_THRESHOLD = (12, 2)
SINGLE_PROVIDER_RELIEF = 5
THRESHOLD_FLOOR = 10

_QUOTA_CODES = {"rate_limited", "billing_issue"}


def _is_filled(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    return True


def coverage(spec: dict[str, Any]) -> float:
    filled = sum(1 for field in TRACKED_FIELDS if _is_filled(spec.get(field)))
    return filled / len(TRACKED_FIELDS)


def consistency(spec: dict[str, Any], today: date | None = None) -> float:
    """Mean of the abv, vintage and grapes checks; a missing value fails its check."""
    year = (today or date.today()).year

    abv = to_number(spec.get("abv_percent"))
    abv_ok = abv is not None and ABV_RANGE[0] <= abv <= ABV_RANGE[1]

    vintage = to_number(spec.get("vintage"))
    vintage_ok = vintage is not None and MIN_VINTAGE <= vintage <= year + 1

    grapes = spec.get("grapes")
    grapes_ok = isinstance(grapes, list) and len(grapes) > 0

    return (int(abv_ok) + int(vintage_ok) + int(grapes_ok)) / 3


def evidence(spec: dict[str, Any], citations: dict[str, Any] | None = None) -> float:
    source = citations if citations is not None else spec.get("citations")
    return 1.0 if isinstance(source, dict) and len(source) > 0 else 0.0


def compute_quality(
    spec: dict[str, Any],
    citations: dict[str, Any] | None = None,
    today: date | None = None,
) -> int:
    """Score a normalized record from 0 to 100 (round half up, clamped)."""
    raw = 100 * (
        COVERAGE_WEIGHT * coverage(spec)
        + CONSISTENCY_WEIGHT * consistency(spec, today)
        + EVIDENCE_WEIGHT * evidence(spec, citations)
    )
    return max(0, min(100, round_half_up(raw)))


# ---------------------------------------------------------------------------
# Acceptance gate
# ---------------------------------------------------------------------------


def assess_acceptance(
    spec: dict[str, Any],
    quality: int,
    successes: list[Probe],
    failures: list[Probe],
) -> Acceptance:
    """Decide whether an extraction is good enough to hand downstream.

    Thresholds relax when providers hit quota/billing limits, and again
    when only one provider answered. A record that fails the score bar is
    still accepted if it names at least one critical field and has enough
    fields filled overall.
    """
    quota_issues = any(f.code in _QUOTA_CODES for f in failures)
    threshold, min_fields = QUOTA_THRESHOLD if quota_issues else DEFAULT_THRESHOLD
    if len(successes) == 1:
        threshold = max(THRESHOLD_FLOOR, threshold - SINGLE_PROVIDER_RELIEF)

    filled = sum(1 for field in CANONICAL_FIELDS if _is_filled(spec.get(field)))
    critical = [field for field in CRITICAL_FIELDS if _is_filled(spec.get(field))]

    accepted = quality >= threshold or (len(critical) >= 1 and filled >= min_fields)
    return Acceptance(
        accepted=accepted,
        threshold=threshold,
        min_fields=min_fields,
        filled_fields=filled,
        critical_fields=critical,
        quota_issues=quota_issues,
    )
