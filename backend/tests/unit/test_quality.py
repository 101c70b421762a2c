"""Unit tests for quality scoring and the acceptance gate."""

from __future__ import annotations

from datetime import date

import pytest

from vinotheque.modules.extraction.quality import (
    TRACKED_FIELDS,
    assess_acceptance,
    compute_quality,
    consistency,
    coverage,
)
from vinotheque.modules.extraction.schemas import Probe

TODAY = date(2024, 6, 1)

FULL_SPEC = {
    "productName": "Château X",
    "producer": "Domaine X",
    "brand": "X",
    "appellation": "Pauillac",
    "region": "Bordeaux",
    "country": "France",
    "color": "red",
    "style": "dry",
    "vintage": 2019,
    "grapes": [{"variety": "Cabernet Sauvignon", "percent": 70.0}],
    "abv_percent": 13.5,
    "residualSugar_gL": 1.2,
    "closure": "natural cork",
    "volume_ml": 750,
    "sulfites": True,
    "organicCert": "AB",
    "awards": ["Gold"],
    "tastingNotes": "Blackcurrant",
    "foodPairing": ["Lamb"],
    "servingTemp_C": 17,
    "ageingPotential_years": 15,
    "exportNetPrice_EUR": 12.5,
    "availableVolume_cases": 300,
    "packaging": "6x75cl",
    "allergenInfo": ["Contains sulfites"],
    "labelComplianceNotes": "Contains sulfites",
}


def test_tracked_fields_exclude_acidity() -> None:
    assert len(TRACKED_FIELDS) == 26
    assert "acidity_gL" not in TRACKED_FIELDS


def test_empty_spec_scores_zero() -> None:
    assert compute_quality({}, today=TODAY) == 0


def test_complete_spec_with_citations_scores_100() -> None:
    assert compute_quality(FULL_SPEC, {"productName": [1]}, today=TODAY) == 100


def test_complete_spec_without_citations_loses_evidence_weight() -> None:
    assert compute_quality(FULL_SPEC, today=TODAY) == 80


def test_citations_read_from_spec_when_not_passed() -> None:
    spec = {**FULL_SPEC, "citations": {"vintage": [2]}}
    assert compute_quality(spec, today=TODAY) == 100


def test_single_field_with_evidence() -> None:
    # 100 * (0.55 * 1/26 + 0.20) = 22.1
    assert compute_quality({"productName": "X"}, {"productName": [1]}, today=TODAY) == 22


def test_coverage_ignores_empty_values() -> None:
    spec = {"productName": " ", "awards": [], "grapes": None, "producer": "Y"}
    assert coverage(spec) == pytest.approx(1 / 26)


@pytest.mark.parametrize(
    ("spec", "expected"),
    [
        ({"abv_percent": 13, "vintage": 2020, "grapes": [{"variety": "Syrah"}]}, 1.0),
        ({"abv_percent": 4.5, "vintage": 2020, "grapes": [{"variety": "Syrah"}]}, 2 / 3),
        ({"abv_percent": 13, "vintage": 2026, "grapes": []}, 1 / 3),
        ({"abv_percent": 13, "vintage": 2025}, 2 / 3),
        ({"vintage": 1985}, 0.0),
        ({}, 0.0),
    ],
)
def test_consistency_checks(spec: dict, expected: float) -> None:
    assert consistency(spec, today=TODAY) == pytest.approx(expected)


def test_score_is_int_within_bounds() -> None:
    score = compute_quality({"productName": "X", "abv_percent": 300}, {"x": [1]}, today=TODAY)
    assert isinstance(score, int)
    assert 0 <= score <= 100


# ---------------------------------------------------------------------------
# Acceptance gate
# ---------------------------------------------------------------------------


def _ok(provider: str) -> Probe:
    return Probe(provider=provider, ok=True, data={})


def _failed(provider: str, code: str) -> Probe:
    return Probe(provider=provider, ok=False, error="x", code=code)


def test_default_threshold_with_several_providers() -> None:
    verdict = assess_acceptance({}, 25, [_ok("openai"), _ok("google")], [])
    assert verdict.threshold == 20
    assert verdict.min_fields == 3
    assert verdict.accepted


def test_single_provider_lowers_threshold() -> None:
    verdict = assess_acceptance({}, 16, [_ok("openai")], [])
    assert verdict.threshold == 15
    assert verdict.accepted


def test_quota_issues_relax_threshold_with_floor() -> None:
    verdict = assess_acceptance({}, 9, [_ok("google")], [_failed("openai", "rate_limited")])
    assert verdict.quota_issues
    assert verdict.threshold == 10
    assert verdict.min_fields == 2
    assert not verdict.accepted


def test_critical_field_rescues_low_score() -> None:
    spec = {"productName": "X", "region": "Loire", "vintage": 2020}
    verdict = assess_acceptance(spec, 5, [_ok("openai"), _ok("google")], [])
    assert verdict.accepted
    assert verdict.critical_fields == ["productName", "region"]
    assert verdict.filled_fields == 3


def test_rejected_without_critical_fields() -> None:
    spec = {"tastingNotes": "Nice", "vintage": 2020, "awards": ["Gold"]}
    verdict = assess_acceptance(spec, 5, [_ok("openai"), _ok("google")], [])
    assert not verdict.accepted
