"""Vinotheque Fusion Engine: consensus record from several provider guesses.

Combines N loosely-typed product records (one per provider, or one per
chunk inside a provider) into one FusedSpec with per-field confidence.

This module is PURELY PROGRAMMATIC, no LLM calls.

Merge strategy per field shape:
  - Numeric:       densest cluster within a tolerance window, the winner is
                   an observed value (never an average).
  - String arrays: ordered, de-duplicated union.
  - Grapes:        grouped by variety, blend percent averaged.
  - Everything else: majority vote on a canonical form.

Ties always go to the earliest input, so the output is a pure function of
the input order.
"""

from __future__ import annotations

import json
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import structlog

from vinotheque.modules.extraction.normalizer import parse_grapes, to_number, to_volume_ml
from vinotheque.modules.extraction.schemas import (
    CANONICAL_FIELDS,
    INTEGER_FIELDS,
    NUMERIC_FIELDS,
    STRING_ARRAY_FIELDS,
    FusedSpec,
    GrapeShare,
)

logger = structlog.get_logger()

# Agreement window for numeric values
ABV_TOLERANCE = 0.3
DEFAULT_TOLERANCE = 1.0

_EPSILON = 1e-9
_PAGE_RE = re.compile(r"^\s*(?:p(?:age)?\.?\s*)?(\d+)\s*$", re.IGNORECASE)


def fuse_results(specs: list[dict[str, Any]]) -> FusedSpec:
    """Merge provider records into one consensus record.

    Args:
        specs: Raw records in priority order (earliest wins ties).

    Returns:
        A FusedSpec with every canonical field, a confidence in [0, 1] per
        field and the union of all citations.
    """
    records = [s if isinstance(s, dict) else {} for s in specs]
    total = len(records)

    values: dict[str, Any] = {}
    confidence: dict[str, float] = {}

    for field in CANONICAL_FIELDS:
        candidates = [r.get(field) for r in records if not _is_empty(r.get(field))]

        if field in NUMERIC_FIELDS:
            value, conf = _fuse_numeric(field, candidates, total)
        elif field == "grapes":
            value, conf = _fuse_grapes(candidates, total)
        elif field in STRING_ARRAY_FIELDS:
            value, conf = _fuse_string_arrays(candidates, total)
        else:
            value, conf = _fuse_majority(candidates, total)

        values[field] = value
        confidence[field] = conf

    fused = FusedSpec(
        **values,
        citations=_merge_citations(records),
        confidence=confidence,
    )

    logger.debug(
        "Fusion: records merged",
        inputs=total,
        filled=sum(1 for f in CANONICAL_FIELDS if values[f] is not None),
    )
    return fused


# ---------------------------------------------------------------------------
# Per-shape strategies
# ---------------------------------------------------------------------------


def _fuse_numeric(field: str, candidates: list[Any], total: int) -> tuple[Any, float]:
    parse = to_volume_ml if field == "volume_ml" else to_number
    numbers = [n for n in (parse(c) for c in candidates) if n is not None]
    if not numbers:
        return None, 0.0

    tolerance = ABV_TOLERANCE if field == "abv_percent" else DEFAULT_TOLERANCE

    best_value = numbers[0]
    best_support = 0
    for value in numbers:
        support = sum(1 for other in numbers if abs(other - value) <= tolerance + _EPSILON)
        if support > best_support:
            best_value, best_support = value, support

    if field in INTEGER_FIELDS and float(best_value).is_integer():
        best_value = int(best_value)
    return best_value, best_support / total


def _fuse_string_arrays(candidates: list[Any], total: int) -> tuple[list[str] | None, float]:
    merged: list[str] = []
    seen: set[str] = set()
    contributors = 0

    for candidate in candidates:
        items = [candidate] if isinstance(candidate, str) else candidate
        if not isinstance(items, (list, tuple)):
            items = [items]
        contributed = False
        for item in items:
            if item is None or isinstance(item, (dict, list)):
                continue
            text = str(item).strip()
            if not text:
                continue
            contributed = True
            key = _canonical_text(text)
            if key not in seen:
                seen.add(key)
                merged.append(text)
        if contributed:
            contributors += 1

    if not merged:
        return None, 0.0
    return merged, contributors / total


def _fuse_grapes(candidates: list[Any], total: int) -> tuple[list[GrapeShare] | None, float]:
    names: dict[str, str] = {}
    percents: dict[str, list[float]] = {}
    contributors = 0

    for candidate in candidates:
        grapes = parse_grapes(candidate) or []
        if not grapes:
            continue
        contributors += 1
        for grape in grapes:
            key = _canonical_text(grape["variety"])
            names.setdefault(key, grape["variety"])
            bucket = percents.setdefault(key, [])
            if grape["percent"] is not None:
                bucket.append(grape["percent"])

    if not names:
        return None, 0.0

    shares = [
        GrapeShare(variety=names[key], percent=_mean_1dp(percents[key]))
        for key in names
    ]
    return shares, contributors / total


def _fuse_majority(candidates: list[Any], total: int) -> tuple[Any, float]:
    counts: dict[str, int] = {}
    representative: dict[str, Any] = {}

    for candidate in candidates:
        key = _canonical_key(candidate)
        counts[key] = counts.get(key, 0) + 1
        representative.setdefault(key, candidate.strip() if isinstance(candidate, str) else candidate)

    if not counts:
        return None, 0.0

    # dicts keep insertion order, so the first key seen wins ties
    best_key = max(counts, key=lambda k: counts[k])
    return representative[best_key], counts[best_key] / total


# ---------------------------------------------------------------------------
# Citations
# ---------------------------------------------------------------------------


def _merge_citations(records: list[dict[str, Any]]) -> dict[str, list[int]]:
    merged: dict[str, set[int]] = {}
    for record in records:
        citations = record.get("citations")
        if not isinstance(citations, dict):
            continue
        for field, pages in citations.items():
            if not isinstance(pages, (list, tuple)):
                pages = [pages]
            for page in pages:
                number = _page_number(page)
                if number is not None:
                    merged.setdefault(str(field), set()).add(number)
    return {field: sorted(pages) for field, pages in merged.items()}


def _page_number(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        match = _PAGE_RE.match(value)
        if match:
            return int(match.group(1))
    return None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def _canonical_text(text: str) -> str:
    return re.sub(r"\s+", " ", text.strip().lower())


def _canonical_key(value: Any) -> str:
    if isinstance(value, str):
        return "s:" + _canonical_text(value)
    return "j:" + json.dumps(_canonical_shape(value), sort_keys=True, ensure_ascii=False, default=str)


def _canonical_shape(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _canonical_shape(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        items = [_canonical_shape(v) for v in value]
        if all(isinstance(i, str) for i in items):
            return sorted(items, key=str.lower)
        return items
    if isinstance(value, str):
        return _canonical_text(value)
    return value


def _mean_1dp(numbers: list[float]) -> float | None:
    if not numbers:
        return None
    mean = Decimal(str(sum(numbers) / len(numbers)))
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
