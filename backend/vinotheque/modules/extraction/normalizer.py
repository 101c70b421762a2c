"""Vinotheque Normalizer: Post-processing of fused extraction output.

Fixes the shapes LLMs and label conventions produce before validation:
  1. Legacy / alternative key names renamed to canonical field names
  2. Unknown keys dropped (allow-list)
  3. Unit-suffixed numbers stripped ("75cl" -> 750 ml, "14,5%" -> 14.5)
  4. Yes/no words (English + French) turned into booleans
  5. Colour synonyms mapped onto red / white / rosé / sparkling / orange
  6. Grapes accepted as "Merlot 60%" strings or {variety, percent} objects
  7. Scalar strings for list fields wrapped into lists
  8. citations / confidence side maps re-validated

Pure and total: any input yields a dict, never an exception.
"""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from vinotheque.modules.extraction.schemas import (
    CANONICAL_FIELDS,
    INTEGER_FIELDS,
    NUMERIC_FIELDS,
    STRING_ARRAY_FIELDS,
)


# ---------------------------------------------------------------------------
# Field-name constants
# ---------------------------------------------------------------------------

ALLOWED_FIELDS = frozenset(CANONICAL_FIELDS) | {"certifications", "citations", "confidence"}

# List-valued fields whose scalar form is wrapped into a one-element list
LIST_FIELDS = STRING_ARRAY_FIELDS | {"certifications"}

# Alternative names seen in provider output -> canonical name
FIELD_ALIASES: dict[str, str] = {
    "name": "productName",
    "product_name": "productName",
    "wine_name": "productName",
    "winery": "producer",
    "estate": "producer",
    "colour": "color",
    "wine_color": "color",
    "alcohol": "abv_percent",
    "abv": "abv_percent",
    "alcohol_percentage": "abv_percent",
    "alcohol_percent": "abv_percent",
    "residual_sugar": "residualSugar_gL",
    "residualSugar": "residualSugar_gL",
    "acidity": "acidity_gL",
    "total_acidity": "acidity_gL",
    "volume": "volume_ml",
    "bottle_size": "volume_ml",
    "grape_varieties": "grapes",
    "varieties": "grapes",
    "cepages": "grapes",
    "tasting_notes": "tastingNotes",
    "food_pairing": "foodPairing",
    "food_pairings": "foodPairing",
    "serving_temperature": "servingTemp_C",
    "servingTemp": "servingTemp_C",
    "aging_potential": "ageingPotential_years",
    "ageing_potential": "ageingPotential_years",
    "organic_certification": "organicCert",
    "organic_cert": "organicCert",
    "export_price": "exportNetPrice_EUR",
    "price_eur": "exportNetPrice_EUR",
    "available_cases": "availableVolume_cases",
    "allergens": "allergenInfo",
    "allergen_info": "allergenInfo",
    "label_compliance_notes": "labelComplianceNotes",
}

_TRUE_WORDS = {"yes", "true", "oui", "contains", "contient", "présent", "present"}
_FALSE_WORDS = {"no", "false", "non", "sans", "absent"}

COLOR_SYNONYMS: dict[str, str] = {
    "red": "red",
    "rouge": "red",
    "tinto": "red",
    "white": "white",
    "blanc": "white",
    "rosé": "rosé",
    "rose": "rosé",
    "pink": "rosé",
    "sparkling": "sparkling",
    "effervescent": "sparkling",
    "champagne": "sparkling",
    "orange": "orange",
    "amber": "orange",
}

_NUMBER_RE = re.compile(r"-?\d+(?:[.,]\d+)*")
_COMMA_THOUSANDS_RE = re.compile(r"^-?[1-9]\d{0,2}(?:,\d{3})+$")
# "13°5" is French label shorthand for 13.5 % vol
_DEGREE_DECIMAL_RE = re.compile(r"(\d+)\s*°\s*(\d+)")
_VOLUME_UNIT_RE = re.compile(r"(ml|cl|dl|litres?|liters?|lt|l)\b", re.IGNORECASE)
_VOLUME_FACTORS = {"ml": 1, "cl": 10, "dl": 100}
_GRAPE_RE = re.compile(r"^(.+?)\s*(\d{1,3}(?:[.,]\d+)?)?\s*%?$")


# ---------------------------------------------------------------------------
# Scalar coercions
# ---------------------------------------------------------------------------


def to_number(value: Any) -> float | None:
    """Parse a number out of a value, tolerating units and decimal commas."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None

    text = value.strip()
    degree = _DEGREE_DECIMAL_RE.search(text)
    if degree:
        text = f"{degree.group(1)}.{degree.group(2)}"

    match = _NUMBER_RE.search(text)
    if not match:
        return None
    token = match.group(0)

    if _COMMA_THOUSANDS_RE.match(token):
        token = token.replace(",", "")
    elif "," in token and "." in token:
        # The right-most separator is the decimal one
        if token.rfind(",") > token.rfind("."):
            token = token.replace(".", "").replace(",", ".")
        else:
            token = token.replace(",", "")
    else:
        token = token.replace(",", ".")

    try:
        number = float(token)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def round_half_up(number: float) -> int:
    try:
        return int(Decimal(str(number)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return int(round(number))


def to_int(value: Any) -> int | None:
    number = to_number(value)
    return None if number is None else round_half_up(number)


def to_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


def to_volume_ml(value: Any) -> int | None:
    """Volume in millilitres; bare numbers are taken as millilitres."""
    number = to_number(value)
    if number is None:
        return None
    if isinstance(value, str):
        unit = _VOLUME_UNIT_RE.search(value.replace(" ", ""))
        if unit:
            factor = _VOLUME_FACTORS.get(unit.group(1).lower(), 1000)
            number *= factor
    return round_half_up(number)


def to_color(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return COLOR_SYNONYMS.get(value.strip().lower())


def flatten_text(value: Any) -> str | None:
    """Flatten dicts/lists (e.g. an appellation object) into one string."""
    if value is None:
        return None
    if isinstance(value, dict):
        parts = [flatten_text(v) for v in value.values()]
    elif isinstance(value, (list, tuple)):
        parts = [flatten_text(v) for v in value]
    else:
        text = str(value).strip()
        return text or None
    joined = ", ".join(p for p in parts if p)
    return joined or None


def to_string_list(value: Any, split: bool = False) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        items = re.split(r"[,;]", value) if split else [value]
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value if v is not None and not isinstance(v, (dict, list))]
    else:
        items = [str(value)]
    return [item.strip() for item in items if item.strip()]


# ---------------------------------------------------------------------------
# Grapes
# ---------------------------------------------------------------------------


def parse_grape(entry: Any) -> dict[str, Any] | None:
    """Turn "Merlot 60%" or {variety|name, percent} into {variety, percent}."""
    if isinstance(entry, str):
        match = _GRAPE_RE.match(entry.strip())
        if not match:
            return None
        variety = match.group(1).strip().rstrip(":-").strip()
        percent = to_number(match.group(2)) if match.group(2) else None
    elif isinstance(entry, dict):
        variety = str(entry.get("variety") or entry.get("name") or "").strip()
        percent = to_number(entry.get("percent"))
    else:
        return None
    if not variety:
        return None
    return {"variety": variety, "percent": percent}


def parse_grapes(value: Any) -> list[dict[str, Any]] | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = re.split(r"[,;]", value)
    elif isinstance(value, dict):
        value = [value]
    elif not isinstance(value, (list, tuple)):
        return None
    grapes = [parse_grape(entry) for entry in value]
    return [g for g in grapes if g is not None]


# ---------------------------------------------------------------------------
# Side maps
# ---------------------------------------------------------------------------


def _page_number(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def normalize_citations(value: Any) -> dict[str, list[int]]:
    if not isinstance(value, dict):
        return {}
    citations: dict[str, list[int]] = {}
    for field, pages in value.items():
        if not isinstance(pages, (list, tuple)):
            citations[str(field)] = []
            continue
        numbers = (_page_number(p) for p in pages)
        citations[str(field)] = [n for n in numbers if n is not None]
    return citations


def normalize_confidence(value: Any) -> dict[str, float]:
    if not isinstance(value, dict):
        return {}
    return {
        str(field): min(1.0, max(0.0, to_number(score) or 0.0))
        for field, score in value.items()
    }


# ---------------------------------------------------------------------------
# Core normalizer
# ---------------------------------------------------------------------------


def _rename_aliases(raw: dict) -> dict:
    renamed = {k: v for k, v in raw.items() if k in ALLOWED_FIELDS}
    for key, value in raw.items():
        target = FIELD_ALIASES.get(key)
        if target and target not in renamed:
            renamed[target] = value
    return renamed


def _normalize_field(field: str, value: Any) -> Any:
    if value is None:
        return None
    if field == "volume_ml":
        return to_volume_ml(value)
    if field in INTEGER_FIELDS:
        return to_int(value)
    if field in NUMERIC_FIELDS:
        return to_number(value)
    if field == "sulfites":
        return to_bool(value)
    if field == "color":
        return to_color(value)
    if field == "appellation":
        return flatten_text(value)
    if field == "grapes":
        return parse_grapes(value)
    if field in LIST_FIELDS:
        return to_string_list(value, split=field == "foodPairing")
    if field == "citations":
        return normalize_citations(value)
    if field == "confidence":
        return normalize_confidence(value)
    if isinstance(value, str):
        return value.strip() or None
    return value


def normalize_spec(raw: Any) -> dict[str, Any]:
    """Allow-list, rename and coerce a product record into canonical units."""
    if not isinstance(raw, dict):
        return {}
    renamed = _rename_aliases(raw)
    return {field: _normalize_field(field, value) for field, value in renamed.items()}
