"""Extraction error types and the provider failure summary."""

from __future__ import annotations

import re

from vinotheque.modules.extraction.schemas import ProviderFailureDetail


class ExtractionError(Exception):
    """Base class for extraction pipeline errors."""

    code = "EXTRACTION_ERROR"


class ProviderError(ExtractionError):
    """A provider call failed; ``status`` is the upstream HTTP status if known."""

    code = "PROVIDER_ERROR"

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class MisconfigurationError(ExtractionError):
    """Configuration is unusable; raised before any provider is called."""

    code = "MISCONFIGURATION"


class EmptyDocumentError(ExtractionError):
    """The document carries too little text to be worth extracting."""

    code = "EMPTY_DOCUMENT"


class AllProvidersFailedError(ExtractionError):
    """Every attempted provider failed."""

    code = "ALL_PROVIDERS_FAILED"

    def __init__(self, details: list[ProviderFailureDetail]) -> None:
        super().__init__(f"All {len(details)} provider(s) failed")
        self.details = details


# ---------------------------------------------------------------------------
# Human-readable summary
# ---------------------------------------------------------------------------

_PROVIDER_ORDER = ("openai", "anthropic", "google")
_MESSAGE_LIMIT = 140

_STATE_BY_CODE = {
    "rate_limited": "QUOTA",
    "billing_issue": "QUOTA",
    "unauthorized": "AUTH",
    "invalid_model": "MODEL",
}


def format_provider_failures(details: list[ProviderFailureDetail]) -> str:
    """Render one line per failed provider, known providers first.

    Example line: ``openai - QUOTA (429) [rate_limited]: You exceeded...``
    """
    def order(d: ProviderFailureDetail) -> int:
        try:
            return _PROVIDER_ORDER.index(d.provider)
        except ValueError:
            return len(_PROVIDER_ORDER)

    lines = []
    for detail in sorted(details, key=order):
        state = _STATE_BY_CODE.get(detail.code or "", "KO")
        status = f" ({detail.status})" if detail.status is not None else ""
        code = f" [{detail.code}]" if detail.code else ""
        message = re.sub(r"\s+", " ", detail.message or "").strip()
        if len(message) > _MESSAGE_LIMIT:
            message = message[: _MESSAGE_LIMIT - 1] + "…"
        line = f"{detail.provider} - {state}{status}{code}"
        if message:
            line += f": {message}"
        lines.append(line)
    return "\n".join(lines)
