"""Safe-call wrapper: run one provider call, never raise, classify failures.

Failure codes are diagnostics for operators and the failure summary;
nothing retries on them.
"""

from __future__ import annotations

import re
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from vinotheque.modules.extraction.schemas import Probe

logger = structlog.get_logger()

# ---------------------------------------------------------------------------
# Classification rules (first match wins)
# ---------------------------------------------------------------------------

_RATE_LIMIT_RE = re.compile(r"quota|rate.?limit|insufficient.*quota|exceeded.*quota", re.IGNORECASE)
_INVALID_MODEL_RE = re.compile(r"model.*not.*found|invalid.*model", re.IGNORECASE)
_CONTEXT_RE = re.compile(r"context|length|too\s+long", re.IGNORECASE)
_INVALID_REQUEST_RE = re.compile(r"response_format|tool_choice|tools|schema", re.IGNORECASE)
_BILLING_RE = re.compile(r"billing|payment|subscription", re.IGNORECASE)


def classify_error(status: int | None, message: str) -> str:
    """Map an HTTP status and error message to a failure code."""
    if status == 401:
        return "unauthorized"
    if status == 429 or _RATE_LIMIT_RE.search(message):
        return "rate_limited"
    if _INVALID_MODEL_RE.search(message):
        return "invalid_model"
    if status == 400 and _CONTEXT_RE.search(message):
        return "context_length_exceeded"
    if status == 400 and _INVALID_REQUEST_RE.search(message):
        return "invalid_request"
    if _BILLING_RE.search(message):
        return "billing_issue"
    return "unclassified"


def error_status(exc: BaseException) -> int | None:
    """Best-effort HTTP status from an SDK or ProviderError exception."""
    for attr in ("status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


# ---------------------------------------------------------------------------
# Wrapper
# ---------------------------------------------------------------------------


async def safe_call(
    fn: Callable[[], Awaitable[dict[str, Any]]],
    provider: str,
) -> Probe:
    """Await ``fn()`` and wrap the outcome in a Probe.

    Any ``Exception`` becomes a failed Probe; task cancellation still
    propagates to the caller.
    """
    start = time.monotonic()
    try:
        data = await fn()
    except Exception as exc:
        ms = int((time.monotonic() - start) * 1000)
        status = error_status(exc)
        message = str(exc) or exc.__class__.__name__
        code = classify_error(status, message)
        logger.warning(
            "Provider call failed",
            provider=provider,
            status=status,
            code=code,
            error=message,
            ms=ms,
        )
        return Probe(provider=provider, ok=False, error=message, status=status, code=code, ms=ms)

    ms = int((time.monotonic() - start) * 1000)
    logger.info("Provider call succeeded", provider=provider, ms=ms)
    return Probe(provider=provider, ok=True, data=data, ms=ms)
