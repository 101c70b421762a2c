"""Vinotheque Cost Tracker: Token counting & cost estimation per provider call.

Each provider adapter owns one tracker for the lifetime of a request, so
concurrent providers never write to shared state.

Usage:
    tracker = CostTracker()
    tracker.record("openai", "gpt-4o-mini", input_tokens=5000, output_tokens=800)
    probe_usage = tracker.usage()
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import structlog

logger = structlog.get_logger()

# ---------------------------------------------------------------------------
# Pricing per 1M tokens (USD): (input_per_1M, output_per_1M)
# ---------------------------------------------------------------------------

_PRICING: dict[str, tuple[float, float]] = {
    # OpenAI
    "gpt-4o": (2.50, 10.00),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4.1": (2.00, 8.00),
    "gpt-4.1-mini": (0.40, 1.60),
    "gpt-4.1-nano": (0.10, 0.40),
    # Anthropic
    "claude-3-5-haiku-20241022": (0.80, 4.00),
    "claude-haiku-4-5-20251001": (1.00, 5.00),
    "claude-sonnet-4-20250514": (3.00, 15.00),
    # Google
    "gemini-2.0-flash": (0.10, 0.40),
    "gemini-2.5-flash": (0.15, 0.60),
    "gemini-2.5-pro": (1.25, 10.00),
}

# Fallback pricing for unknown models (conservative estimate)
_FALLBACK_PRICING = (3.00, 15.00)


def _get_pricing(model: str) -> tuple[float, float]:
    """Look up pricing for a model, with fuzzy matching."""
    if model in _PRICING:
        return _PRICING[model]
    # Longest key first so "gpt-4o-mini-2024" matches gpt-4o-mini, not gpt-4o
    for key in sorted(_PRICING, key=len, reverse=True):
        if key in model:
            return _PRICING[key]
    logger.warning("Unknown model pricing, using fallback", model=model)
    return _FALLBACK_PRICING


@dataclass
class TokenRecord:
    """Token usage for a single provider request."""

    provider: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    duration_ms: int = 0
    timestamp: float = field(default_factory=time.time)

    def compute_cost(self) -> None:
        input_price, output_price = _get_pricing(self.model)
        self.cost_usd = (
            (self.input_tokens / 1_000_000) * input_price
            + (self.output_tokens / 1_000_000) * output_price
        )


class CostTracker:
    """Accumulates token usage for one provider within one extraction."""

    def __init__(self) -> None:
        self.records: list[TokenRecord] = []

    def record(
        self,
        provider: str,
        model: str,
        *,
        input_tokens: int = 0,
        output_tokens: int = 0,
        duration_ms: int = 0,
    ) -> TokenRecord:
        rec = TokenRecord(
            provider=provider,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_ms=duration_ms,
        )
        rec.compute_cost()
        self.records.append(rec)

        logger.info(
            "Cost tracked",
            provider=provider,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=f"${rec.cost_usd:.4f}",
        )
        return rec

    def usage(self) -> dict[str, Any] | None:
        """Totals across all recorded requests, or None if nothing was recorded."""
        if not self.records:
            return None
        input_tokens = sum(r.input_tokens for r in self.records)
        output_tokens = sum(r.output_tokens for r in self.records)
        return {
            "model": self.records[-1].model,
            "calls": len(self.records),
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
            "cost_usd": round(sum(r.cost_usd for r in self.records), 6),
            "duration_ms": sum(r.duration_ms for r in self.records),
        }
