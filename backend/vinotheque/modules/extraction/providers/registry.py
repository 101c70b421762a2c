"""Provider registry and factory."""

from __future__ import annotations

from vinotheque.core.config import Settings
from vinotheque.modules.extraction.cost_tracker import CostTracker
from vinotheque.modules.extraction.providers.anthropic_provider import AnthropicAdapter
from vinotheque.modules.extraction.providers.base import ProviderAdapter
from vinotheque.modules.extraction.providers.google_provider import GoogleAdapter
from vinotheque.modules.extraction.providers.openai_provider import OpenAIAdapter

# Fixed fallback order: secondaries are tried in this order after the primary
PROVIDER_REGISTRY: dict[str, type[ProviderAdapter]] = {
    "openai": OpenAIAdapter,
    "anthropic": AnthropicAdapter,
    "google": GoogleAdapter,
}


def get_adapter(
    name: str,
    config: Settings,
    registry: dict[str, type[ProviderAdapter]] | None = None,
    cost_tracker: CostTracker | None = None,
    max_chars: int | None = None,
) -> ProviderAdapter:
    """Factory: build a fresh adapter for one provider and one request."""
    registry = PROVIDER_REGISTRY if registry is None else registry
    try:
        cls = registry[name]
    except KeyError:
        raise ValueError(f"Unknown provider: {name}") from None
    return cls(config, cost_tracker=cost_tracker, max_chars=max_chars)
