"""Vinotheque Orchestrator: provider scheduling and aggregation.

Pure Python controller, no direct LLM calls. Routes one document through
the configured providers:

  primary_first (default):
    Chunk -> primary provider
      success + secondaries disabled  -> fuse primary only ("primary_only")
      otherwise                       -> remaining providers concurrently
    Aggregate -> fuse every success ("consensus")

  parallel:
    Chunk -> every provider concurrently -> aggregate -> fuse

A provider failure never cancels or blocks another provider; when nothing
succeeds the caller gets AllProvidersFailedError with one entry per attempt.
"""

from __future__ import annotations

import asyncio
import re

import structlog

from vinotheque.core.config import Settings, settings
from vinotheque.modules.extraction.chunking import chunk_by_pages
from vinotheque.modules.extraction.errors import AllProvidersFailedError, MisconfigurationError
from vinotheque.modules.extraction.fusion import fuse_results
from vinotheque.modules.extraction.providers.base import ProviderAdapter
from vinotheque.modules.extraction.providers.registry import PROVIDER_REGISTRY, get_adapter
from vinotheque.modules.extraction.safe_call import safe_call
from vinotheque.modules.extraction.schemas import (
    OrchestratorResult,
    PageBlock,
    Probe,
    ProviderFailureDetail,
    TextChunk,
)

logger = structlog.get_logger()

STRATEGIES = ("primary_first", "parallel")

# Values that are clearly API keys pasted into the wrong variable
_MODEL_LOOKS_LIKE_KEY = re.compile(r"^(sk-|AIza)")
_PROVIDER_LOOKS_LIKE_KEY = re.compile(r"^(sk-|AIza|ant-)")


# ---------------------------------------------------------------------------
# Configuration guards
# ---------------------------------------------------------------------------


def validate_provider_config(
    config: Settings,
    registry: dict[str, type[ProviderAdapter]],
) -> None:
    """Reject unusable configuration before any network call is made."""
    for var, value in (
        ("OPENAI_MODEL", config.openai_model),
        ("ANTHROPIC_MODEL", config.anthropic_model),
        ("GOOGLE_MODEL", config.google_model),
    ):
        if value and _MODEL_LOOKS_LIKE_KEY.match(value):
            raise MisconfigurationError(f"{var} looks like an API key, expected a model name")

    for name in config.providers_enabled:
        if _PROVIDER_LOOKS_LIKE_KEY.match(name):
            raise MisconfigurationError(
                "PROVIDERS_ENABLED contains an API key, expected provider names"
            )
        if name not in registry:
            logger.warning("Orchestrator: unknown provider in PROVIDERS_ENABLED", provider=name)

    if config.primary_provider not in registry:
        raise MisconfigurationError(f"Unknown PRIMARY_PROVIDER: {config.primary_provider}")

    if config.provider_strategy not in STRATEGIES:
        raise MisconfigurationError(
            f"Unknown PROVIDER_STRATEGY: {config.provider_strategy} (expected one of {STRATEGIES})"
        )


def provider_order(
    config: Settings,
    registry: dict[str, type[ProviderAdapter]],
) -> list[str]:
    """Primary first, then the other usable providers in registry order."""
    enabled = set(config.providers_enabled)

    def usable(name: str) -> bool:
        if enabled and name not in enabled:
            return False
        return registry[name].has_credentials(config)

    order = [name for name in registry if name != config.primary_provider and usable(name)]
    if usable(config.primary_provider):
        order.insert(0, config.primary_provider)
    else:
        logger.warning(
            "Orchestrator: primary provider unusable, skipping",
            provider=config.primary_provider,
        )
    return order


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


async def _run_provider(
    name: str,
    chunks: list[TextChunk],
    config: Settings,
    registry: dict[str, type[ProviderAdapter]],
    max_chars: int,
) -> Probe:
    adapter = get_adapter(name, config, registry, max_chars=max_chars)
    probe = await safe_call(lambda: adapter.extract(chunks), name)
    usage = adapter.usage()
    if usage is not None:
        probe = probe.model_copy(update={"usage": usage})
    return probe


def _failure_details(failures: list[Probe]) -> list[ProviderFailureDetail]:
    return [
        ProviderFailureDetail(
            provider=p.provider,
            status=p.status,
            code=p.code,
            message=p.error or "",
        )
        for p in failures
    ]


def _missing_key_details(
    config: Settings,
    registry: dict[str, type[ProviderAdapter]],
) -> list[ProviderFailureDetail]:
    enabled = set(config.providers_enabled)
    return [
        ProviderFailureDetail(
            provider=name,
            code="unauthorized",
            message=f"No API key configured for {name}",
        )
        for name in registry
        if not enabled or name in enabled
    ]


async def run_orchestrator(
    pages: list[PageBlock],
    max_chars_per_chunk: int | None = None,
    *,
    config: Settings | None = None,
    registry: dict[str, type[ProviderAdapter]] | None = None,
) -> OrchestratorResult:
    """Run the configured providers over the pages and fuse their answers.

    Raises:
        MisconfigurationError: before any provider call, on bad configuration.
        AllProvidersFailedError: when no attempted provider succeeded.
    """
    config = config or settings
    registry = PROVIDER_REGISTRY if registry is None else registry

    validate_provider_config(config, registry)
    order = provider_order(config, registry)
    if not order:
        details = _missing_key_details(config, registry)
        logger.error(
            "Orchestrator: no provider has an API key",
            providers=[d.provider for d in details],
        )
        raise AllProvidersFailedError(details)

    max_chars = max_chars_per_chunk or config.chunk_size
    chunks = chunk_by_pages(
        pages,
        max_chars=max_chars,
        min_chunk=config.chunk_min_chars,
    )
    logger.info(
        "Orchestrator: starting",
        providers=order,
        strategy=config.provider_strategy,
        pages=len(pages),
        chunks=len(chunks),
    )

    probes: list[Probe] = []
    remaining = order

    if config.provider_strategy == "primary_first":
        primary = await _run_provider(order[0], chunks, config, registry, max_chars)
        probes.append(primary)
        remaining = order[1:]

        if primary.ok and not config.run_secondaries_on_success:
            logger.info("Orchestrator: primary success, short-circuit", provider=primary.provider, ms=primary.ms)
            return OrchestratorResult(
                successes=[primary],
                failures=[],
                fused=fuse_results([primary.data or {}]),
                mode="primary_only",
            )

    if remaining:
        probes.extend(
            await asyncio.gather(
                *(_run_provider(name, chunks, config, registry, max_chars) for name in remaining)
            )
        )

    successes = [p for p in probes if p.ok]
    failures = [p for p in probes if not p.ok]

    if not successes:
        details = _failure_details(failures)
        logger.error(
            "Orchestrator: all providers failed",
            providers=[d.provider for d in details],
            codes=[d.code for d in details],
        )
        raise AllProvidersFailedError(details)

    logger.info(
        "Orchestrator: aggregated",
        successes=[p.provider for p in successes],
        failures=[p.provider for p in failures],
    )
    return OrchestratorResult(
        successes=successes,
        failures=failures,
        fused=fuse_results([p.data or {} for p in successes]),
        mode="consensus",
    )
