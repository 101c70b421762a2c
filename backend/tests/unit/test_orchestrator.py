"""Unit tests for provider scheduling, isolation and aggregation.

Providers are FakeAdapter subclasses injected through the registry, so
no network call is ever made.
"""

from __future__ import annotations

import pytest

from vinotheque.modules.extraction.errors import (
    AllProvidersFailedError,
    MisconfigurationError,
    ProviderError,
)
from vinotheque.modules.extraction.orchestrator import provider_order, run_orchestrator
from vinotheque.modules.extraction.schemas import PageBlock

PAGES = [
    PageBlock(page=1, text="Château X, Bordeaux rouge 2020. Alc. 13,5 % vol."),
    PageBlock(page=2, text="Cépages: Merlot 60 %, Cabernet Franc 40 %. 75 cl."),
]


# ---------------------------------------------------------------------------
# Ordering and configuration guards
# ---------------------------------------------------------------------------


def test_primary_goes_first_then_registry_order(test_settings, make_adapter) -> None:
    registry = {n: make_adapter(n) for n in ("openai", "anthropic", "google")}
    config = test_settings.model_copy(update={"primary_provider": "google"})
    assert provider_order(config, registry) == ["google", "openai", "anthropic"]


def test_providers_without_credentials_are_skipped(test_settings, make_adapter) -> None:
    registry = {
        "openai": make_adapter("openai", credentialed=False),
        "anthropic": make_adapter("anthropic"),
        "google": make_adapter("google"),
    }
    assert provider_order(test_settings, registry) == ["anthropic", "google"]


def test_enabled_list_filters_providers(test_settings, make_adapter) -> None:
    registry = {n: make_adapter(n) for n in ("openai", "anthropic", "google")}
    config = test_settings.model_copy(update={"providers_enabled": ["anthropic", "mistral"]})
    assert provider_order(config, registry) == ["anthropic"]


@pytest.mark.parametrize(
    "update",
    [
        {"openai_model": "sk-proj-abc123"},
        {"google_model": "AIzaSyD-xyz"},
        {"providers_enabled": ["openai", "ant-api03-secret"]},
        {"primary_provider": "mistral"},
        {"provider_strategy": "random"},
    ],
)
async def test_misconfiguration_raises_before_any_call(test_settings, make_adapter, update) -> None:
    events: list[str] = []
    registry = {n: make_adapter(n, events=events) for n in ("openai", "anthropic", "google")}
    config = test_settings.model_copy(update=update)

    with pytest.raises(MisconfigurationError):
        await run_orchestrator(PAGES, config=config, registry=registry)
    assert events == []


async def test_no_provider_with_a_key_reports_every_provider(test_settings, make_adapter) -> None:
    events: list[str] = []
    registry = {
        n: make_adapter(n, credentialed=False, events=events) for n in ("openai", "anthropic", "google")
    }

    with pytest.raises(AllProvidersFailedError) as info:
        await run_orchestrator(PAGES, config=test_settings, registry=registry)

    assert [d.provider for d in info.value.details] == ["openai", "anthropic", "google"]
    assert {d.code for d in info.value.details} == {"unauthorized"}
    assert events == []


async def test_missing_keys_respect_enabled_list(test_settings, make_adapter) -> None:
    registry = {n: make_adapter(n, credentialed=False) for n in ("openai", "anthropic", "google")}
    config = test_settings.model_copy(update={"providers_enabled": ["anthropic"]})

    with pytest.raises(AllProvidersFailedError) as info:
        await run_orchestrator(PAGES, config=config, registry=registry)

    assert [d.provider for d in info.value.details] == ["anthropic"]


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


async def test_short_circuit_on_primary_success(test_settings, make_adapter) -> None:
    events: list[str] = []
    registry = {
        "openai": make_adapter("openai", result={"productName": "Château X"}, events=events),
        "anthropic": make_adapter("anthropic", result={"productName": "Other"}, events=events),
        "google": make_adapter("google", result={"productName": "Other"}, events=events),
    }
    config = test_settings.model_copy(update={"run_secondaries_on_success": False})

    result = await run_orchestrator(PAGES, config=config, registry=registry)

    assert result.mode == "primary_only"
    assert [p.provider for p in result.successes] == ["openai"]
    assert result.failures == []
    assert result.fused.productName == "Château X"
    assert all(e.startswith("openai:") for e in events)


async def test_primary_failure_still_runs_secondaries(test_settings, make_adapter) -> None:
    registry = {
        "openai": make_adapter("openai", error=ProviderError("Incorrect API key", status=401)),
        "anthropic": make_adapter("anthropic", result={"productName": "Château X"}),
        "google": make_adapter("google", result={"productName": "Château X"}),
    }
    config = test_settings.model_copy(update={"run_secondaries_on_success": False})

    result = await run_orchestrator(PAGES, config=config, registry=registry)

    assert result.mode == "consensus"
    assert [p.provider for p in result.successes] == ["anthropic", "google"]
    assert [p.provider for p in result.failures] == ["openai"]
    assert result.failures[0].code == "unauthorized"


async def test_secondaries_run_concurrently(test_settings, make_adapter) -> None:
    events: list[str] = []
    registry = {
        n: make_adapter(n, result={"productName": "X"}, delay=0.05, events=events)
        for n in ("openai", "anthropic", "google")
    }

    await run_orchestrator(PAGES, config=test_settings, registry=registry)

    # Primary completes before the secondaries start; both secondaries start before either ends
    assert events[:2] == ["openai:start:1", "openai:end:1"]
    assert set(events[2:4]) == {"anthropic:start:1", "google:start:1"}
    assert set(events[4:]) == {"anthropic:end:1", "google:end:1"}


async def test_parallel_strategy_runs_everyone_at_once(test_settings, make_adapter) -> None:
    events: list[str] = []
    registry = {
        n: make_adapter(n, result={"vintage": 2020}, delay=0.05, events=events)
        for n in ("openai", "anthropic", "google")
    }
    config = test_settings.model_copy(update={"provider_strategy": "parallel"})

    result = await run_orchestrator(PAGES, config=config, registry=registry)

    assert result.mode == "consensus"
    assert len(result.successes) == 3
    assert all(e.split(":")[1] == "start" for e in events[:3])
    assert result.fused.vintage == 2020
    assert result.fused.confidence["vintage"] == 1.0


# ---------------------------------------------------------------------------
# Isolation and aggregation
# ---------------------------------------------------------------------------


async def test_one_failure_does_not_affect_others(test_settings, make_adapter) -> None:
    registry = {
        "openai": make_adapter("openai", error=RuntimeError("connection reset")),
        "anthropic": make_adapter("anthropic", result={"productName": "Château X"}),
        "google": make_adapter("google", credentialed=False),
    }

    result = await run_orchestrator(PAGES, config=test_settings, registry=registry)

    assert [p.provider for p in result.successes] == ["anthropic"]
    assert [p.provider for p in result.failures] == ["openai"]
    assert result.failures[0].code == "unclassified"
    assert result.fused.productName == "Château X"


async def test_all_failed_reports_every_provider(test_settings, make_adapter) -> None:
    registry = {
        "openai": make_adapter("openai", error=ProviderError("Incorrect API key", status=401)),
        "anthropic": make_adapter("anthropic", error=ProviderError("Too many requests", status=429)),
        "google": make_adapter("google", error=ProviderError("Internal error", status=500)),
    }

    with pytest.raises(AllProvidersFailedError) as info:
        await run_orchestrator(PAGES, config=test_settings, registry=registry)

    details = {d.provider: d for d in info.value.details}
    assert set(details) == {"openai", "anthropic", "google"}
    assert (details["openai"].status, details["openai"].code) == (401, "unauthorized")
    assert (details["anthropic"].status, details["anthropic"].code) == (429, "rate_limited")
    assert (details["google"].status, details["google"].code) == (500, "unclassified")
    assert details["google"].message == "Internal error"


async def test_results_are_fused_by_majority(test_settings, make_adapter) -> None:
    registry = {
        "openai": make_adapter("openai", result={"abv_percent": 14.0, "productName": "Château X 2020"}),
        "anthropic": make_adapter("anthropic", result={"abv_percent": 14.1, "productName": "Chateau X"}),
        "google": make_adapter("google", result={"abv_percent": 20.0, "productName": "Château X 2020"}),
    }

    result = await run_orchestrator(PAGES, config=test_settings, registry=registry)

    assert result.fused.abv_percent == pytest.approx(14.05, abs=0.3)
    assert result.fused.productName == "Château X 2020"
    assert result.fused.confidence["productName"] == pytest.approx(2 / 3)


async def test_usage_is_attached_per_provider(test_settings, make_adapter) -> None:
    registry = {
        "openai": make_adapter("openai", result={"productName": "X"}),
        "anthropic": make_adapter("anthropic", error=ProviderError("boom", status=500)),
        "google": make_adapter("google", credentialed=False),
    }

    result = await run_orchestrator(PAGES, config=test_settings, registry=registry)

    usage = result.successes[0].usage
    assert usage is not None
    assert usage["calls"] == 1
    assert usage["input_tokens"] == 100
    assert result.failures[0].usage is None


async def test_chunk_size_argument_overrides_config(test_settings, make_adapter) -> None:
    events: list[str] = []
    registry = {"openai": make_adapter("openai", result={"productName": "X"}, events=events)}
    config = test_settings.model_copy(update={"chunk_min_chars": 10})
    pages = [PageBlock(page=i, text="w" * 60) for i in range(1, 4)]

    await run_orchestrator(pages, 100, config=config, registry=registry)

    assert [e for e in events if ":start:" in e] == [
        "openai:start:1",
        "openai:start:2",
        "openai:start:3",
    ]


async def test_request_chunk_budget_reaches_adapters(test_settings, make_adapter) -> None:
    budgets: list[int] = []
    base = make_adapter("openai", result={"productName": "X"})

    class Recording(base):  # type: ignore[misc, valid-type]
        async def _extract_chunk(self, chunk):
            budgets.append(self.max_chars)
            return await super()._extract_chunk(chunk)

    await run_orchestrator(PAGES, 9000, config=test_settings, registry={"openai": Recording})

    assert budgets == [9000]
