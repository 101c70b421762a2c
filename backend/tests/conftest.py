"""Shared test fixtures for the Vinotheque backend test suite."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from vinotheque.core.config import Settings
from vinotheque.main import app
from vinotheque.modules.extraction.providers.base import ProviderAdapter
from vinotheque.modules.extraction.schemas import TextChunk


@pytest.fixture
async def client() -> AsyncClient:
    """Async HTTP client that talks directly to the FastAPI ASGI app."""
    transport = ASGITransport(app=app)  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac  # type: ignore[misc]


@pytest.fixture
def test_settings() -> Settings:
    """Settings with every provider keyed and no .env file involved."""
    return Settings(
        _env_file=None,
        primary_provider="openai",
        provider_strategy="primary_first",
        run_secondaries_on_success=True,
        providers_enabled=[],
        openai_api_key="test-openai-key",
        anthropic_api_key="test-anthropic-key",
        google_ai_api_key="test-google-key",
        openai_model="gpt-4o-mini",
        anthropic_model="claude-3-5-haiku-20241022",
        google_model="gemini-2.0-flash",
        chunk_size=6000,
        chunk_min_chars=1500,
        extraction_min_text_chars=30,
    )


# ---------------------------------------------------------------------------
# Fake provider adapters (no network)
# ---------------------------------------------------------------------------


class FakeAdapter(ProviderAdapter):
    """Adapter whose answer, failure and latency are class attributes."""

    name = "fake"
    result: dict[str, Any] = {}
    error: Exception | None = None
    delay: float = 0.0
    credentialed: bool = True
    events: list[str] | None = None

    @property
    def model(self) -> str:
        return f"{self.name}-test"

    @classmethod
    def has_credentials(cls, config: Settings) -> bool:
        return cls.credentialed

    async def _extract_chunk(self, chunk: TextChunk) -> dict[str, Any]:
        if self.events is not None:
            self.events.append(f"{self.name}:start:{chunk.page_start}")
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.events is not None:
            self.events.append(f"{self.name}:end:{chunk.page_start}")
        if self.error is not None:
            raise self.error
        self.cost_tracker.record(self.name, self.model, input_tokens=100, output_tokens=20)
        return dict(self.result)


@pytest.fixture
def make_adapter() -> Callable[..., type[ProviderAdapter]]:
    """Build a FakeAdapter subclass for one provider name."""

    def _make(
        name: str,
        result: dict[str, Any] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
        credentialed: bool = True,
        events: list[str] | None = None,
    ) -> type[ProviderAdapter]:
        return type(
            f"Fake_{name}",
            (FakeAdapter,),
            {
                "name": name,
                "result": result or {},
                "error": error,
                "delay": delay,
                "credentialed": credentialed,
                "events": events,
            },
        )

    return _make
