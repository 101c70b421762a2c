"""Anthropic adapter (Messages API, JSON read from the text block)."""

from __future__ import annotations

import time
from typing import Any

from vinotheque.core.config import Settings
from vinotheque.modules.extraction.errors import ProviderError
from vinotheque.modules.extraction.providers.base import (
    SYSTEM_PROMPT,
    ProviderAdapter,
    build_user_content,
    parse_json_object,
)
from vinotheque.modules.extraction.schemas import TextChunk


class AnthropicAdapter(ProviderAdapter):
    name = "anthropic"

    @property
    def model(self) -> str:
        return self.config.anthropic_model

    @classmethod
    def has_credentials(cls, config: Settings) -> bool:
        return bool(config.anthropic_api_key)

    def _get_client(self) -> Any:
        if self._client is None:
            from anthropic import AsyncAnthropic

            self._client = AsyncAnthropic(
                api_key=self.config.anthropic_api_key,
                timeout=self.config.provider_timeout_seconds,
                max_retries=self.config.provider_max_retries,
            )
        return self._client

    async def _extract_chunk(self, chunk: TextChunk) -> dict[str, Any]:
        import anthropic

        client = self._get_client()
        start = time.monotonic()
        try:
            response = await client.messages.create(
                model=self.model,
                max_tokens=4096,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": build_user_content(chunk)}],
                temperature=self.config.llm_temperature,
            )
        except anthropic.APIStatusError as exc:
            raise ProviderError(exc.message, status=exc.status_code) from exc
        except anthropic.APIError as exc:
            raise ProviderError(str(exc) or exc.__class__.__name__) from exc

        usage = response.usage
        self._track(
            getattr(usage, "input_tokens", 0) or 0,
            getattr(usage, "output_tokens", 0) or 0,
            start,
        )
        content = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return parse_json_object(content)
