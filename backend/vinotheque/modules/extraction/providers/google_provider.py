"""Google adapter (Gemini through google-genai, JSON mime type)."""

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


class GoogleAdapter(ProviderAdapter):
    name = "google"

    @property
    def model(self) -> str:
        return self.config.google_model

    @classmethod
    def has_credentials(cls, config: Settings) -> bool:
        return bool(config.google_ai_api_key)

    def _get_client(self) -> Any:
        if self._client is None:
            from google import genai
            from google.genai import types as genai_types

            self._client = genai.Client(
                api_key=self.config.google_ai_api_key,
                http_options=genai_types.HttpOptions(
                    timeout=int(self.config.provider_timeout_seconds * 1000),
                ),
            )
        return self._client

    async def _extract_chunk(self, chunk: TextChunk) -> dict[str, Any]:
        from google.genai import errors as genai_errors
        from google.genai import types as genai_types

        client = self._get_client()
        start = time.monotonic()
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=build_user_content(chunk),
                config=genai_types.GenerateContentConfig(
                    system_instruction=SYSTEM_PROMPT,
                    response_mime_type="application/json",
                    temperature=self.config.llm_temperature,
                ),
            )
        except genai_errors.APIError as exc:
            status = exc.code if isinstance(exc.code, int) else None
            raise ProviderError(exc.message or str(exc), status=status) from exc

        usage = response.usage_metadata
        self._track(
            getattr(usage, "prompt_token_count", 0) or 0,
            getattr(usage, "candidates_token_count", 0) or 0,
            start,
        )
        return parse_json_object(response.text)
