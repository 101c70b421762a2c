"""OpenAI adapter (Chat Completions with JSON object output)."""

from __future__ import annotations

import time
from typing import Any

import structlog

from vinotheque.core.config import Settings
from vinotheque.modules.extraction.chunking import TAIL_MERGE_SLACK
from vinotheque.modules.extraction.errors import ProviderError
from vinotheque.modules.extraction.providers.base import (
    SYSTEM_PROMPT,
    ProviderAdapter,
    build_user_content,
    parse_json_object,
)
from vinotheque.modules.extraction.safe_call import classify_error
from vinotheque.modules.extraction.schemas import TextChunk

logger = structlog.get_logger()


class OpenAIAdapter(ProviderAdapter):
    name = "openai"

    @property
    def model(self) -> str:
        return self.config.openai_model

    @classmethod
    def has_credentials(cls, config: Settings) -> bool:
        return bool(config.openai_api_key)

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=self.config.openai_api_key,
                timeout=self.config.provider_timeout_seconds,
                max_retries=self.config.provider_max_retries,
            )
        return self._client

    @property
    def prompt_limit(self) -> int:
        """Largest chunk the chunker can pack under this request's budget."""
        return int(self.max_chars * TAIL_MERGE_SLACK)

    async def _extract_chunk(self, chunk: TextChunk) -> dict[str, Any]:
        text = chunk.text[: self.prompt_limit]
        try:
            return await self._complete(chunk, text)
        except ProviderError as exc:
            retry_chars = self.config.context_retry_chars
            too_long = (
                exc.status == 400
                and classify_error(exc.status, exc.message) == "context_length_exceeded"
            )
            if not too_long or len(text) <= retry_chars:
                raise
            logger.warning(
                "OpenAI context exceeded, retrying with truncated chunk",
                pages=f"{chunk.page_start}-{chunk.page_end}",
                chars=len(text),
                retry_chars=retry_chars,
            )
            return await self._complete(chunk, text[:retry_chars])

    async def _complete(self, chunk: TextChunk, text: str) -> dict[str, Any]:
        import openai

        client = self._get_client()
        start = time.monotonic()
        try:
            response = await client.chat.completions.create(
                model=self.model,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_content(chunk, text)},
                ],
                temperature=self.config.llm_temperature,
            )
        except openai.APIStatusError as exc:
            raise ProviderError(exc.message, status=exc.status_code) from exc
        except openai.APIError as exc:
            raise ProviderError(str(exc) or exc.__class__.__name__) from exc

        usage = response.usage
        self._track(
            getattr(usage, "prompt_tokens", 0) or 0,
            getattr(usage, "completion_tokens", 0) or 0,
            start,
        )
        content = response.choices[0].message.content if response.choices else None
        return parse_json_object(content)
