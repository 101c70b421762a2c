from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "Vinotheque Extraction"
    debug: bool = False
    api_prefix: str = "/api/v1"

    # Provider scheduling (openai | anthropic | google)
    primary_provider: str = "openai"
    provider_strategy: str = "primary_first"  # primary_first | parallel
    run_secondaries_on_success: bool = True
    providers_enabled: list[str] = []  # empty = every provider with a key

    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    # Anthropic
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-haiku-20241022"

    # Google (Gemini)
    google_ai_api_key: str = ""
    google_model: str = "gemini-2.0-flash"

    # LLM call behaviour
    llm_temperature: float = 0.1
    provider_timeout_seconds: float = 120.0
    provider_max_retries: int = 2
    context_retry_chars: int = 4000  # OpenAI retry size after a context-length error

    # Chunking
    chunk_size: int = 6000
    chunk_min_chars: int = 1500

    # Input guard: documents below this many characters never reach a provider
    extraction_min_text_chars: int = 30

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
