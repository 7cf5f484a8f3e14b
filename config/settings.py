"""Application settings loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # LLM: Provider selection
    llm_provider: str = ""  # "gemini" | "openai" | "anthropic" | "" (auto-detect from keys)

    # LLM: API keys (empty = not configured, keyword fallback / no summary)
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    gemini_api_key: str = ""

    # LLM: Model names
    gemini_model: str = "gemini-2.5-flash"
    openai_model: str = "gpt-4o-mini"
    claude_model: str = "claude-sonnet-4-20250514"

    # Corrections (comment -> category) persisted between runs
    corrections_path: str = "data/corrections.json"

    # Report
    default_client_name: str = "Cliente"
    min_group_size: int = 5
    min_trend_months: int = 3
    forecast_periods: int = 2
    motive_cards_limit: int = 12

    # Logging
    log_level: str = "INFO"


settings = Settings()
