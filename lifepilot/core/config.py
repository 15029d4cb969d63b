"""
Central configuration. All API keys, model tiers and limits in one place.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Environment ---
    env: str = Field(default="development", alias="ENV")
    log_level: str = Field(default="info", alias="LOG_LEVEL")
    debug: bool = Field(default=False, alias="DEBUG")

    # --- API ---
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")

    # --- Database ---
    database_url: str = Field(
        default="sqlite+aiosqlite:///./lifepilot.db",
        alias="DATABASE_URL",
    )

    # --- Completion service (Groq, OpenAI-compatible) ---
    groq_api_key: str = Field(default="", alias="GROQ_API_KEY")
    groq_base_url: str = Field(default="https://api.groq.com/openai/v1", alias="GROQ_BASE_URL")
    llm_max_retries: int = Field(default=0, alias="LLM_MAX_RETRIES")

    # --- Model tiers ---
    # Intent: high throughput, tiny replies.
    intent_model: str = Field(default="groq/compound", alias="GROQ_MODEL_INTENT")
    # Rewriter: small instant model.
    rewriter_model: str = Field(default="llama-3.1-8b-instant", alias="GROQ_MODEL_REWRITER")
    # Compressor: highest tokens-per-minute ceiling.
    compressor_model: str = Field(default="groq/compound-mini", alias="GROQ_MODEL_COMPRESSOR")
    # Reasoning: highest capacity, smallest TPM budget (6K).
    reasoning_model: str = Field(default="llama-3.3-70b-versatile", alias="GROQ_MODEL_REASONING")
    # Formatter: mid capacity summarizer.
    formatter_model: str = Field(default="allam-2-7b", alias="GROQ_MODEL_FORMATTER")

    # --- Pipeline limits ---
    context_max_chars: int = Field(default=8000, alias="CONTEXT_MAX_CHARS")
    reasoning_token_budget: int = Field(default=900, alias="REASONING_TOKEN_BUDGET")
    baseline_tokens: int = Field(default=3500, alias="PIPELINE_BASELINE_TOKENS")
    embedding_dimensions: int = Field(default=100, alias="MEMORY_EMBEDDING_DIMENSIONS")
    memory_cleanup_days: int = Field(default=90, alias="MEMORY_CLEANUP_DAYS")
    preference_cache_hours: int = Field(default=6, alias="PREFERENCE_CACHE_HOURS")
    apology_message: str = Field(
        default="Xin lỗi, hệ thống AI đang gặp sự cố. Vui lòng thử lại sau.",
        alias="APOLOGY_MESSAGE",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
