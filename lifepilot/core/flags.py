"""
Central feature flags. One file controls every remote pipeline stage.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the stage uses its local fallback. Nothing crashes.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Pipeline ─────────────────────────────────────────────────────
    use_smart_pipeline: bool = Field(default=True, alias="FF_USE_SMART_PIPELINE")
    # ON  → Six-stage pipeline (intent → rewrite → compress → memory → reason → format).
    # OFF → Direct path: raw message + full context straight to the reasoning tier.

    # ── Remote stages ────────────────────────────────────────────────
    use_remote_classifier: bool = Field(default=True, alias="FF_USE_REMOTE_CLASSIFIER")
    # OFF → Keyword classifier only. No intent-tier calls.

    use_remote_rewriter: bool = Field(default=True, alias="FF_USE_REMOTE_REWRITER")
    # OFF → Template rewriting only.

    use_remote_compressor: bool = Field(default=True, alias="FF_USE_REMOTE_COMPRESSOR")
    # OFF → Compact bullet formatter only.

    use_remote_formatter: bool = Field(default=True, alias="FF_USE_REMOTE_FORMATTER")
    # OFF → Regex filler cleanup only.

    # ── Memory ───────────────────────────────────────────────────────
    extract_conversation_memories: bool = Field(
        default=True, alias="FF_EXTRACT_CONVERSATION_MEMORIES"
    )
    # ON  → Answered turns are kept as conversations memories, and preference-like
    #       user messages are appended to the user_preferences memory.

    clean_memories_on_startup: bool = Field(default=False, alias="FF_CLEAN_MEMORIES_ON_STARTUP")
    # ON  → Stale, low-relevance memories are purged once at startup.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
