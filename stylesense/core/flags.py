"""
Central feature flags. One file controls every optional external dependency.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the workflow skips that capability. Nothing crashes.
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

    # ── Cache / Realtime ─────────────────────────────────────────────
    use_redis: bool = Field(default=False, alias="FF_USE_REDIS")
    # ON  → Workflow events also go to Redis pub/sub. Needs REDIS_URL.
    # OFF → Events only reach in-process observers (SSE stream).

    # ── Web Search ───────────────────────────────────────────────────
    use_web_search: bool = Field(default=True, alias="FF_USE_WEB_SEARCH")
    # ON  → Recommendation Agent gets the Google Search tool (shopping links).
    # OFF → Recommendation text only, grounding links always empty.

    # ── Visual ───────────────────────────────────────────────────────
    enable_visual: bool = Field(default=True, alias="FF_ENABLE_VISUAL")
    # ON  → Mannequin rendering runs after the partial result is published.
    # OFF → Workflow completes with no visual.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
