"""
Central configuration. Gemini credentials, model names, retailer and
workflow limits, all read from the environment or a .env file.
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

    # --- Gemini ---
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    text_model: str = Field(default="gemini-2.5-flash", alias="STYLIST_TEXT_MODEL")
    image_model: str = Field(default="gemini-2.5-flash-image", alias="STYLIST_IMAGE_MODEL")

    # --- Retailer (Recommendation Agent search target) ---
    retailer_name: str = Field(default="House of Fraser", alias="RETAILER_NAME")
    retailer_domain: str = Field(default="houseoffraser.co.uk", alias="RETAILER_DOMAIN")

    # --- Stylist calls ---
    agent_call_timeout: float = Field(default=60.0, alias="AGENT_CALL_TIMEOUT")
    visual_call_timeout: float = Field(default=120.0, alias="VISUAL_CALL_TIMEOUT")

    # --- Uploads ---
    default_image_mime_type: str = Field(default="image/jpeg", alias="DEFAULT_IMAGE_MIME_TYPE")
    max_upload_bytes: int = Field(default=20 * 1024 * 1024, alias="MAX_UPLOAD_BYTES")

    # --- Realtime ---
    redis_url: str = Field(default="", alias="REDIS_URL")
    redis_channel_prefix: str = Field(default="stylesense:session", alias="REDIS_CHANNEL_PREFIX")
    sse_keepalive_seconds: float = Field(default=15.0, alias="SSE_KEEPALIVE_SECONDS")
    sse_buffer_size: int = Field(default=256, alias="SSE_BUFFER_SIZE")

    # --- API ---
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")


@lru_cache
def get_settings() -> Settings:
    return Settings()
