import logging
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False
    )

    # --- Logging ---
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )

    # --- Redis ---
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis instance backing the translation queue.",
        validation_alias="REDIS_URL",
    )
    STORE_REDIS_URL: Optional[str] = Field(
        default=None,
        description="Redis instance backing the job records. Defaults to REDIS_URL.",
        validation_alias="STORE_REDIS_URL",
    )
    QUEUE_NAME: str = Field(default="translation_queue", validation_alias="QUEUE_NAME")
    STORE_KEY_PREFIX: str = Field(default="translation", validation_alias="STORE_KEY_PREFIX")

    # --- Retry policy ---
    MAX_ATTEMPTS: int = Field(default=3, ge=1, validation_alias="MAX_ATTEMPTS")
    RETRY_STRATEGY: Literal["fixed", "exponential"] = Field(
        default="exponential", validation_alias="RETRY_STRATEGY"
    )
    RETRY_BASE_DELAY: float = Field(default=2.0, ge=0, validation_alias="RETRY_BASE_DELAY")
    RETRY_MAX_DELAY: float = Field(default=60.0, ge=0, validation_alias="RETRY_MAX_DELAY")

    # --- Queue housekeeping (seconds) ---
    MESSAGE_TTL_SECONDS: int = Field(
        default=24 * 60 * 60, gt=0, validation_alias="MESSAGE_TTL_SECONDS"
    )
    VISIBILITY_TIMEOUT: int = Field(default=300, gt=0, validation_alias="VISIBILITY_TIMEOUT")
    STALE_CHECK_INTERVAL: float = Field(default=30.0, gt=0, validation_alias="STALE_CHECK_INTERVAL")
    STORE_RETRY_DELAY: float = Field(default=5.0, ge=0, validation_alias="STORE_RETRY_DELAY")
    POLL_INTERVAL: float = Field(default=0.1, gt=0, validation_alias="POLL_INTERVAL")
    ORPHAN_THRESHOLD: int = Field(default=60, ge=0, validation_alias="ORPHAN_THRESHOLD")

    # --- Requests ---
    MAX_TEXT_LENGTH: int = Field(default=5000, gt=0, validation_alias="MAX_TEXT_LENGTH")

    # --- Translator ---
    TRANSLATOR_BACKEND: Literal["dictionary", "http"] = Field(
        default="dictionary", validation_alias="TRANSLATOR_BACKEND"
    )
    TRANSLATOR_URL: str = Field(
        default="http://localhost:5000",
        description="Base URL of a LibreTranslate compatible API.",
        validation_alias="TRANSLATOR_URL",
    )
    TRANSLATOR_API_KEY: Optional[str] = Field(default=None, validation_alias="TRANSLATOR_API_KEY")
    TRANSLATOR_TIMEOUT: float = Field(default=30.0, gt=0, validation_alias="TRANSLATOR_TIMEOUT")
    SIMULATED_DELAY: float = Field(
        default=0.0,
        ge=0,
        description="Artificial latency added by the dictionary translator.",
        validation_alias="SIMULATED_DELAY",
    )

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _upper_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("STORE_REDIS_URL", mode="before")
    @classmethod
    def _empty_store_url(cls, v):
        return v or None

    @model_validator(mode="after")
    def _visibility_outlasts_translation(self) -> "Settings":
        # A lease must survive at least one full translate() call
        longest_run = self.TRANSLATOR_TIMEOUT + self.SIMULATED_DELAY
        if self.VISIBILITY_TIMEOUT <= longest_run:
            raise ValueError(
                f"VISIBILITY_TIMEOUT ({self.VISIBILITY_TIMEOUT}s) must be greater than "
                f"TRANSLATOR_TIMEOUT + SIMULATED_DELAY ({longest_run}s)"
            )
        return self

    @property
    def store_redis_url(self) -> str:
        return self.STORE_REDIS_URL or self.REDIS_URL


@lru_cache
def get_settings() -> Settings:
    return Settings()
