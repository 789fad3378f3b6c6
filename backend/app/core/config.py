"""
config.py
=========
Central configuration for the backend.
Uses pydantic-settings to load from .env file.
"""

from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.services.content import TRUNCATION_MARKER


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # ── App ──────────────────────────────────────
    APP_NAME: str = "Gemini Code Review Gateway"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ── Server ───────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 10000
    ALLOWED_ORIGINS: List[str] = ["*"]

    # ── Upstream (Gemini REST) ────────────────────
    # Either GEMINI_API_KEY or GOOGLE_API_KEY may carry the key.
    # Without a key the gateway runs in mock mode unless FAIL_ON_MISSING_KEY.
    GEMINI_API_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    )
    GEMINI_MODEL: Optional[str] = None
    GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1"
    FAIL_ON_MISSING_KEY: bool = False
    REQUEST_TIMEOUT_SECONDS: float = 60.0

    # ── Generation parameters ─────────────────────
    TEMPERATURE: float = 0.0
    TOP_P: float = 0.1
    TOP_K: int = 1
    MAX_OUTPUT_TOKENS: int = 2048

    # ── Content limits ────────────────────────────
    MAX_CODE_LENGTH: int = 150_000     # Characters sent upstream per item
    TRUNCATION_HEAD_RATIO: float = Field(default=0.7, ge=0, le=1)
    ERROR_BODY_EXCERPT: int = 1000     # Characters of upstream error body kept

    # ── Uploads ───────────────────────────────────
    MAX_FILE_MB: float = 1
    MAX_FILES: int = 20
    MAX_CONCURRENT_REVIEWS: int = 4

    # ── Rate Limiting ─────────────────────────────
    RATE_LIMIT: str = "60/minute"  # Per IP

    @field_validator("MAX_CODE_LENGTH")
    @classmethod
    def room_for_marker(cls, v):
        # Truncated output must still carry the marker.
        if v <= len(TRUNCATION_MARKER):
            raise ValueError(f"MAX_CODE_LENGTH must exceed {len(TRUNCATION_MARKER)} characters")
        return v

    @property
    def mock_mode(self) -> bool:
        return not self.GEMINI_API_KEY and not self.FAIL_ON_MISSING_KEY


# Global settings instance
settings = Settings()
