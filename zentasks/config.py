"""
Zen Tasks — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from zentasks/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # LLM — provider-agnostic (anthropic, openai, gemini, cohere)
    LLM_PROVIDER: str = "anthropic"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str

    # Calendar provider: "google" | "none"
    CALENDAR_PROVIDER: str = "google"
    GOOGLE_CALENDAR_ID: str = "primary"

    # Google OAuth — either a refresh token (server deployments)
    # or a token file produced by `python -m zentasks.integrations.google_auth`
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REFRESH_TOKEN: str = ""
    GOOGLE_CREDENTIALS_PATH: str = "credentials.json"
    GOOGLE_TOKEN_PATH: str = "token.json"

    # SQLite
    DATABASE_PATH: str = "data/zentasks.db"

    # Fallback timezone for users without one
    TIMEZONE: str = "UTC"

    # HTTP surface
    CRON_SECRET: str = ""
    CORS_ORIGINS: list[str] = []
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Nudge policy
    NUDGE_WINDOW_HOURS: int = 2
    NUDGE_MIN_SLOT_MINUTES: int = 15
    NUDGE_MAX_UNANSWERED: int = 2
    NUDGE_COOLDOWN_MINUTES: int = 60
    NUDGE_DEDUP_MINUTES: int = 10

    # Task agent
    CALENDAR_LOOKAHEAD_DAYS: int = 60
    SNOOZE_MAX_DAYS: int = 365

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return []

    @field_validator("DATABASE_PATH")
    @classmethod
    def require_file(cls, v: str) -> str:
        # Stores open a fresh connection per call; an in-memory DB would vanish
        if v == ":memory:":
            raise ValueError("DATABASE_PATH must be a file path, not :memory:")
        return v

    @field_validator(
        "PORT",
        "NUDGE_WINDOW_HOURS",
        "NUDGE_MIN_SLOT_MINUTES",
        "NUDGE_MAX_UNANSWERED",
        "NUDGE_COOLDOWN_MINUTES",
        "NUDGE_DEDUP_MINUTES",
        "CALENDAR_LOOKAHEAD_DAYS",
        "SNOOZE_MAX_DAYS",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    llm_api_key = os.getenv("LLM_API_KEY", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not llm_api_key or llm_api_key.startswith("your-"):
        print("ERROR: LLM_API_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    db_path = os.getenv("DATABASE_PATH", "data/zentasks.db")
    if db_path == ":memory:":
        print("ERROR: DATABASE_PATH must be a file path, not :memory:", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "anthropic"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        CALENDAR_PROVIDER=os.getenv("CALENDAR_PROVIDER", "google"),
        GOOGLE_CALENDAR_ID=os.getenv("GOOGLE_CALENDAR_ID", "primary"),
        GOOGLE_CLIENT_ID=os.getenv("GOOGLE_CLIENT_ID", ""),
        GOOGLE_CLIENT_SECRET=os.getenv("GOOGLE_CLIENT_SECRET", ""),
        GOOGLE_REFRESH_TOKEN=os.getenv("GOOGLE_REFRESH_TOKEN", ""),
        GOOGLE_CREDENTIALS_PATH=os.getenv("GOOGLE_CREDENTIALS_PATH", "credentials.json"),
        GOOGLE_TOKEN_PATH=os.getenv("GOOGLE_TOKEN_PATH", "token.json"),
        DATABASE_PATH=db_path,
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        CRON_SECRET=os.getenv("CRON_SECRET", ""),
        CORS_ORIGINS=os.getenv("CORS_ORIGINS", ""),
        HOST=os.getenv("HOST", "0.0.0.0"),
        PORT=os.getenv("PORT", "8000"),
        NUDGE_WINDOW_HOURS=os.getenv("NUDGE_WINDOW_HOURS", "2"),
        NUDGE_MIN_SLOT_MINUTES=os.getenv("NUDGE_MIN_SLOT_MINUTES", "15"),
        NUDGE_MAX_UNANSWERED=os.getenv("NUDGE_MAX_UNANSWERED", "2"),
        NUDGE_COOLDOWN_MINUTES=os.getenv("NUDGE_COOLDOWN_MINUTES", "60"),
        NUDGE_DEDUP_MINUTES=os.getenv("NUDGE_DEDUP_MINUTES", "10"),
        CALENDAR_LOOKAHEAD_DAYS=os.getenv("CALENDAR_LOOKAHEAD_DAYS", "60"),
        SNOOZE_MAX_DAYS=os.getenv("SNOOZE_MAX_DAYS", "365"),
    )


# Singleton — imported by all other modules as:
#   from zentasks.config import settings
settings = _load_settings()
