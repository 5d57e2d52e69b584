"""Configuration management for StudyTrack."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StudyTrackSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    min_session_minutes: int = Field(default=10, validation_alias="STUDYTRACK_MIN_SESSION_MINUTES")
    save_timeout_seconds: float = Field(
        default=10.0, validation_alias="STUDYTRACK_SAVE_TIMEOUT_SECONDS"
    )
    leaderboard_size: int = Field(default=10, validation_alias="STUDYTRACK_LEADERBOARD_SIZE")
    window_days: int = Field(default=7, validation_alias="STUDYTRACK_WINDOW_DAYS")
    daily_goal_minutes: int = Field(default=60, validation_alias="STUDYTRACK_DAILY_GOAL_MINUTES")
    default_session_minutes: int = Field(
        default=25, validation_alias="STUDYTRACK_DEFAULT_SESSION_MINUTES"
    )
    timezone: str = Field(default="UTC", validation_alias="STUDYTRACK_TIMEZONE")
    state_dir: Path = Field(
        default=Path("~/.local/share/studytrack"), validation_alias="STUDYTRACK_STATE_DIR"
    )
    chroma_persist_path: Path = Field(
        default=Path("./storage/chroma"), validation_alias="CHROMA_PERSIST_PATH"
    )
    history_limit: int = Field(default=200, validation_alias="STUDYTRACK_HISTORY_LIMIT")
    user_id: str | None = Field(default=None, validation_alias="STUDYTRACK_USER_ID")
    user_email: str | None = Field(default=None, validation_alias="STUDYTRACK_USER_EMAIL")
    record_backend: Literal["chroma", "memory"] = Field(
        default="chroma", validation_alias="STUDYTRACK_RECORD_BACKEND"
    )
    log_level: str = Field(default="INFO", validation_alias="STUDYTRACK_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "STUDYTRACK_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        name = value.strip() or "UTC"
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"STUDYTRACK_TIMEZONE '{value}' is not a known IANA timezone") from exc
        return name

    @field_validator("save_timeout_seconds")
    @classmethod
    def _validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("STUDYTRACK_SAVE_TIMEOUT_SECONDS must be > 0")
        return value

    @field_validator("min_session_minutes", "leaderboard_size", "window_days", "history_limit")
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("value must be >= 1")
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@lru_cache(maxsize=1)
def get_settings() -> StudyTrackSettings:
    """Return cached settings instance."""

    settings = StudyTrackSettings()
    settings.state_dir = settings.state_dir.expanduser().resolve()
    settings.chroma_persist_path = settings.chroma_persist_path.expanduser().resolve()
    return settings


__all__ = ["StudyTrackSettings", "get_settings"]
