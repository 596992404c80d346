"""Pydantic-based configuration helpers for the approval bridge."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Iterable, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class AppSettings(BaseModel):
    """Settings required to initialise the Slack bot and the Jira client."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    bot_token: str = Field(..., alias="SLACK_BOT_TOKEN")
    signing_secret: str | None = Field(None, alias="SLACK_SIGNING_SECRET")
    shared_secret: str | None = Field(None, alias="SHARED_SECRET")
    rate_limit_ms: int = Field(200, alias="RATE_LIMIT_MS")
    jira_base_url: str | None = Field(None, alias="JIRA_BASE_URL")
    jira_email: str | None = Field(None, alias="JIRA_EMAIL")
    jira_api_token: str | None = Field(None, alias="JIRA_API_TOKEN")
    jira_timeout_seconds: float = Field(10.0, alias="JIRA_TIMEOUT_SECONDS")
    approve_transition_id: str = Field("61", alias="APPROVE_TRANSITION_ID")
    reject_transition_id: str = Field("71", alias="REJECT_TRANSITION_ID")
    dedup_window_seconds: float = Field(0.0, alias="DEDUP_WINDOW_SECONDS")
    port: int = Field(3000, alias="PORT")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    @field_validator("bot_token")
    @classmethod
    def _require_token(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("SLACK_BOT_TOKEN must not be empty")
        return value

    @field_validator("signing_secret", "shared_secret", "jira_base_url", "jira_email", "jira_api_token")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        trimmed = value.strip()
        return trimmed or None

    @field_validator("jira_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str | None) -> str | None:
        return value.rstrip("/") if value else value

    @field_validator("rate_limit_ms", "dedup_window_seconds")
    @classmethod
    def _ensure_non_negative(cls, value):
        if value < 0:
            raise ValueError("Intervals must not be negative")
        return value

    @field_validator("jira_timeout_seconds")
    @classmethod
    def _ensure_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("JIRA_TIMEOUT_SECONDS must be greater than zero")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        value = value.strip().upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"LOG_LEVEL '{value}' is not a logging level")
        return value

    @property
    def rate_limit_seconds(self) -> float:
        return self.rate_limit_ms / 1000

    def transition_id_for(self, decision: str) -> str:
        """Return the Jira transition id configured for ``approve`` or ``reject``."""

        if decision == "approve":
            return self.approve_transition_id
        if decision == "reject":
            return self.reject_transition_id
        raise ValueError(f"Unknown decision '{decision}'")


def _format_missing(fields: Iterable[str]) -> str:
    """Return a human-friendly comma-separated list of missing env vars."""

    unique: List[str] = []
    for field in fields:
        if field not in unique:
            unique.append(field)
    return ", ".join(unique)


@lru_cache()
def get_settings() -> AppSettings:
    """Fetch and cache settings from environment variables."""

    try:
        return AppSettings.model_validate(dict(os.environ))
    except ValidationError as exc:
        missing = [str(error["loc"][0]) for error in exc.errors() if error["type"] == "missing"]
        if missing:
            message = (
                "Missing required environment variables: "
                f"{_format_missing(missing)}"
            )
        else:
            message = f"Invalid configuration: {exc}"
        raise RuntimeError(message) from exc
