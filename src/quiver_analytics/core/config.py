"""Application configuration for Quiver Analytics."""
from __future__ import annotations

from functools import lru_cache
import logging
from pathlib import Path
import sys

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger("quiver.config")

_DATA_DIR = Path.home() / ".quiver"


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="QUIVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    auth_token: str = Field(
        default="",
        validation_alias=AliasChoices("QUIVER_AUTH_TOKEN", "QUIVER_ANALYTICS_AUTH_TOKEN"),
        description="Token sent with every event. Collection is disabled while empty.",
    )
    consent_required: bool = Field(
        default=False,
        description="Require the player to approve data collection before any event is sent.",
    )
    config_file_path: Path = Field(
        default=_DATA_DIR / "analytics.json",
        description="File holding the player identifier and consent decisions.",
    )
    queue_file_path: Path = Field(
        default=_DATA_DIR / "analytics_queue.json",
        description="File storing events that could not be delivered before exit.",
    )
    auto_add_event_on_launch: bool = Field(default=True, description="Send a 'Launched game' event on start.")
    auto_add_event_on_quit: bool = Field(
        default=True,
        description="Send 'Quit game' events periodically and when the application exits.",
    )
    server_url: str = Field(default="https://quiver.dev", description="Base URL of the collection server.")
    add_event_path: str = Field(default="/analytics/events/add/", description="Endpoint path for adding events.")
    request_timeout_seconds: float = Field(default=10.0, gt=0, description="HTTP timeout for event delivery.")
    max_events_per_window: int = Field(
        default=50,
        ge=1,
        description="Maximum number of events admitted to the queue per rate window.",
    )
    rate_window_seconds: float = Field(default=60.0, gt=0, description="Length of the admission rate window.")
    max_queue_size_on_disk: int = Field(
        default=200,
        ge=1,
        description="Maximum number of undelivered events kept when the queue is saved to disk.",
    )
    max_event_name_length: int = Field(default=50, ge=1, description="Event names can't exceed this length.")
    min_retry_seconds: float = Field(default=2.0, gt=0, description="Delay between sends and first retry delay.")
    max_retry_seconds: float = Field(default=120.0, gt=0, description="Upper bound for the retry backoff.")
    initial_quit_event_interval_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Delay before the first synthetic quit event, low enough to catch immediate bounces.",
    )
    quit_event_interval_step_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Amount added to the quit event interval after each firing.",
    )
    max_quit_event_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Maximum interval between synthetic quit events.",
    )
    debug_build: bool = Field(
        default_factory=lambda: bool(sys.flags.dev_mode),
        description="Reported as the '$debug' property on every event.",
    )
    export_template: bool = Field(
        default_factory=lambda: bool(getattr(sys, "frozen", False)),
        description="Reported as the '$export_template' property; true for packaged builds.",
    )
    configure_logging: bool = Field(
        default=False,
        description="Install the library's console log handler on start; hosts with their own logging leave this off.",
    )
    log_level: str = Field(default="INFO", description="Application log level.")

    @field_validator("server_url", mode="after")
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @model_validator(mode="after")
    def _check_retry_bounds(self) -> "Settings":
        if self.min_retry_seconds > self.max_retry_seconds:
            raise ValueError("min_retry_seconds must not exceed max_retry_seconds")
        return self

    @property
    def add_event_url(self) -> str:
        return f"{self.server_url}{self.add_event_path}"


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings and warn when collection cannot work."""

    settings = Settings()
    if not settings.auth_token:
        logger.warning("Auth token hasn't been set for Quiver services; event collection is disabled")
    return settings
