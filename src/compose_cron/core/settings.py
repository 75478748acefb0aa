"""Environment-driven settings for the scheduler process.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    The scheduler usually runs as one more service of the compose file it
    schedules, so everything can be set through the service's
    ``environment:`` block.

Fields
──────
``SchedulerSettings``   (no prefix)
    PROJECT        compose project; auto-detected when empty
    LOG_LEVEL      structlog level
    LOG_JSON       force JSON (true) or console (false) output

``NotifySettings``      (``NOTIFY_`` prefix)
    URL            notification endpoint; notifications disabled when empty
    METHOD         HTTP method (POST)
    RETRIES        additional attempts after the first (5)
    INTERVAL       pause between attempts (12s)
    TIMEOUT        per-attempt timeout (30s)
    AUTHORIZATION  ``Authorization`` header value

Durations accept Go-style strings (``12s``, ``1m30s``) or seconds.

Examples:
    >>> settings = SchedulerSettings()
    >>> notifier = settings.notify.build_notifier(user_agent="compose-cron/1.0.0")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from compose_cron.core.durations import parse_duration

if TYPE_CHECKING:
    from compose_cron.notify import HTTPNotifier


class NotifySettings(BaseSettings):
    """HTTP notification settings (``NOTIFY_*``)."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    url: str = ""
    method: str = "POST"
    retries: int = Field(default=5, ge=0)
    interval: float = Field(default=12.0, description="Seconds between attempts")
    timeout: float = Field(default=30.0, description="Per-attempt timeout in seconds")
    authorization: str = ""

    @field_validator("interval", "timeout", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> float:
        return parse_duration(value)

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.strip().upper() or "POST"

    def build_notifier(self, user_agent: str = "") -> HTTPNotifier | None:
        """Return a notifier, or ``None`` when no URL is configured."""
        if not self.url:
            return None

        from compose_cron.notify import HTTPNotifier

        return HTTPNotifier(
            url=self.url,
            method=self.method,
            retries=self.retries,
            interval=self.interval,
            timeout=self.timeout,
            authorization=self.authorization,
            user_agent=user_agent,
        )


class SchedulerSettings(BaseSettings):
    """Top-level scheduler settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Scope ────────────────────────────────────────────────────
    project: str = Field(
        default="",
        description="Docker compose project, detected automatically if empty",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── Notification ─────────────────────────────────────────────
    notify: NotifySettings = Field(default_factory=NotifySettings)
