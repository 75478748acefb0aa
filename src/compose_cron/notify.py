"""Outcome notifications over HTTP.

Every finished run produces one :class:`Payload`. When a notification URL
is configured, :class:`HTTPNotifier` delivers it as JSON with a bounded
number of attempts::

    attempt 1 ──► 2xx? ── yes ──► done
        │ no
        ▼
    wait interval (abort at once if cancelled)
        │
    attempt 2 … attempt retries+1 ──► NotificationError("all attempts failed")

Delivery is best-effort: the scheduler logs a failed notification and
moves on. It never re-runs the task or re-emits the payload.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime

import httpx
from pydantic import BaseModel, ConfigDict, model_validator

from compose_cron.core.errors import NotificationCancelledError, NotificationError
from compose_cron.core.logging import get_logger

logger = get_logger(__name__)


class Payload(BaseModel):
    """Immutable record of one finished execution.

    ``error`` is set if and only if ``failed`` is true.
    """

    model_config = ConfigDict(frozen=True)

    project: str
    service: str
    container: str
    schedule: str
    started: datetime
    finished: datetime
    failed: bool
    error: str | None = None

    @model_validator(mode="after")
    def _error_matches_failed(self) -> Payload:
        if self.failed and not self.error:
            raise ValueError("failed payload requires an error message")
        if not self.failed and self.error:
            raise ValueError("error message given for a successful payload")
        return self

    @property
    def duration(self) -> float:
        """Run duration in seconds."""
        return (self.finished - self.started).total_seconds()

    def to_json(self) -> bytes:
        """Serialize for the wire; ``error`` is omitted for successful runs."""
        exclude = None if self.failed else {"error"}
        return self.model_dump_json(exclude=exclude).encode("utf-8")


@dataclass
class HTTPNotifier:
    """Delivers payloads to an HTTP endpoint with retries.

    Attributes:
        url: Endpoint receiving the JSON body
        method: HTTP method
        retries: Additional attempts after the first one
        interval: Seconds to wait between attempts
        timeout: Per-attempt timeout in seconds
        authorization: ``Authorization`` header value (omitted when empty)
        user_agent: ``User-Agent`` header value (omitted when empty)
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
    """

    url: str
    method: str = "POST"
    retries: int = 5
    interval: float = 12.0
    timeout: float = 30.0
    authorization: str = ""
    user_agent: str = ""
    transport: httpx.BaseTransport | None = None

    def notify(self, payload: Payload, cancel: threading.Event | None = None) -> None:
        """Deliver ``payload``, retrying up to ``retries`` more times.

        Raises:
            NotificationCancelledError: cancellation was requested while
                waiting between attempts.
            NotificationError: every attempt failed.
        """
        cancel = cancel or threading.Event()
        left = self.retries
        while True:
            try:
                self._send(payload)
            except NotificationError as exc:
                logger.warning(
                    "notification.attempt_failed",
                    url=self.url,
                    error=str(exc),
                    attempts_left=left,
                )
                if left <= 0:
                    break
                left -= 1
                if cancel.wait(self.interval):
                    raise NotificationCancelledError() from exc
                continue

            logger.info("notification.delivered", url=self.url, service=payload.service)
            return

        raise NotificationError("all attempts failed", context={"url": self.url})

    def headers(self) -> dict[str, str]:
        """Request headers for one attempt."""
        headers = {"Content-Type": "application/json"}
        if self.authorization:
            headers["Authorization"] = self.authorization
        if self.user_agent:
            headers["User-Agent"] = self.user_agent
        return headers

    def _send(self, payload: Payload) -> None:
        """One delivery attempt; raises NotificationError on any failure."""
        try:
            body = payload.to_json()
        except ValueError as exc:
            raise NotificationError(f"marshal: {exc}", cause=exc) from exc

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.request(
                    self.method,
                    self.url,
                    content=body,
                    headers=self.headers(),
                )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise NotificationError(f"execute request: {exc}", cause=exc) from exc

        if not 200 <= response.status_code < 300:
            raise NotificationError(
                f"status: {response.status_code}",
                context={"status": response.status_code},
            )
