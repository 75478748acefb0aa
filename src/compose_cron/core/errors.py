"""
Structured error types for compose-cron.

Every error raised by the scheduler carries a category so the CLI can tell
startup problems (fix the deployment, exit non-zero) from per-run failures
(record an outcome, keep scheduling) and notification problems (log and
move on).

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                     ComposeCronError                             │
        │                   (category, context, cause)                     │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  Startup-fatal       Per-run             Notification            │
        │  ─────────────       ───────             ────────────            │
        │  ConfigError         TaskFailedError     NotificationError       │
        │  RuntimeUnavailable  TaskCancelledError  NotificationCancelled   │
        │  ProjectResolution   TaskAlreadyRunning                          │
        │  DiscoveryError                                                  │
        │  ScheduleError       RuntimeCommandError                         │
        └─────────────────────────────────────────────────────────────────┘

Usage:
    from compose_cron.core.errors import TaskFailedError

    if result.status_code != 0:
        raise TaskFailedError(
            f"service {task.service}: status code {result.status_code}"
        ).with_context(service=task.service)
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"              # Invalid settings, unresolved project
    RUNTIME = "RUNTIME"            # Container runtime unavailable or failing
    DISCOVERY = "DISCOVERY"        # Malformed task labels
    SCHEDULE = "SCHEDULE"          # Invalid cron expression
    TASK = "TASK"                  # A single run failed
    CANCELLED = "CANCELLED"        # Shutdown interrupted a blocking call
    NOTIFICATION = "NOTIFICATION"  # Outcome delivery failed
    INTERNAL = "INTERNAL"          # Bugs, unexpected state


class ComposeCronError(Exception):
    """
    Base exception for all compose-cron errors.

    Subclasses set ``default_category``; callers may override it. The
    optional ``cause`` is chained as ``__cause__`` so tracebacks keep the
    original exception.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ComposeCronError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DiscoveryError("bad label").with_context(service="backup")
        """
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# STARTUP ERRORS (abort before scheduling begins)
# =============================================================================


class ConfigError(ComposeCronError):
    """Configuration value is missing or invalid."""

    default_category = ErrorCategory.CONFIG


class ProjectResolutionError(ConfigError):
    """The compose project could not be determined."""


class RuntimeUnavailableError(ComposeCronError):
    """The container runtime client could not be constructed."""

    default_category = ErrorCategory.RUNTIME


class RuntimeCommandError(ComposeCronError):
    """A container runtime call failed."""

    default_category = ErrorCategory.RUNTIME


class DiscoveryError(ComposeCronError):
    """Task labels could not be turned into a task."""

    default_category = ErrorCategory.DISCOVERY


class ScheduleError(ComposeCronError):
    """Schedule expression is invalid."""

    default_category = ErrorCategory.SCHEDULE

    def __init__(self, expression: str, message: str | None = None, **kwargs: Any):
        self.expression = expression
        super().__init__(message or f"invalid schedule: {expression!r}", **kwargs)


# =============================================================================
# PER-RUN ERRORS (recorded as a failed outcome)
# =============================================================================


class TaskFailedError(ComposeCronError):
    """A task execution finished unsuccessfully."""

    default_category = ErrorCategory.TASK


class TaskCancelledError(TaskFailedError):
    """A blocking call was interrupted by shutdown."""

    default_category = ErrorCategory.CANCELLED

    def __init__(self, message: str = "cancelled", **kwargs: Any):
        super().__init__(message, **kwargs)


class TaskAlreadyRunning(ComposeCronError):
    """The task's run guard is held by an earlier trigger."""

    default_category = ErrorCategory.TASK

    def __init__(self, service: str):
        self.service = service
        super().__init__(f"task {service} is running", context={"service": service})


# =============================================================================
# NOTIFICATION ERRORS (logged, never fatal)
# =============================================================================


class NotificationError(ComposeCronError):
    """Outcome could not be delivered to the notification sink."""

    default_category = ErrorCategory.NOTIFICATION


class NotificationCancelledError(NotificationError):
    """Shutdown interrupted the retry wait."""

    default_category = ErrorCategory.CANCELLED

    def __init__(self, message: str = "notification cancelled", **kwargs: Any):
        super().__init__(message, **kwargs)


STARTUP_FATAL: tuple[type[ComposeCronError], ...] = (
    ConfigError,
    RuntimeUnavailableError,
    DiscoveryError,
    ScheduleError,
)
