"""Scheduler core - owns the tasks, their guards and the cron engine.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER                                                                    │
│                                                                               │
│   Scheduler.create()                                                          │
│     ├── runtime  (DockerCLIRuntime unless one is passed in)                  │
│     └── project  (resolve_project() unless one is passed in)                 │
│                                                                               │
│   run()                                                                       │
│     1. list_tasks(runtime, project)                                           │
│     2. parse every schedule  ── any invalid → ScheduleError, nothing starts  │
│     3. engine.add(task, schedule, trigger) per task, one RunGuard each       │
│     4. engine.start(); cancel.wait(); engine.stop()  (drains workers)        │
│                                                                               │
│   trigger(entry)          per firing, in its own worker thread                │
│     ├── guard taken?  → log task.skipped, return None                        │
│     ├── run_job(task) → Payload  (guard released on every path)              │
│     └── notifier?     → notify(payload); failures only logged                │
│                                                                               │
│   Per task:   Idle ──fire──► Running ──done──► Idle                          │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import partial
from typing import Any

from compose_cron.core.durations import format_duration
from compose_cron.core.errors import (
    ComposeCronError,
    DiscoveryError,
    TaskAlreadyRunning,
    TaskFailedError,
)
from compose_cron.core.logging import get_logger
from compose_cron.discovery import Task, list_tasks
from compose_cron.notify import HTTPNotifier, Payload
from compose_cron.project import DEFAULT_PROBES, IdentifierProbe, resolve_project
from compose_cron.runtime.protocol import ContainerRuntime, OutputSink
from compose_cron.scheduling.cron import CronEngine, Schedule, parse_schedule
from compose_cron.scheduling.guard import RunGuard

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


@dataclass
class ScheduledTask:
    """A discovered task with its parsed schedule and run guard."""

    task: Task
    schedule: Schedule
    guard: RunGuard


class Scheduler:
    """Runs discovered tasks on their schedules.

    Example:
        >>> cancel = threading.Event()
        >>> with Scheduler.create(cancel=cancel, notifier=notifier) as scheduler:
        ...     scheduler.run()   # returns after cancel.set()
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        project: str,
        notifier: HTTPNotifier | None = None,
        cancel: threading.Event | None = None,
        output: OutputSink | None = None,
        owns_runtime: bool = False,
    ) -> None:
        self.runtime = runtime
        self.project = project
        self.notifier = notifier
        self.cancel = cancel or threading.Event()
        self.output = output
        self._owns_runtime = owns_runtime
        self._entries: list[ScheduledTask] = []
        self._engine: CronEngine | None = None

    @classmethod
    def create(
        cls,
        *,
        runtime: ContainerRuntime | None = None,
        project: str | None = None,
        notifier: HTTPNotifier | None = None,
        cancel: threading.Event | None = None,
        probes: Sequence[IdentifierProbe] = DEFAULT_PROBES,
    ) -> Scheduler:
        """Build a scheduler, constructing the runtime and resolving the
        project when they are not supplied.

        Raises:
            RuntimeUnavailableError: docker CLI missing.
            ProjectResolutionError: project could not be detected.
        """
        owns_runtime = runtime is None
        if runtime is None:
            from compose_cron.runtime.docker_cli import DockerCLIRuntime

            runtime = DockerCLIRuntime()

        if not project:
            try:
                project = resolve_project(runtime, probes)
            except ComposeCronError:
                if owns_runtime:
                    runtime.close()
                raise

        return cls(
            runtime=runtime,
            project=project,
            notifier=notifier,
            cancel=cancel,
            owns_runtime=owns_runtime,
        )

    # === Lifecycle ===

    def close(self) -> None:
        """Release the runtime if this scheduler created it."""
        if self._owns_runtime:
            self.runtime.close()

    def __enter__(self) -> Scheduler:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def stop(self) -> None:
        """Request shutdown; :meth:`run` returns once workers drain."""
        self.cancel.set()

    @property
    def tasks(self) -> list[Task]:
        return [entry.task for entry in self._entries]

    @property
    def entries(self) -> list[ScheduledTask]:
        return list(self._entries)

    def health(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "tasks": len(self._entries),
            "running": [e.task.service for e in self._entries if e.guard.held],
            "engine": self._engine.health() if self._engine else None,
        }

    def discover(self) -> list[ScheduledTask]:
        """Discover tasks and parse every schedule before anything registers.

        Raises:
            DiscoveryError: runtime query failed or a command label is bad.
            ScheduleError: a schedule expression is invalid.
        """
        entries = []
        for task in list_tasks(self.runtime, self.project):
            try:
                schedule = parse_schedule(task.schedule)
            except ComposeCronError as exc:
                exc.with_context(service=task.service)
                raise
            entries.append(ScheduledTask(task=task, schedule=schedule, guard=RunGuard(task.service)))
        self._entries = entries
        return entries

    def run(self) -> None:
        """Schedule every task and block until cancellation."""
        entries = self.discover()

        engine = CronEngine()
        for entry in entries:
            engine.add(entry.task.service, entry.schedule, partial(self.trigger, entry))
            logger.info(
                "task.registered",
                service=entry.task.service,
                schedule=entry.task.schedule,
                mode=entry.task.mode,
                logging=entry.task.logging,
            )
        self._engine = engine

        engine.start()
        logger.info("scheduler.started", project=self.project, tasks=len(entries))
        try:
            self.cancel.wait()
        finally:
            engine.stop()
            logger.info("scheduler.stopped", project=self.project)

    def run_once(self, service: str) -> Payload:
        """Discover tasks and run ``service`` immediately.

        Raises:
            DiscoveryError: no scheduled task for ``service``.
        """
        for entry in self.discover():
            if entry.task.service == service:
                payload = self.trigger(entry)
                if payload is None:
                    raise TaskAlreadyRunning(service)
                return payload
        raise DiscoveryError(f"no scheduled task for service {service}", context={"service": service})

    # === Per-firing ===

    def trigger(self, entry: ScheduledTask) -> Payload | None:
        """Handle one firing: single-flight run, then notification."""
        try:
            with entry.guard.hold():
                payload = self.run_job(entry.task)
        except TaskAlreadyRunning:
            logger.warning("task.skipped", service=entry.task.service, reason="already running")
            return None

        self._deliver(payload)
        return payload

    def run_job(self, task: Task) -> Payload:
        """Execute the task's strategy and time it. Never raises for task failures."""
        logger.info("task.started", service=task.service, mode=task.mode)
        error: str | None = None
        started = utcnow()
        try:
            task.strategy.execute(self.runtime, task, self.cancel, self.output)
        except TaskFailedError as exc:
            error = exc.message or exc.__class__.__name__
        except Exception as exc:
            logger.exception("task.crashed", service=task.service)
            error = str(exc) or exc.__class__.__name__
        finished = utcnow()

        duration = format_duration((finished - started).total_seconds())
        if error is None:
            logger.info("task.finished", service=task.service, duration=duration)
        else:
            logger.error("task.failed", service=task.service, duration=duration, error=error)

        return Payload(
            project=self.project,
            service=task.service,
            container=task.container,
            schedule=task.schedule,
            started=started,
            finished=finished,
            failed=error is not None,
            error=error,
        )

    def _deliver(self, payload: Payload) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(payload, self.cancel)
        except ComposeCronError as exc:
            logger.error("notification.failed", service=payload.service, error=str(exc))
        else:
            logger.info("notification.succeeded", service=payload.service)
