"""Cron schedules and the trigger engine.

┌──────────────────────────────────────────────────────────────────────────────┐
│  CRON ENGINE                                                                  │
│                                                                               │
│   start()                                                                     │
│      │                                                                        │
│      ▼                                                                        │
│   ┌─────────────────────────────────────────────────────────────┐            │
│   │              Daemon Thread (loop)                           │            │
│   │                                                             │            │
│   │   while not stop_event.wait(until earliest next_run):       │            │
│   │       for each due entry:                                   │            │
│   │           spawn worker thread ──► entry.job()               │            │
│   │           next_run = schedule.next(now)                     │            │
│   └─────────────────────────────────────────────────────────────┘            │
│                                                                               │
│   stop()                                                                      │
│      │                                                                        │
│      ▼                                                                        │
│   stop_event.set() → join loop thread → join every live worker (drain)       │
│                                                                               │
│  Each firing gets its own worker thread: a slow job never delays other       │
│  entries and triggers are never queued behind a busy pool.                   │
└──────────────────────────────────────────────────────────────────────────────┘

Schedule syntax:
    - standard five-field cron (``*/5 * * * *``)
    - six-field cron with trailing seconds (``0 */5 * * * 30``), croniter style
    - macros ``@yearly @annually @monthly @weekly @daily @midnight @hourly``
    - ``@every <duration>`` with Go-style durations (``@every 1h30m``)

Expressions are evaluated in the host's local time zone.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from croniter import CroniterBadDateError, croniter

from compose_cron.core.durations import parse_duration
from compose_cron.core.errors import ScheduleError
from compose_cron.core.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def local_now() -> datetime:
    """Timezone-aware current local time."""
    return datetime.now().astimezone()


class Schedule(Protocol):
    def next(self, after: datetime) -> datetime: ...


@dataclass(frozen=True)
class CronSchedule:
    """Cron expression evaluated with croniter."""

    expression: str

    def next(self, after: datetime) -> datetime:
        return croniter(self.expression, after).get_next(datetime)


@dataclass(frozen=True)
class EverySchedule:
    """Fixed interval between firings."""

    interval: float

    def next(self, after: datetime) -> datetime:
        return after + timedelta(seconds=self.interval)


def parse_schedule(expression: str) -> CronSchedule | EverySchedule:
    """Parse a schedule expression.

    Raises:
        ScheduleError: expression is not valid cron, macro or ``@every``.
    """
    text = expression.strip()
    if text.startswith("@every"):
        raw = text[len("@every"):].strip()
        try:
            interval = parse_duration(raw)
        except ValueError as exc:
            raise ScheduleError(expression, f"invalid @every duration {raw!r}", cause=exc) from exc
        if interval <= 0:
            raise ScheduleError(expression, f"@every needs a positive duration, got {raw!r}")
        # sub-second intervals are rounded up to one second
        return EverySchedule(interval=max(interval, 1.0))

    if not text or not croniter.is_valid(text):
        raise ScheduleError(expression)

    schedule = CronSchedule(expression=text)
    # syntactically valid but never matching, e.g. "0 0 30 2 *"
    try:
        schedule.next(local_now())
    except CroniterBadDateError as exc:
        raise ScheduleError(expression, f"schedule never fires: {expression!r}", cause=exc) from exc
    return schedule


@dataclass
class CronEntry:
    """A registered job and its timing state."""

    entry_id: int
    name: str
    schedule: Schedule
    job: Callable[[], Any]
    next_run: datetime | None = None
    prev_run: datetime | None = None
    fired: int = 0


@dataclass
class EngineStats:
    ticks: int = 0
    dispatched: int = 0
    job_errors: int = 0
    last_tick: datetime | None = None


class CronEngine:
    """Thread-based cron engine dispatching each firing to a worker thread.

    Example:
        >>> engine = CronEngine()
        >>> engine.add("backup", "@daily", run_backup)
        >>> engine.start()
        >>> # ... later ...
        >>> engine.stop()   # returns once in-flight jobs have finished
    """

    name = "cron"

    def __init__(self, clock: Clock = local_now) -> None:
        self._clock = clock
        self._entries: list[CronEntry] = []
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._workers: set[threading.Thread] = set()
        self._lock = threading.Lock()
        self._stats = EngineStats()
        self._started = False

    # === Registration ===

    def add(self, name: str, schedule: str | Schedule, job: Callable[[], Any]) -> CronEntry:
        """Register a job. Must be called before :meth:`start`."""
        if self._started:
            raise RuntimeError("CronEngine entries must be added before start()")
        if isinstance(schedule, str):
            schedule = parse_schedule(schedule)
        entry = CronEntry(entry_id=len(self._entries) + 1, name=name, schedule=schedule, job=job)
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> list[CronEntry]:
        return list(self._entries)

    # === Lifecycle ===

    def start(self) -> None:
        if self._started:
            logger.warning("cron.already_started")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="compose-cron")
        self._thread.start()
        self._started = True

    def stop(self, timeout: float | None = None) -> None:
        """Stop firing and wait for in-flight jobs to drain."""
        if not self._started:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("cron.loop_not_stopped")

        with self._lock:
            workers = list(self._workers)
        if workers:
            logger.info("cron.draining", workers=len(workers))
        for worker in workers:
            worker.join(timeout=timeout)

        self._started = False
        logger.info("cron.stopped")

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def active_workers(self) -> int:
        with self._lock:
            return len(self._workers)

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "backend": self.name,
            "entries": len(self._entries),
            "tick_count": self._stats.ticks,
            "dispatched": self._stats.dispatched,
            "job_errors": self._stats.job_errors,
            "active_workers": self.active_workers,
            "last_tick": self._stats.last_tick.isoformat() if self._stats.last_tick else None,
        }

    # === Loop ===

    def _loop(self) -> None:
        now = self._clock()
        for entry in self._entries:
            self._advance(entry, now)
        logger.info("cron.started", entries=len(self._entries))

        while True:
            pending = [e.next_run for e in self._entries if e.next_run is not None]
            if not pending:
                self._stop_event.wait()
                break

            delay = (min(pending) - self._clock()).total_seconds()
            if self._stop_event.wait(max(delay, 0.0)):
                break

            now = self._clock()
            with self._lock:
                self._stats.ticks += 1
                self._stats.last_tick = datetime.now(UTC)

            for entry in self._entries:
                if entry.next_run is not None and entry.next_run <= now:
                    self._dispatch(entry)
                    entry.prev_run = entry.next_run
                    self._advance(entry, now)

    def _advance(self, entry: CronEntry, now: datetime) -> None:
        """Compute the next firing; an entry whose schedule fails is retired."""
        try:
            entry.next_run = entry.schedule.next(now)
        except Exception:
            entry.next_run = None
            logger.exception("cron.schedule_failed", entry=entry.name)

    def _dispatch(self, entry: CronEntry) -> None:
        worker = threading.Thread(
            target=self._run_job,
            args=(entry,),
            daemon=True,
            name=f"compose-cron-{entry.name}",
        )
        with self._lock:
            self._workers.add(worker)
            self._stats.dispatched += 1
        entry.fired += 1
        worker.start()

    def _run_job(self, entry: CronEntry) -> None:
        try:
            entry.job()
        except Exception:
            with self._lock:
                self._stats.job_errors += 1
            logger.exception("cron.job_failed", entry=entry.name)
        finally:
            with self._lock:
                self._workers.discard(threading.current_thread())
