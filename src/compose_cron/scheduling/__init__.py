"""Scheduling: cron engine, run guards and the scheduler core.

Exports:
    Scheduler: owns tasks, guards and the engine; drives notifications.
    CronEngine: thread-based trigger engine.
    RunGuard: single-flight guard per task.
    parse_schedule: cron / macro / ``@every`` parser.
"""

from compose_cron.scheduling.cron import (
    CronEngine,
    CronEntry,
    CronSchedule,
    EverySchedule,
    parse_schedule,
)
from compose_cron.scheduling.guard import RunGuard
from compose_cron.scheduling.scheduler import ScheduledTask, Scheduler

__all__ = [
    "CronEngine",
    "CronEntry",
    "CronSchedule",
    "EverySchedule",
    "RunGuard",
    "ScheduledTask",
    "Scheduler",
    "parse_schedule",
]
