"""compose-cron - cron for docker compose services.

Runs containers (or commands inside them) on schedules declared as labels
of the compose project's own services and reports each run to an optional
HTTP endpoint.

Example:
    >>> import threading
    >>> from compose_cron import Scheduler
    >>> cancel = threading.Event()
    >>> with Scheduler.create(cancel=cancel) as scheduler:
    ...     scheduler.run()
"""

from compose_cron.discovery import Task, list_tasks
from compose_cron.notify import HTTPNotifier, Payload
from compose_cron.project import resolve_project
from compose_cron.scheduling import RunGuard, Scheduler

__version__ = "1.0.0"

__all__ = [
    "HTTPNotifier",
    "Payload",
    "RunGuard",
    "Scheduler",
    "Task",
    "__version__",
    "list_tasks",
    "resolve_project",
]
