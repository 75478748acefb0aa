"""Task discovery from container labels.

A container of the compose project becomes a task when it carries the
schedule label::

    services:
      backup:
        image: restic/restic
        labels:
          net.reddec.scheduler.cron: "@daily"
      cleanup:
        image: alpine
        labels:
          net.reddec.scheduler.cron: "*/5 * * * *"
          net.reddec.scheduler.exec: "sh -c 'rm -rf /tmp/cache/*'"
          net.reddec.scheduler.logs: "true"

Discovery runs once at start-up. Containers added later are not picked up
until the scheduler restarts.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field

from compose_cron.core.errors import DiscoveryError, RuntimeCommandError
from compose_cron.core.logging import get_logger
from compose_cron.execution import ExecutionStrategy, strategy_for
from compose_cron.runtime.protocol import ContainerRuntime

logger = get_logger(__name__)

COMPOSE_PROJECT_LABEL = "com.docker.compose.project"
COMPOSE_SERVICE_LABEL = "com.docker.compose.service"
SCHEDULE_LABEL = "net.reddec.scheduler.cron"
COMMAND_LABEL = "net.reddec.scheduler.exec"
LOGS_LABEL = "net.reddec.scheduler.logs"

# true spellings accepted by strconv.ParseBool
_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})


@dataclass(frozen=True)
class Task:
    """One schedulable unit of work bound to a container."""

    service: str
    container: str
    schedule: str
    command: tuple[str, ...] = ()
    logging: bool = False
    strategy: ExecutionStrategy = field(init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "command", tuple(self.command))
        object.__setattr__(self, "strategy", strategy_for(self.command, self.logging))

    @property
    def mode(self) -> str:
        return self.strategy.name


def parse_command(value: str) -> tuple[str, ...]:
    """Split a command label with shell quoting rules.

    >>> parse_command("sh -c 'echo hi'")
    ('sh', '-c', 'echo hi')

    Raises:
        ValueError: unterminated quote or dangling escape.
    """
    return tuple(shlex.split(value))


def parse_bool(value: str | None) -> bool:
    """Parse a boolean label; absent or unrecognised values are ``False``."""
    return value is not None and value in _TRUE


def task_filters(project: str) -> list[str]:
    """Label filters selecting the schedulable containers of a project."""
    return [
        f"{COMPOSE_PROJECT_LABEL}={project}",
        COMPOSE_SERVICE_LABEL,
        SCHEDULE_LABEL,
    ]


def list_tasks(runtime: ContainerRuntime, project: str) -> list[Task]:
    """Query the runtime and build a task per scheduled container.

    Raises:
        DiscoveryError: the runtime query failed or a command label is
            malformed.
    """
    try:
        containers = runtime.list_containers(task_filters(project))
    except RuntimeCommandError as exc:
        raise DiscoveryError(f"list containers: {exc}", cause=exc) from exc

    tasks: list[Task] = []
    for info in containers:
        labels = info.labels
        service = labels.get(COMPOSE_SERVICE_LABEL, "")
        schedule = labels.get(SCHEDULE_LABEL, "").strip()
        if not service or not schedule:
            logger.debug("task.ignored", container=info.container_id, service=service)
            continue

        command: tuple[str, ...] = ()
        raw_command = labels.get(COMMAND_LABEL, "")
        if raw_command:
            try:
                command = parse_command(raw_command)
            except ValueError as exc:
                raise DiscoveryError(
                    f"parse command in service {service}: {exc}",
                    context={"service": service, "command": raw_command},
                    cause=exc,
                ) from exc

        tasks.append(
            Task(
                service=service,
                container=info.container_id,
                schedule=schedule,
                command=command,
                logging=parse_bool(labels.get(LOGS_LABEL)),
            )
        )

    logger.info("tasks.discovered", project=project, count=len(tasks))
    return tasks
