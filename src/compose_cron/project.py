"""Compose project self-detection.

When no project is configured, the scheduler assumes it runs as a service
of the compose project it should schedule, finds its own container id and
reads the project label from it.

Own-id lookup is an ordered list of probes; the first one that succeeds
wins:

    CpusetProbe      basename of /proc/1/cpuset (cgroup v1)
    MountinfoProbe   containers/<64 hex>/ in /proc/self/mountinfo (cgroup v2)

Probes are plain objects with a ``lookup()`` method, so tests (and exotic
hosts) can pass their own list.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from compose_cron.core.errors import ProjectResolutionError, RuntimeCommandError
from compose_cron.core.logging import get_logger
from compose_cron.discovery import COMPOSE_PROJECT_LABEL
from compose_cron.runtime.protocol import ContainerRuntime

logger = get_logger(__name__)


class ProbeFailed(Exception):
    """A probe could not determine the container id."""


class IdentifierProbe(Protocol):
    name: str

    def lookup(self) -> str: ...


@dataclass(frozen=True)
class CpusetProbe:
    path: Path = Path("/proc/1/cpuset")
    name: str = "cpuset"

    def lookup(self) -> str:
        try:
            data = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ProbeFailed(f"read {self.path}: {exc}") from exc

        # root cgroup "/" means we are not inside a container
        value = data.strip()
        trimmed = value.rstrip("/")
        container_id = trimmed.rsplit("/", 1)[-1] if trimmed else "/"
        if container_id in {"", "/", ".", ".."}:
            raise ProbeFailed(f"calculate container id from {value!r}")
        return container_id


_MOUNTINFO_ID = re.compile(r"containers/([A-Za-z0-9]{64})/")


@dataclass(frozen=True)
class MountinfoProbe:
    path: Path = Path("/proc/self/mountinfo")
    name: str = "mountinfo"

    def lookup(self) -> str:
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ProbeFailed(f"read {self.path}: {exc}") from exc

        match = _MOUNTINFO_ID.search(content)
        if match is None:
            raise ProbeFailed("no container id")
        return match.group(1)


DEFAULT_PROBES: tuple[IdentifierProbe, ...] = (CpusetProbe(), MountinfoProbe())


def detect_container_id(probes: Sequence[IdentifierProbe] = DEFAULT_PROBES) -> str:
    """Return the first id any probe finds.

    Raises:
        ProjectResolutionError: no probe succeeded.
    """
    for probe in probes:
        try:
            container_id = probe.lookup()
        except ProbeFailed as exc:
            logger.debug("probe.failed", probe=probe.name, error=str(exc))
            continue
        logger.debug("probe.succeeded", probe=probe.name, container=container_id)
        return container_id
    raise ProjectResolutionError("failed to detect own container id")


def resolve_project(
    runtime: ContainerRuntime,
    probes: Sequence[IdentifierProbe] = DEFAULT_PROBES,
) -> str:
    """Read the compose project label of the scheduler's own container.

    Raises:
        ProjectResolutionError: own container unknown, not inspectable, or
            not part of a compose project.
    """
    container_id = detect_container_id(probes)
    try:
        labels = runtime.inspect_labels(container_id)
    except RuntimeCommandError as exc:
        raise ProjectResolutionError(f"inspect self container: {exc}", cause=exc) from exc

    project = labels.get(COMPOSE_PROJECT_LABEL)
    if project is None:
        raise ProjectResolutionError(
            "compose label not found - probably container is not part of compose",
            context={"container": container_id},
        )
    logger.info("project.detected", project=project, container=container_id)
    return project
