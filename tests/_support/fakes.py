"""In-memory stand-in for the container runtime."""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence

from compose_cron.core.errors import RuntimeCommandError, TaskCancelledError
from compose_cron.discovery import (
    COMMAND_LABEL,
    COMPOSE_PROJECT_LABEL,
    COMPOSE_SERVICE_LABEL,
    LOGS_LABEL,
    SCHEDULE_LABEL,
)
from compose_cron.runtime.protocol import ContainerInfo, OutputSink, WaitResult


def make_container(
    container_id: str,
    service: str,
    schedule: str | None = "@daily",
    project: str = "demo",
    command: str | None = None,
    logs: str | None = None,
    **extra: str,
) -> ContainerInfo:
    labels = {COMPOSE_PROJECT_LABEL: project, COMPOSE_SERVICE_LABEL: service, **extra}
    if schedule is not None:
        labels[SCHEDULE_LABEL] = schedule
    if command is not None:
        labels[COMMAND_LABEL] = command
    if logs is not None:
        labels[LOGS_LABEL] = logs
    return ContainerInfo(container_id=container_id, labels=labels, name=f"{project}-{service}-1")


class FakeRuntime:
    """Records calls; behaviour is configured through attributes.

    ``gate`` (when set) makes ``start``/``exec_start``/``exec_attach`` block
    until it is set or the cancellation event fires; ``entered`` is set once
    a blocking call has begun.
    """

    def __init__(self, containers: Sequence[ContainerInfo] = ()) -> None:
        self.containers = list(containers)
        self.calls: list[tuple[str, tuple]] = []
        self.wait_results: dict[str, WaitResult] = {}
        self.exec_exit_codes: dict[str, int] = {}
        self.exec_output: dict[str, list[str]] = {}
        self.errors: dict[str, Exception] = {}
        self.gate: threading.Event | None = None
        self.entered = threading.Event()
        self.closed = False
        self._lock = threading.Lock()

    # -- helpers -------------------------------------------------------

    def _record(self, name: str, *args: object) -> None:
        with self._lock:
            self.calls.append((name, args))
        if name in self.errors:
            raise self.errors[name]

    def _block(self, cancel: threading.Event | None = None) -> None:
        self.entered.set()
        if self.gate is None:
            return
        while not self.gate.wait(0.01):
            if cancel is not None and cancel.is_set():
                raise TaskCancelledError()

    def count(self, name: str) -> int:
        with self._lock:
            return sum(1 for call, _ in self.calls if call == name)

    @staticmethod
    def _matches(labels: Mapping[str, str], filters: Sequence[str]) -> bool:
        for item in filters:
            key, sep, value = item.partition("=")
            if key not in labels:
                return False
            if sep and labels[key] != value:
                return False
        return True

    # -- ContainerRuntime ---------------------------------------------

    def list_containers(self, labels: Sequence[str]) -> list[ContainerInfo]:
        self._record("list_containers", tuple(labels))
        return [c for c in self.containers if self._matches(c.labels, labels)]

    def inspect_labels(self, container_id: str) -> dict[str, str]:
        self._record("inspect_labels", container_id)
        for c in self.containers:
            if c.container_id == container_id:
                return dict(c.labels)
        raise RuntimeCommandError(f"No such container: {container_id}")

    def start(self, container_id: str) -> None:
        self._record("start", container_id)
        self._block()

    def wait(self, container_id: str, cancel: threading.Event) -> WaitResult:
        self._record("wait", container_id)
        return self.wait_results.get(container_id, WaitResult(status_code=0))

    def exec_start(self, container_id: str, command: Sequence[str]) -> None:
        self._record("exec_start", container_id, tuple(command))
        self._block()

    def exec_attach(
        self,
        container_id: str,
        command: Sequence[str],
        output: OutputSink,
        cancel: threading.Event,
    ) -> int:
        self._record("exec_attach", container_id, tuple(command))
        for line in self.exec_output.get(container_id, []):
            output(line)
        self._block(cancel)
        return self.exec_exit_codes.get(container_id, 0)

    def close(self) -> None:
        self.closed = True
