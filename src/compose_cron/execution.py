"""Execution strategies: what happens when a task's schedule fires.

A task gets exactly one strategy, chosen at discovery time:

================  =========================================================
``RunStrategy``   no command label: ``start`` the container, ``wait`` until
                  it stops; non-zero status (or an engine error) fails.
``ExecStrategy``  command label present: run the command inside the
                  already-running container.
                  ``logging=False`` detached, fire-and-forget; only the
                  invocation start is checked, the exit code is not.
                  ``logging=True`` attached, output copied line by line to
                  the log; non-zero exit code fails.
================  =========================================================

Strategies raise :class:`~compose_cron.core.errors.TaskFailedError` (or its
subclass ``TaskCancelledError``) and return ``None`` on success.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from compose_cron.core.errors import RuntimeCommandError, TaskFailedError
from compose_cron.core.logging import get_logger
from compose_cron.runtime.protocol import ContainerRuntime, OutputSink

if TYPE_CHECKING:
    from compose_cron.discovery import Task

logger = get_logger(__name__)


@runtime_checkable
class ExecutionStrategy(Protocol):
    """Single entry point shared by both strategies."""

    name: str

    def execute(
        self,
        runtime: ContainerRuntime,
        task: Task,
        cancel: threading.Event,
        output: OutputSink | None = None,
    ) -> None: ...


@dataclass(frozen=True)
class RunStrategy:
    """Start the container and block until it stops."""

    name: str = "run"

    def execute(
        self,
        runtime: ContainerRuntime,
        task: Task,
        cancel: threading.Event,
        output: OutputSink | None = None,
    ) -> None:
        logger.info("task.running", service=task.service)
        try:
            runtime.start(task.container)
        except RuntimeCommandError as exc:
            raise TaskFailedError(f"start service {task.service}: {exc}", cause=exc) from exc

        try:
            result = runtime.wait(task.container, cancel)
        except RuntimeCommandError as exc:
            raise TaskFailedError(f"wait for service {task.service}: {exc}", cause=exc) from exc

        if result.error:
            raise TaskFailedError(f"service {task.service}: {result.error}")
        if result.status_code != 0:
            raise TaskFailedError(f"service {task.service}: status code {result.status_code}")


@dataclass(frozen=True)
class ExecStrategy:
    """Run the task command inside the running container."""

    logging: bool = False
    name: str = "exec"

    def execute(
        self,
        runtime: ContainerRuntime,
        task: Task,
        cancel: threading.Event,
        output: OutputSink | None = None,
    ) -> None:
        logger.info("task.executing", service=task.service, command=list(task.command))
        if self.logging:
            self._attach(runtime, task, cancel, output or _log_output(task.service))
        else:
            self._detach(runtime, task)

    @staticmethod
    def _detach(runtime: ContainerRuntime, task: Task) -> None:
        # exit code is not inspected in detached mode
        try:
            runtime.exec_start(task.container, task.command)
        except RuntimeCommandError as exc:
            raise TaskFailedError(f"exec for {task.service}: {exc}", cause=exc) from exc

    @staticmethod
    def _attach(
        runtime: ContainerRuntime,
        task: Task,
        cancel: threading.Event,
        output: OutputSink,
    ) -> None:
        try:
            exit_code = runtime.exec_attach(task.container, task.command, output, cancel)
        except RuntimeCommandError as exc:
            raise TaskFailedError(f"exec for {task.service}: {exc}", cause=exc) from exc

        if exit_code != 0:
            raise TaskFailedError(f"command returned non-zero code {exit_code}")


def strategy_for(command: Sequence[str], logging: bool) -> ExecutionStrategy:
    """Pick the strategy for a task from its discovery data."""
    if not command:
        return RunStrategy()
    return ExecStrategy(logging=logging)


def _log_output(service: str) -> OutputSink:
    def sink(line: str) -> None:
        logger.info("task.output", service=service, line=line)

    return sink
