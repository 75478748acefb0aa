"""Container runtime protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  CONTAINER RUNTIME PROTOCOL                                                   │
│                                                                               │
│  The scheduler never talks to a container engine directly. Discovery,        │
│  project resolution and both execution strategies go through this            │
│  minimal contract, so tests can substitute an in-memory fake.                │
│                                                                               │
│   Discovery          list_containers(labels)                                 │
│   Project resolver   inspect_labels(container_id)                            │
│   Run strategy       start(container_id) + wait(container_id, cancel)        │
│   Exec strategy      exec_start(...)  |  exec_attach(..., output, cancel)    │
│                                                                               │
│  Blocking calls take the shared cancellation event and raise                 │
│  TaskCancelledError promptly once it is set.                                 │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

OutputSink = Callable[[str], None]


@dataclass(frozen=True)
class ContainerInfo:
    """A container as seen by discovery."""

    container_id: str
    labels: Mapping[str, str] = field(default_factory=dict)
    name: str = ""
    state: str = ""


@dataclass(frozen=True)
class WaitResult:
    """Outcome of waiting for a container to stop running."""

    status_code: int
    error: str | None = None


@runtime_checkable
class ContainerRuntime(Protocol):
    """Operations the scheduler needs from a container engine."""

    def list_containers(self, labels: Sequence[str]) -> list[ContainerInfo]:
        """List containers in any state matching every label filter.

        Filters are ``key=value`` (exact match) or ``key`` (label present).
        """
        ...

    def inspect_labels(self, container_id: str) -> dict[str, str]:
        """Return the label map of one container."""
        ...

    def start(self, container_id: str) -> None:
        """Start a stopped container."""
        ...

    def wait(self, container_id: str, cancel: threading.Event) -> WaitResult:
        """Block until the container is no longer running."""
        ...

    def exec_start(self, container_id: str, command: Sequence[str]) -> None:
        """Start a detached command inside a running container."""
        ...

    def exec_attach(
        self,
        container_id: str,
        command: Sequence[str],
        output: OutputSink,
        cancel: threading.Event,
    ) -> int:
        """Run a command inside a running container, streaming its combined
        output line by line, and return its exit code."""
        ...

    def close(self) -> None:
        """Release client resources."""
        ...
