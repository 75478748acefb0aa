"""Single-flight guard for one task.

A trigger that fires while the previous run of the same task is still in
flight is dropped, not queued::

    guard = RunGuard("backup")
    with guard.hold():        # raises TaskAlreadyRunning if taken
        run_backup()          # released on every exit path
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from compose_cron.core.errors import TaskAlreadyRunning


class RunGuard:
    """Single-slot flag with test-and-set acquire and unconditional release."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._held = False
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        """Take the slot if free; return whether it was taken."""
        with self._lock:
            if self._held:
                return False
            self._held = True
            return True

    def release(self) -> None:
        with self._lock:
            self._held = False

    @property
    def held(self) -> bool:
        return self._held

    @contextmanager
    def hold(self) -> Iterator[None]:
        if not self.try_acquire():
            raise TaskAlreadyRunning(self.name)
        try:
            yield
        finally:
            self.release()

    def __repr__(self) -> str:
        return f"RunGuard({self.name!r}, held={self._held})"
