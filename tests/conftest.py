"""
Shared pytest fixtures for compose-cron tests.

Usage:
    def test_something(runtime, scheduler):
        runtime.containers.append(make_container("c1", "backup"))
        ...
"""

from __future__ import annotations

import sys
import threading
from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

# Ensure compose_cron package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from compose_cron.scheduling import Scheduler  # noqa: E402
from tests._support import FakeRuntime  # noqa: E402


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo configure_logging() calls so capture_logs() works in every test."""
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def clean_settings_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep host environment and stray .env files out of settings tests."""
    for key in (
        "PROJECT",
        "LOG_LEVEL",
        "LOG_JSON",
        "NOTIFY_URL",
        "NOTIFY_METHOD",
        "NOTIFY_RETRIES",
        "NOTIFY_INTERVAL",
        "NOTIFY_TIMEOUT",
        "NOTIFY_AUTHORIZATION",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def cancel() -> threading.Event:
    return threading.Event()


@pytest.fixture
def scheduler(runtime: FakeRuntime, cancel: threading.Event) -> Scheduler:
    return Scheduler(runtime=runtime, project="demo", cancel=cancel)
