"""Tests for structured logging setup."""

import json

import structlog

from compose_cron.core.logging import (
    bind_context,
    configure_logging,
    get_logger,
)


class TestConfigureLogging:
    def test_json_output(self, capsys):
        configure_logging(level="INFO", json_format=True)
        get_logger("test").info("task.finished", service="backup")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "task.finished"
        assert record["service"] == "backup"
        assert record["level"] == "info"
        assert record["service.name"] == "compose-cron"
        assert "timestamp" in record

    def test_level_filters(self, capsys):
        configure_logging(level="WARNING", json_format=True)
        log = get_logger("test")
        log.info("hidden")
        log.warning("shown")

        out = capsys.readouterr().out
        assert "hidden" not in out
        assert "shown" in out

    def test_custom_service_name(self, capsys):
        configure_logging(level="INFO", json_format=True, service="sched", add_timestamp=False)
        get_logger("test").info("hello")

        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["service.name"] == "sched"
        assert "timestamp" not in record
        configure_logging(level="INFO", json_format=True)

    def test_console_output(self, capsys):
        configure_logging(level="INFO", json_format=False)
        get_logger("test").info("scheduler.started", tasks=2)
        assert "scheduler.started" in capsys.readouterr().out


class TestContext:
    def test_bind_context(self):
        bind_context(project="shop")
        try:
            assert structlog.contextvars.get_contextvars()["project"] == "shop"
        finally:
            structlog.contextvars.unbind_contextvars("project")
