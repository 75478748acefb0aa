"""Tests for the compose-cron CLI (scheduler construction mocked)."""

import json
import logging
import threading

import pytest
import structlog
from typer.testing import CliRunner

from compose_cron import cli
from compose_cron.cli import app, load_settings
from compose_cron.core.errors import ConfigError, ProjectResolutionError
from compose_cron.runtime.protocol import WaitResult
from compose_cron.scheduling import Scheduler
from tests._support import FakeRuntime, make_container

runner = CliRunner()


def _quiet_logging(**kwargs):
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL))


@pytest.fixture
def fake(monkeypatch):
    """Route Scheduler.create to an in-memory runtime."""
    runtime = FakeRuntime(
        [
            make_container("c1", "backup", schedule="@daily"),
            make_container("c2", "clean", schedule="*/5 * * * *", command="sh -c 'echo hi'", logs="true"),
        ]
    )
    created: list[dict] = []

    def create(**kwargs):
        created.append(kwargs)
        cancel = kwargs.get("cancel")
        if cancel is not None:
            cancel.set()
        return Scheduler(
            runtime,
            kwargs.get("project") or "demo",
            notifier=kwargs.get("notifier"),
            cancel=cancel,
        )

    monkeypatch.setattr(cli.Scheduler, "create", staticmethod(create))
    monkeypatch.setattr(cli, "configure_logging", _quiet_logging)
    monkeypatch.setattr(cli, "install_signal_handlers", lambda cancel: None)
    runtime.created = created
    return runtime


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "compose-cron" in result.output

    def test_user_agent(self):
        assert cli.user_agent().startswith("compose-cron/")


class TestLoadSettings:
    def test_cli_overrides_environment(self, monkeypatch):
        monkeypatch.setenv("PROJECT", "from-env")
        monkeypatch.setenv("NOTIFY_RETRIES", "9")

        settings = load_settings(project="from-cli", retries=None, interval="5s")

        assert settings.project == "from-cli"
        assert settings.notify.retries == 9
        assert settings.notify.interval == 5.0

    def test_environment_used_when_no_option(self, monkeypatch):
        monkeypatch.setenv("PROJECT", "from-env")
        assert load_settings().project == "from-env"


class TestInvalidSettings:
    def test_bad_environment_value(self, fake, monkeypatch):
        monkeypatch.setenv("NOTIFY_INTERVAL", "bogus")

        result = runner.invoke(app, ["run"])

        assert result.exit_code == 1
        assert "CONFIG" in result.output
        assert fake.created == []

    def test_bad_option_value(self, fake):
        result = runner.invoke(app, ["run", "--notify-interval", "abc"])
        assert result.exit_code == 1
        assert fake.created == []

    def test_negative_retries(self, fake, monkeypatch):
        monkeypatch.setenv("NOTIFY_RETRIES", "-1")
        for command in (["tasks"], ["run-once", "backup"]):
            assert runner.invoke(app, command).exit_code == 1

    def test_load_settings_raises_config_error(self, monkeypatch):
        monkeypatch.setenv("NOTIFY_INTERVAL", "bogus")
        with pytest.raises(ConfigError, match="interval"):
            load_settings()


class TestTasksCommand:
    def test_json(self, fake):
        result = runner.invoke(app, ["tasks", "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert [t["service"] for t in data] == ["backup", "clean"]
        assert data[0]["mode"] == "run"
        assert data[1]["command"] == ["sh", "-c", "echo hi"]
        assert data[1]["logging"] is True

    def test_table(self, fake):
        result = runner.invoke(app, ["tasks", "--project", "demo"])
        assert result.exit_code == 0, result.output
        assert "backup" in result.output
        assert "clean" in result.output
        assert fake.created[0]["project"] == "demo"

    def test_startup_failure(self, fake, monkeypatch):
        def broken(**kwargs):
            raise ProjectResolutionError("failed to detect own container id")

        monkeypatch.setattr(cli.Scheduler, "create", staticmethod(broken))
        result = runner.invoke(app, ["tasks"])
        assert result.exit_code == 1


class TestRunCommand:
    def test_runs_until_cancelled(self, fake):
        result = runner.invoke(app, ["run", "--project", "demo"])
        assert result.exit_code == 0, result.output
        assert fake.count("list_containers") == 1
        assert isinstance(fake.created[0]["cancel"], threading.Event)

    def test_notifier_from_options(self, fake):
        result = runner.invoke(
            app,
            ["run", "--notify-url", "http://hooks.local", "--notify-retries", "2", "--notify-interval", "1s"],
        )
        assert result.exit_code == 0, result.output
        notifier = fake.created[0]["notifier"]
        assert notifier.url == "http://hooks.local"
        assert notifier.retries == 2
        assert notifier.interval == 1.0
        assert notifier.user_agent.startswith("compose-cron/")

    def test_no_notifier_without_url(self, fake):
        runner.invoke(app, ["run"])
        assert fake.created[0]["notifier"] is None

    def test_invalid_schedule_exits(self, fake):
        fake.containers.append(make_container("c3", "broken", schedule="whenever"))
        result = runner.invoke(app, ["run"])
        assert result.exit_code == 1
        assert fake.count("start") == 0


class TestRunOnceCommand:
    def test_success(self, fake, monkeypatch):
        # run-once must not see a pre-set cancel event
        monkeypatch.setattr(
            cli.Scheduler,
            "create",
            staticmethod(lambda **kw: Scheduler(fake, "demo", notifier=kw.get("notifier"))),
        )
        result = runner.invoke(app, ["run-once", "backup"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["service"] == "backup"
        assert payload["failed"] is False
        assert "error" not in payload

    def test_failure_exit_code(self, fake, monkeypatch):
        fake.wait_results["c1"] = WaitResult(status_code=4)
        monkeypatch.setattr(cli.Scheduler, "create", staticmethod(lambda **kw: Scheduler(fake, "demo")))

        result = runner.invoke(app, ["run-once", "backup"])

        assert result.exit_code == 1
        assert "status code 4" in result.output

    def test_unknown_service(self, fake):
        result = runner.invoke(app, ["run-once", "web"])
        assert result.exit_code == 1
