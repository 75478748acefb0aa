"""
Typer application for compose-cron.

Commands:
    run        schedule every labelled service until SIGINT/SIGTERM
    tasks      show the tasks discovered for the project
    run-once   run one service's task immediately and print the outcome

Every option falls back to the environment (see
:mod:`compose_cron.core.settings`).
"""

from __future__ import annotations

import signal
import threading
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from compose_cron import __version__
from compose_cron.core.errors import STARTUP_FATAL, ComposeCronError, ConfigError
from compose_cron.core.logging import bind_context, configure_logging, get_logger
from compose_cron.core.settings import NotifySettings, SchedulerSettings
from compose_cron.scheduling import Scheduler

logger = get_logger(__name__)

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="compose-cron",
    help="compose-cron: run docker compose services on cron schedules.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def get_version() -> str:
    try:
        return pkg_version("compose-cron")
    except PackageNotFoundError:
        return __version__


def user_agent() -> str:
    return f"compose-cron/{get_version()}"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"compose-cron {get_version()}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """compose-cron CLI: schedule compose services from their labels."""


# ── Helpers ─────────────────────────────────────────────────────────────


def load_settings(
    project: str | None = None,
    log_level: str | None = None,
    log_json: bool | None = None,
    **notify: Any,
) -> SchedulerSettings:
    """Environment settings with explicitly given CLI values on top.

    Raises:
        ConfigError: a value from the environment or the command line is invalid.
    """
    try:
        notify_overrides = {k: v for k, v in notify.items() if v is not None}
        overrides: dict[str, Any] = {"notify": NotifySettings(**notify_overrides)}
        if project is not None:
            overrides["project"] = project
        if log_level is not None:
            overrides["log_level"] = log_level
        if log_json is not None:
            overrides["log_json"] = log_json
        return SchedulerSettings(**overrides)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigError(f"invalid settings: {problems}", cause=exc) from exc


def install_signal_handlers(cancel: threading.Event) -> None:
    """Set ``cancel`` on SIGINT/SIGTERM."""

    def _handler(signum: int, frame: Any) -> None:
        logger.info("signal.received", signal=signal.Signals(signum).name)
        cancel.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def _fail(exc: ComposeCronError) -> typer.Exit:
    logger.error("startup.failed", **exc.to_dict())
    err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {exc.message}")
    return typer.Exit(code=1)


def _create(settings: SchedulerSettings, cancel: threading.Event | None = None) -> Scheduler:
    return Scheduler.create(
        project=settings.project or None,
        notifier=settings.notify.build_notifier(user_agent()),
        cancel=cancel,
    )


# ── Commands ────────────────────────────────────────────────────────────


@app.command("run")
def run(
    project: str | None = typer.Option(
        None, "--project", "-p", help="Compose project; detected automatically if not set."
    ),
    notify_url: str | None = typer.Option(None, "--notify-url", help="URL to invoke after each run."),
    notify_method: str | None = typer.Option(None, "--notify-method", help="HTTP method."),
    notify_retries: int | None = typer.Option(None, "--notify-retries", help="Number of additional retries."),
    notify_interval: str | None = typer.Option(None, "--notify-interval", help="Interval between attempts, e.g. 12s."),
    notify_timeout: str | None = typer.Option(None, "--notify-timeout", help="Request timeout, e.g. 30s."),
    notify_authorization: str | None = typer.Option(
        None, "--notify-authorization", help="Authorization header value."
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR."),
    log_json: bool | None = typer.Option(None, "--json-logs/--console-logs", help="Force log format."),
) -> None:
    """Schedule every labelled service until interrupted."""
    try:
        settings = load_settings(
            project=project,
            log_level=log_level,
            log_json=log_json,
            url=notify_url,
            method=notify_method,
            retries=notify_retries,
            interval=notify_interval,
            timeout=notify_timeout,
            authorization=notify_authorization,
        )
    except ConfigError as exc:
        raise _fail(exc) from exc

    configure_logging(level=settings.log_level, json_format=settings.log_json)

    cancel = threading.Event()
    install_signal_handlers(cancel)

    try:
        with _create(settings, cancel) as scheduler:
            bind_context(project=scheduler.project)
            logger.info(
                "scheduler.starting",
                version=get_version(),
                notify=bool(scheduler.notifier),
            )
            scheduler.run()
    except STARTUP_FATAL as exc:
        raise _fail(exc) from exc
    logger.info("scheduler.finished")


@app.command("tasks")
def list_tasks_command(
    project: str | None = typer.Option(None, "--project", "-p", help="Compose project."),
    json_out: bool = typer.Option(False, "--json", help="Print JSON."),
) -> None:
    """Show the tasks discovered for the project."""
    try:
        settings = load_settings(project=project)
    except ConfigError as exc:
        raise _fail(exc) from exc

    configure_logging(level="WARNING", json_format=settings.log_json)

    try:
        with _create(settings) as scheduler:
            entries = scheduler.discover()
            project_name = scheduler.project
    except STARTUP_FATAL as exc:
        raise _fail(exc) from exc

    if json_out:
        console.print_json(
            data=[
                {
                    "service": e.task.service,
                    "container": e.task.container,
                    "schedule": e.task.schedule,
                    "mode": e.task.mode,
                    "command": list(e.task.command),
                    "logging": e.task.logging,
                }
                for e in entries
            ]
        )
        return

    table = Table(title=f"Tasks: {project_name}")
    table.add_column("Service", style="cyan")
    table.add_column("Schedule")
    table.add_column("Mode")
    table.add_column("Command")
    table.add_column("Logs")
    table.add_column("Container", style="dim")
    for e in entries:
        table.add_row(
            e.task.service,
            e.task.schedule,
            e.task.mode,
            " ".join(e.task.command),
            "yes" if e.task.logging else "no",
            e.task.container[:12],
        )
    console.print(table)


@app.command("run-once")
def run_once(
    service: str = typer.Argument(..., help="Service to run now."),
    project: str | None = typer.Option(None, "--project", "-p", help="Compose project."),
    notify: bool = typer.Option(False, "--notify/--no-notify", help="Send the outcome notification."),
) -> None:
    """Run one service's task immediately and print the outcome."""
    try:
        settings = load_settings(project=project)
    except ConfigError as exc:
        raise _fail(exc) from exc

    configure_logging(level=settings.log_level, json_format=settings.log_json)

    cancel = threading.Event()
    install_signal_handlers(cancel)

    try:
        with _create(settings, cancel) as scheduler:
            if not notify:
                scheduler.notifier = None
            payload = scheduler.run_once(service)
    except STARTUP_FATAL as exc:
        raise _fail(exc) from exc

    console.print_json(payload.to_json().decode("utf-8"))
    if payload.failed:
        raise typer.Exit(code=1)
