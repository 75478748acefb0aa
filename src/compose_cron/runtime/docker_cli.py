"""Container runtime backed by the ``docker`` CLI.

Talks to the engine via subprocess. No ``docker-py`` dependency: the CLI
works with Docker Desktop, Podman (``docker`` shim), Colima and any
remote engine configured through ``DOCKER_HOST``.

Key Concepts:
    DockerCLIRuntime: implements :class:`~compose_cron.runtime.protocol.ContainerRuntime`.
    list_containers(): ``docker ps --all`` with label filters, then
        ``docker inspect`` for the full label map (``ps`` flattens labels
        into a comma-joined string that cannot carry commas in values).
    wait(): ``docker wait`` in a child process polled against the
        cancellation event.
    exec_attach(): ``docker exec`` with stdout+stderr merged, copied line by
        line to the output sink from a reader thread.

Architecture Decisions:
    - The docker binary is located once at construction. A missing binary
      is a startup error (RuntimeUnavailableError).
    - Blocking calls poll the cancellation event every ``poll_interval``
      seconds and terminate the child process when it is set.

Related Modules:
    - :mod:`compose_cron.runtime.protocol`: the interface implemented here
    - :mod:`compose_cron.execution`: run/exec strategies calling this runtime
"""

from __future__ import annotations

import json
import shutil
import subprocess
import threading
from collections.abc import Sequence
from typing import IO, Any

from compose_cron.core.errors import (
    RuntimeCommandError,
    RuntimeUnavailableError,
    TaskCancelledError,
)
from compose_cron.core.logging import get_logger
from compose_cron.runtime.protocol import ContainerInfo, OutputSink, WaitResult

logger = get_logger(__name__)


class DockerCLIRuntime:
    """Container runtime using the ``docker`` CLI.

    Parameters
    ----------
    docker_cmd
        Path to the docker binary (looked up on PATH when omitted).
    command_timeout
        Timeout for short, non-blocking docker commands.
    poll_interval
        How often blocking waits check the cancellation event.

    Example::

        runtime = DockerCLIRuntime()
        runtime.start("3f2a...")
        result = runtime.wait("3f2a...", cancel)
    """

    def __init__(
        self,
        docker_cmd: str | None = None,
        command_timeout: float = 60.0,
        poll_interval: float = 0.5,
    ) -> None:
        self._docker_cmd = docker_cmd or self._find_docker()
        self.command_timeout = command_timeout
        self.poll_interval = poll_interval

    # ------------------------------------------------------------------
    # Docker CLI discovery
    # ------------------------------------------------------------------

    @staticmethod
    def _find_docker() -> str:
        """Find the docker CLI binary."""
        docker = shutil.which("docker")
        if docker is None:
            raise RuntimeUnavailableError(
                "Docker CLI not found on PATH. Install the docker client or add it to PATH."
            )
        return docker

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_containers(self, labels: Sequence[str]) -> list[ContainerInfo]:
        """List containers (running or not) carrying every label filter."""
        cmd = ["ps", "--all", "--quiet", "--no-trunc"]
        for label in labels:
            cmd.extend(["--filter", f"label={label}"])

        result = self._run_docker(cmd)
        ids = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if not ids:
            return []

        containers = []
        for item in self._inspect(ids):
            state = item.get("State") or {}
            containers.append(
                ContainerInfo(
                    container_id=item["Id"],
                    labels=dict((item.get("Config") or {}).get("Labels") or {}),
                    name=str(item.get("Name", "")).lstrip("/"),
                    state=str(state.get("Status", "")),
                )
            )
        return containers

    def inspect_labels(self, container_id: str) -> dict[str, str]:
        """Return the label map of one container."""
        (item,) = self._inspect([container_id])
        return dict((item.get("Config") or {}).get("Labels") or {})

    # ------------------------------------------------------------------
    # Run strategy primitives
    # ------------------------------------------------------------------

    def start(self, container_id: str) -> None:
        """Start a stopped container."""
        self._run_docker(["start", container_id])

    def wait(self, container_id: str, cancel: threading.Event) -> WaitResult:
        """Block until the container stops; return its exit status."""
        proc = self._spawn(["wait", container_id], stderr=subprocess.PIPE)
        try:
            self._wait_process(proc, cancel)
        finally:
            # drains and closes both pipes, also after a kill
            stdout, stderr = proc.communicate()

        if proc.returncode != 0:
            raise RuntimeCommandError(
                f"docker wait failed (exit {proc.returncode}): {stderr.strip()}",
                context={"container": container_id},
            )
        try:
            status_code = int(stdout.strip().splitlines()[-1])
        except (IndexError, ValueError) as exc:
            raise RuntimeCommandError(
                f"unexpected docker wait output: {stdout.strip()!r}", cause=exc
            ) from exc

        error = self._state_error(container_id)
        return WaitResult(status_code=status_code, error=error or None)

    # ------------------------------------------------------------------
    # Exec strategy primitives
    # ------------------------------------------------------------------

    def exec_start(self, container_id: str, command: Sequence[str]) -> None:
        """Start a detached command inside a running container."""
        self._run_docker(["exec", "--detach", container_id, *command])

    def exec_attach(
        self,
        container_id: str,
        command: Sequence[str],
        output: OutputSink,
        cancel: threading.Event,
    ) -> int:
        """Run a command in the container, streaming combined output."""
        proc = self._spawn(["exec", container_id, *command], stderr=subprocess.STDOUT)

        reader = threading.Thread(
            target=_copy_lines,
            args=(proc.stdout, output),
            daemon=True,
            name=f"exec-output-{container_id[:12]}",
        )
        reader.start()
        try:
            self._wait_process(proc, cancel)
        finally:
            reader.join(timeout=self.command_timeout)
        return proc.returncode

    def close(self) -> None:
        """Nothing to release: every call is a separate process."""

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _inspect(self, ids: Sequence[str]) -> list[dict[str, Any]]:
        result = self._run_docker(["inspect", "--type", "container", *ids])
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise RuntimeCommandError("docker inspect returned invalid JSON", cause=exc) from exc
        if not isinstance(data, list):
            raise RuntimeCommandError("docker inspect returned unexpected payload")
        return data

    def _state_error(self, container_id: str) -> str:
        result = self._run_docker(
            ["inspect", "--type", "container", "--format", "{{.State.Error}}", container_id],
            check=False,
        )
        return result.stdout.strip() if result.returncode == 0 else ""

    def _run_docker(
        self,
        args: list[str],
        check: bool = True,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run a short docker CLI command."""
        timeout = timeout or self.command_timeout
        cmd = [self._docker_cmd, *args]
        logger.debug("docker.exec", cmd=" ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise RuntimeCommandError(
                f"Docker command timed out after {timeout}s: {' '.join(args)}", cause=exc
            ) from exc
        except OSError as exc:
            raise RuntimeCommandError(f"Docker command failed to start: {exc}", cause=exc) from exc

        if check and result.returncode != 0:
            raise RuntimeCommandError(
                f"Docker command failed (exit {result.returncode}): "
                f"{' '.join(args)}: {result.stderr.strip()}"
            )
        return result

    def _spawn(self, args: list[str], stderr: int) -> subprocess.Popen[str]:
        cmd = [self._docker_cmd, *args]
        logger.debug("docker.spawn", cmd=" ".join(cmd))
        try:
            return subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=stderr,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            raise RuntimeCommandError(f"Docker command failed to start: {exc}", cause=exc) from exc

    def _wait_process(self, proc: subprocess.Popen[str], cancel: threading.Event) -> None:
        """Wait for the child, terminating it if cancellation is requested."""
        while proc.poll() is None:
            if cancel.wait(self.poll_interval):
                proc.terminate()
                try:
                    proc.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    proc.kill()
                    proc.wait()
                raise TaskCancelledError()


def _copy_lines(stream: IO[str] | None, output: OutputSink) -> None:
    if stream is None:
        return
    with stream:
        for line in stream:
            output(line.rstrip("\n"))
