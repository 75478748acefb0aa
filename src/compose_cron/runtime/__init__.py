"""Container runtime adapters.

Exports:
    ContainerRuntime: protocol consumed by discovery, project resolution and
        the execution strategies.
    DockerCLIRuntime: default implementation over the ``docker`` CLI.
"""

from compose_cron.runtime.docker_cli import DockerCLIRuntime
from compose_cron.runtime.protocol import ContainerInfo, ContainerRuntime, OutputSink, WaitResult

__all__ = [
    "ContainerInfo",
    "ContainerRuntime",
    "DockerCLIRuntime",
    "OutputSink",
    "WaitResult",
]
