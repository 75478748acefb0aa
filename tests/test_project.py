"""Tests for compose project self-detection."""

import pytest

from compose_cron.core.errors import ProjectResolutionError
from compose_cron.discovery import COMPOSE_PROJECT_LABEL
from compose_cron.project import (
    CpusetProbe,
    MountinfoProbe,
    ProbeFailed,
    detect_container_id,
    resolve_project,
)
from compose_cron.runtime.protocol import ContainerInfo
from tests._support import FakeRuntime

CONTAINER_ID = "4f1c0b0e9d6a" + "a" * 52


class StaticProbe:
    def __init__(self, name, value=None):
        self.name = name
        self.value = value
        self.calls = 0

    def lookup(self):
        self.calls += 1
        if self.value is None:
            raise ProbeFailed(f"{self.name} failed")
        return self.value


class TestCpusetProbe:
    def test_docker_cgroup(self, tmp_path):
        path = tmp_path / "cpuset"
        path.write_text(f"/docker/{CONTAINER_ID}\n")
        assert CpusetProbe(path=path).lookup() == CONTAINER_ID

    @pytest.mark.parametrize("content", ["/\n", "", "\n"])
    def test_root_cgroup(self, tmp_path, content):
        path = tmp_path / "cpuset"
        path.write_text(content)
        with pytest.raises(ProbeFailed):
            CpusetProbe(path=path).lookup()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ProbeFailed):
            CpusetProbe(path=tmp_path / "absent").lookup()


class TestMountinfoProbe:
    def test_finds_id(self, tmp_path):
        path = tmp_path / "mountinfo"
        path.write_text(
            "1 0 0:1 / / rw - overlay overlay rw\n"
            f"2 1 8:1 /var/lib/docker/containers/{CONTAINER_ID}/resolv.conf /etc/resolv.conf rw - ext4 /dev/sda1 rw\n"
        )
        assert MountinfoProbe(path=path).lookup() == CONTAINER_ID

    def test_no_id(self, tmp_path):
        path = tmp_path / "mountinfo"
        path.write_text("1 0 0:1 / / rw - overlay overlay rw\n")
        with pytest.raises(ProbeFailed):
            MountinfoProbe(path=path).lookup()


class TestDetectContainerId:
    def test_first_success_wins(self):
        first = StaticProbe("first")
        second = StaticProbe("second", "abc")
        third = StaticProbe("third", "def")

        assert detect_container_id([first, second, third]) == "abc"
        assert (first.calls, second.calls, third.calls) == (1, 1, 0)

    def test_all_fail(self):
        with pytest.raises(ProjectResolutionError, match="own container id"):
            detect_container_id([StaticProbe("a"), StaticProbe("b")])


class TestResolveProject:
    def test_reads_project_label(self):
        runtime = FakeRuntime([ContainerInfo(container_id="self", labels={COMPOSE_PROJECT_LABEL: "shop"})])
        assert resolve_project(runtime, [StaticProbe("p", "self")]) == "shop"
        assert runtime.count("inspect_labels") == 1

    def test_missing_label(self):
        runtime = FakeRuntime([ContainerInfo(container_id="self", labels={})])
        with pytest.raises(ProjectResolutionError, match="compose label not found"):
            resolve_project(runtime, [StaticProbe("p", "self")])

    def test_inspect_failure(self):
        runtime = FakeRuntime()
        with pytest.raises(ProjectResolutionError, match="inspect self container"):
            resolve_project(runtime, [StaticProbe("p", "ghost")])

    def test_no_id(self):
        runtime = FakeRuntime()
        with pytest.raises(ProjectResolutionError):
            resolve_project(runtime, [StaticProbe("p")])
        assert runtime.count("inspect_labels") == 0
