"""Tests for the docker CLI wrapper (subprocess calls are mocked)."""

from __future__ import annotations

import subprocess
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from conftest import completed

from claude_sandbox.runtime import (
    DockerClient,
    DockerCommandError,
    mount_args,
    parse_docker_timestamp,
)
from claude_sandbox.types import VolumeMount


class TestParseTimestamp:
    def test_nanoseconds_truncated(self):
        parsed = parse_docker_timestamp("2024-03-05T10:20:30.123456789Z\n")
        assert parsed == datetime(2024, 3, 5, 10, 20, 30, 123456, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        parsed = parse_docker_timestamp("2024-03-05T10:20:30-05:00")
        assert parsed == datetime(2024, 3, 5, 15, 20, 30, tzinfo=timezone.utc)

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            parse_docker_timestamp("yesterday")


class TestMountArgs:
    def test_readonly_uses_mount_flag(self):
        args = mount_args([VolumeMount("/host/setup", "/opt/sandbox", readonly=True)])
        assert args == ["--mount", "type=bind,source=/host/setup,target=/opt/sandbox,readonly"]

    def test_readwrite_uses_volume_flag(self):
        args = mount_args([VolumeMount("/host/proj", "/workspace")])
        assert args == ["-v", "/host/proj:/workspace:rw"]


class TestDockerClient:
    def test_run_check_raises(self):
        client = DockerClient()
        with patch("subprocess.run", return_value=completed(1, stderr="boom")):
            with pytest.raises(DockerCommandError, match="boom"):
                client.run("start", "abc", check=True)

    def test_inspect_missing_image(self):
        with patch("subprocess.run", return_value=completed(1, stderr="No such image")):
            assert DockerClient().inspect_image("img") is None

    def test_inspect_existing_image(self):
        out = completed(0, stdout="2024-01-01T00:00:00.5Z\n")
        with patch("subprocess.run", return_value=out) as run:
            desc = DockerClient().inspect_image("img")
        assert desc is not None
        assert desc.created_at == datetime(2024, 1, 1, 0, 0, 0, 500000, tzinfo=timezone.utc)
        assert run.call_args[0][0] == [
            "docker", "image", "inspect", "--format", "{{.Created}}", "img"
        ]

    def test_create_container_args(self):
        mounts = [
            VolumeMount("/p", "/workspace"),
            VolumeMount("/s", "/opt/sandbox", readonly=True),
        ]
        with patch("subprocess.run", return_value=completed(0, stdout="cid123\n")) as run:
            cid = DockerClient().create_container(
                name="sb",
                image="img",
                mounts=mounts,
                env=["A=1"],
                user="claude",
                workdir="/workspace",
            )
        assert cid == "cid123"
        argv = run.call_args[0][0]
        assert argv[:9] == [
            "docker", "create", "--name", "sb", "-it", "--user", "claude", "-w", "/workspace"
        ]
        assert ["-e", "A=1"] == argv[argv.index("-e") : argv.index("-e") + 2]
        assert argv[-2:] == ["img", "/bin/bash"]
        assert "/p:/workspace:rw" in argv

    def test_remove_forces_and_drops_volumes(self):
        with patch("subprocess.run", return_value=completed(0)) as run:
            DockerClient().remove_container("cid")
        assert run.call_args[0][0] == ["docker", "rm", "-f", "-v", "cid"]

    def test_exec_interactive_passes_env(self):
        with patch("subprocess.run", return_value=completed(7)) as run:
            code = DockerClient().exec_interactive("cid", ["bash"], env=["PATH=/x"])
        assert code == 7
        assert run.call_args[0][0] == ["docker", "exec", "-it", "-e", "PATH=/x", "cid", "bash"]

    def test_logs_combines_streams(self):
        with patch("subprocess.run", return_value=completed(0, stdout="out\n", stderr="err\n")):
            assert DockerClient().logs("cid") == "out\nerr\n"

    def test_ping_false_when_daemon_down(self):
        with (
            patch("shutil.which", return_value="/usr/bin/docker"),
            patch("subprocess.run", return_value=completed(1)),
        ):
            assert DockerClient().ping() is False

    def test_ping_false_on_timeout(self):
        with (
            patch("shutil.which", return_value="/usr/bin/docker"),
            patch("subprocess.run", side_effect=subprocess.TimeoutExpired("docker", 15)),
        ):
            assert DockerClient().ping() is False

    def test_ping_false_without_cli(self):
        with patch("shutil.which", return_value=None):
            assert DockerClient().ping() is False
