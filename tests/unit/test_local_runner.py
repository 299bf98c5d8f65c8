"""Tests for running commands and copying files on the local host."""

import stat
import sys

import pytest

from node_manager.command import CopyableFile, LocalRunner, RunResult
from node_manager.exceptions import ExecutionError


def test_run_cmd_captures_output():
    runner = LocalRunner()

    rr = runner.run_cmd([sys.executable, "-c", "print('hello')"])

    assert rr.stdout.strip() == "hello"
    assert rr.duration >= 0


def test_non_zero_exit_raises_execution_error():
    """Test that a failing command carries argv, exit code and stderr."""
    runner = LocalRunner()
    script = "import sys; sys.stderr.write('boom'); sys.exit(3)"

    with pytest.raises(ExecutionError) as exc_info:
        runner.run_cmd([sys.executable, "-c", script])

    err = exc_info.value
    assert err.exit_code == 3
    assert err.stderr == "boom"
    assert err.argv[0] == sys.executable
    assert "exit status 3" in err.message


def test_missing_executable_raises_execution_error():
    runner = LocalRunner()

    with pytest.raises(ExecutionError) as exc_info:
        runner.run_cmd(["definitely-not-a-command-xyz"])

    assert "command not found" in exc_info.value.message


def test_timeout_raises_execution_error():
    runner = LocalRunner(timeout=0.1)

    with pytest.raises(ExecutionError) as exc_info:
        runner.run_cmd([sys.executable, "-c", "import time; time.sleep(5)"])

    assert "timed out" in exc_info.value.message


def test_copy_creates_directory_and_sets_permissions(tmp_path):
    """Test that copy writes bytes with the requested mode."""
    runner = LocalRunner()
    target_dir = tmp_path / "binaries" / "v1.20.0"
    f = CopyableFile.from_bytes(b"#!/bin/sh\n", str(target_dir), "kubeadm", permissions="0755")

    runner.copy(f)

    dest = target_dir / "kubeadm"
    assert dest.read_bytes() == b"#!/bin/sh\n"
    assert stat.S_IMODE(dest.stat().st_mode) == 0o755


def test_copy_overwrites_existing_file(tmp_path):
    runner = LocalRunner()
    (tmp_path / "config").write_text("old")

    runner.copy(CopyableFile.from_bytes(b"new", str(tmp_path), "config"))

    assert (tmp_path / "config").read_text() == "new"


def test_copy_from_path(tmp_path):
    runner = LocalRunner()
    source = tmp_path / "kubelet"
    source.write_bytes(b"binary")

    runner.copy(CopyableFile.from_path(source, str(tmp_path / "out")))

    assert (tmp_path / "out" / "kubelet").read_bytes() == b"binary"


def test_remove_deletes_file(tmp_path):
    runner = LocalRunner()
    f = CopyableFile.from_bytes(b"x", str(tmp_path), "file")
    runner.copy(f)

    runner.remove(f)

    assert not (tmp_path / "file").exists()


def test_remove_missing_file_is_not_an_error(tmp_path):
    runner = LocalRunner()
    runner.remove(CopyableFile.from_bytes(b"", str(tmp_path), "missing"))


def test_copyable_file_requires_one_source():
    with pytest.raises(ValueError):
        CopyableFile(asset_name="x", target_dir="/tmp", target_name="x")


def test_copyable_file_rejects_bad_permissions():
    with pytest.raises(ValueError):
        CopyableFile.from_bytes(b"", "/tmp", "x", permissions="rwx")


def test_run_result_output_sections():
    rr = RunResult(args=("ls",), stdout="a", stderr="b")

    out = rr.output()

    assert "-- stdout --\na" in out
    assert "** stderr **\nb" in out
