"""Tests for join-all task groups."""

import threading
import time

import pytest

from node_manager.tasks import TaskGroup


def test_wait_returns_when_all_tasks_succeed():
    group = TaskGroup("ok")
    futures = [group.go(lambda x=i: x * 2) for i in range(5)]

    group.wait()

    assert [f.result() for f in futures] == [0, 2, 4, 6, 8]
    assert len(group) == 5


def test_failure_does_not_cancel_siblings():
    """Test that every task runs to completion even when one fails."""
    group = TaskGroup("mixed")
    done = []
    release = threading.Event()

    def fail():
        raise RuntimeError("first")

    def slow():
        release.wait(5)
        time.sleep(0.05)
        done.append("slow")

    group.go(fail)
    group.go(slow)
    release.set()

    with pytest.raises(RuntimeError, match="first"):
        group.wait()
    assert done == ["slow"]


def test_first_error_in_time_is_reported():
    group = TaskGroup("errors")

    def first():
        raise ValueError("early")

    early = group.go(first)

    def second():
        early.exception(timeout=5)
        raise KeyError("late")

    group.go(second)

    with pytest.raises(ValueError, match="early"):
        group.wait()


def test_empty_group_waits_immediately():
    TaskGroup("empty").wait()
