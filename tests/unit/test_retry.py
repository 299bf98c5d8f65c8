"""Tests for the exponential backoff helper."""

import pytest

from node_manager.retry import expo


class Flaky:
    """Callable failing a fixed number of times before succeeding."""

    def __init__(self, failures, exc=OSError):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc(f"attempt {self.calls} failed")
        return "ok"


def test_returns_result_without_retrying():
    sleeps = []
    op = Flaky(0)

    assert expo(op, 1.0, 60.0, sleep=sleeps.append) == "ok"
    assert op.calls == 1
    assert sleeps == []


def test_waits_double_between_attempts():
    """Test that the delay doubles without jitter."""
    sleeps = []
    op = Flaky(3)

    assert expo(op, 1.0, 600.0, sleep=sleeps.append) == "ok"
    assert op.calls == 4
    assert sleeps == [1.0, 2.0, 4.0]


def test_waits_are_capped_by_max_interval():
    sleeps = []
    op = Flaky(4)

    expo(op, 1.0, 600.0, max_interval=3.0, sleep=sleeps.append)

    assert sleeps == [1.0, 2.0, 3.0, 3.0]


def test_max_retries_bounds_attempts():
    """Test that the last error is raised once the retry budget is spent."""
    sleeps = []
    op = Flaky(10)

    with pytest.raises(OSError) as exc_info:
        expo(op, 0.5, 600.0, 2, sleep=sleeps.append)

    assert op.calls == 3
    assert str(exc_info.value) == "attempt 3 failed"
    assert sleeps == [0.5, 1.0]


def test_max_elapsed_bounds_attempts():
    """Test that a zero time budget allows a single attempt."""
    op = Flaky(10)

    with pytest.raises(OSError):
        expo(op, 1.0, 0, sleep=lambda s: None)

    assert op.calls == 1


def test_non_retryable_error_is_raised_immediately():
    op = Flaky(1, exc=KeyError)

    with pytest.raises(KeyError):
        expo(op, 1.0, 60.0, retry_on=(OSError,), sleep=lambda s: None)

    assert op.calls == 1
