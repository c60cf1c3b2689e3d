from contextlib import ExitStack

import pytest

from ai_jobs.domain.errors import AlreadyPollingError, CircuitBreakerOpenError
from ai_jobs.domain.states import PollStrategy
from ai_jobs.polling.guard import PollingGuard


def test_hold_marks_job_active_until_exit():
    guard = PollingGuard()
    with guard.hold("job-1"):
        assert guard.is_active("job-1")
    assert not guard.is_active("job-1")


def test_second_hold_is_rejected():
    guard = PollingGuard()
    with guard.hold("job-1"):
        with pytest.raises(AlreadyPollingError):
            with guard.hold("job-1", PollStrategy.FIXED_INTERVAL):
                pass
        # The rejected attempt must not release the first holder
        assert guard.is_active("job-1")


def test_hold_releases_on_error():
    guard = PollingGuard()
    with pytest.raises(RuntimeError):
        with guard.hold("job-1"):
            raise RuntimeError("boom")
    assert not guard.is_active("job-1")


def test_breaker_opens_at_threshold():
    guard = PollingGuard(threshold=5)
    for expected in range(1, 5):
        assert guard.record_failure("job-1") == expected
        assert not guard.is_open("job-1")

    assert guard.record_failure("job-1") == 5
    assert guard.is_open("job-1")
    with pytest.raises(CircuitBreakerOpenError) as exc:
        with guard.hold("job-1"):
            pass
    assert exc.value.failures == 5
    assert not guard.is_active("job-1")


def test_dedup_is_checked_before_breaker():
    guard = PollingGuard(threshold=1)
    with guard.hold("job-1"):
        guard.record_failure("job-1")
        with pytest.raises(AlreadyPollingError):
            with guard.hold("job-1"):
                pass


def test_success_clears_failures():
    guard = PollingGuard()
    guard.record_failure("job-1")
    guard.record_failure("job-1")
    guard.record_success("job-1")
    assert guard.failure_count("job-1") == 0


def test_strategies_are_counted_separately():
    guard = PollingGuard(threshold=2)
    guard.record_failure("job-1", PollStrategy.FIXED_INTERVAL)
    guard.record_failure("job-1", PollStrategy.FIXED_INTERVAL)

    assert guard.failure_count("job-1", PollStrategy.FIXED_INTERVAL) == 2
    assert guard.failure_count("job-1") == 0
    assert not guard.is_open("job-1")
    with guard.hold("job-1", PollStrategy.BACKOFF):
        pass
    with pytest.raises(CircuitBreakerOpenError):
        with guard.hold("job-1", PollStrategy.FIXED_INTERVAL):
            pass


def test_reset_clears_every_strategy():
    guard = PollingGuard(threshold=1)
    guard.record_failure("job-1")
    guard.record_failure("job-1", PollStrategy.FIXED_INTERVAL)

    guard.reset("job-1")

    assert not guard.is_open("job-1")
    assert guard.failure_count("job-1", PollStrategy.FIXED_INTERVAL) == 0
    with guard.hold("job-1"):
        pass


def test_jobs_do_not_share_state():
    guard = PollingGuard(threshold=1)
    guard.record_failure("job-1")
    assert guard.is_open("job-1")
    assert not guard.is_open("job-2")
    with guard.hold("job-2"):
        assert not guard.is_active("job-1")


def test_stale_holder_does_not_release_newer_hold():
    guard = PollingGuard()
    newer = ExitStack()

    with guard.hold("job-1"):
        guard.reset("job-1")
        newer.enter_context(guard.hold("job-1"))

    assert guard.is_active("job-1")
    with pytest.raises(AlreadyPollingError):
        with guard.hold("job-1"):
            pass

    newer.close()
    assert not guard.is_active("job-1")
