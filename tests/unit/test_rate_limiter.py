import pytest

from timesync.core.errors import SubmissionRejected
from timesync.services.rooms.rate_limiter import SubmissionGuard
from tests.helpers import FakeClock


def _guard(clock):
    return SubmissionGuard(min_interval=1.0, burst_window=5.0, burst_limit=3, lockout=30.0, clock=clock)


def test_second_submission_within_a_second_is_rejected():
    clock = FakeClock()
    guard = _guard(clock)
    guard.check("alice")

    clock.advance(0.4)
    with pytest.raises(SubmissionRejected) as excinfo:
        guard.check("alice")

    assert excinfo.value.reason == "too_fast"
    assert excinfo.value.retry_after == pytest.approx(0.6)


def test_senders_are_limited_independently():
    clock = FakeClock()
    guard = _guard(clock)

    guard.check("alice")
    guard.check("bob")


def test_three_submissions_in_five_seconds_lock_out_for_thirty():
    clock = FakeClock()
    guard = _guard(clock)

    guard.check("alice")
    clock.advance(2)
    guard.check("alice")
    clock.advance(2)
    with pytest.raises(SubmissionRejected) as excinfo:
        guard.check("alice")
    assert excinfo.value.reason == "locked_out"
    assert excinfo.value.retry_after == 30.0

    clock.advance(29)
    with pytest.raises(SubmissionRejected) as excinfo:
        guard.check("alice")
    assert excinfo.value.reason == "locked_out"
    assert "1초" in excinfo.value.user_message

    clock.advance(1.5)
    guard.check("alice")


def test_spaced_out_submissions_are_accepted():
    clock = FakeClock()
    guard = _guard(clock)

    for _ in range(5):
        guard.check("alice")
        clock.advance(3)


def test_in_flight_sender_is_rejected_until_done():
    clock = FakeClock()
    guard = _guard(clock)

    with guard.submission("alice"):
        assert guard.is_in_flight("alice")
        clock.advance(2)
        with pytest.raises(SubmissionRejected) as excinfo:
            guard.check("alice")
        assert excinfo.value.reason == "in_flight"

    assert not guard.is_in_flight("alice")


def test_in_flight_flag_clears_when_the_block_raises():
    guard = _guard(FakeClock())

    with pytest.raises(RuntimeError):
        with guard.submission("alice"):
            raise RuntimeError("llm down")

    assert not guard.is_in_flight("alice")


def test_idle_senders_are_forgotten():
    clock = FakeClock()
    guard = _guard(clock)

    for index in range(1000):
        guard.check(f"sender-{index}")
        clock.advance(3600)

    assert guard.tracked_senders() == 1


def test_locked_out_sender_survives_idle_sweep():
    clock = FakeClock()
    guard = _guard(clock)
    guard.check("alice")
    clock.advance(1.5)
    guard.check("alice")
    clock.advance(1.5)
    with pytest.raises(SubmissionRejected):
        guard.check("alice")

    clock.advance(28)
    guard.check("bob")

    with pytest.raises(SubmissionRejected) as excinfo:
        guard.check("alice")
    assert excinfo.value.reason == "locked_out"
