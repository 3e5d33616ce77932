"""
Per-sender guard against redundant language-model calls.

Three rules, checked in order for each submission:
1. a sender with a submission still in flight is rejected
2. a sender who made ``burst_limit`` attempts inside ``burst_window`` seconds
   is locked out for ``lockout`` seconds
3. a submission less than ``min_interval`` seconds after the previously
   accepted one is rejected
"""
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from typing import Callable, Deque, Dict, Iterator, Optional, Set

from timesync.core.config import settings
from timesync.core.errors import SubmissionRejected
from timesync.utils.audit_logger import audit_logger


class SubmissionGuard:

    def __init__(
        self,
        min_interval: Optional[float] = None,
        burst_window: Optional[float] = None,
        burst_limit: Optional[int] = None,
        lockout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = settings.SUBMIT_MIN_INTERVAL_SECONDS if min_interval is None else min_interval
        self.burst_window = settings.SUBMIT_BURST_WINDOW_SECONDS if burst_window is None else burst_window
        self.burst_limit = settings.SUBMIT_BURST_LIMIT if burst_limit is None else burst_limit
        self.lockout = settings.SUBMIT_LOCKOUT_SECONDS if lockout is None else lockout
        self.clock = clock

        self._attempts: Dict[str, Deque[float]] = defaultdict(deque)
        self._last_accepted: Dict[str, float] = {}
        self._locked_until: Dict[str, float] = {}
        self._in_flight: Set[str] = set()
        self._last_sweep: Optional[float] = None

    @property
    def _idle_after(self) -> float:
        # Past this age nothing recorded for a sender can affect a check
        return max(self.min_interval, self.burst_window, self.lockout)

    def tracked_senders(self) -> int:
        return len(set(self._attempts) | set(self._last_accepted) | set(self._locked_until))

    def _forget_idle(self, now: float) -> None:
        """Drop senders with nothing left that could reject them; runs at most once per idle period."""
        if self._last_sweep is not None and now - self._last_sweep < self._idle_after:
            return
        self._last_sweep = now
        for sender_id in set(self._attempts) | set(self._last_accepted) | set(self._locked_until):
            if sender_id in self._in_flight or now < self._locked_until.get(sender_id, 0.0):
                continue
            attempts = self._attempts.get(sender_id)
            if attempts and now - attempts[-1] < self.burst_window:
                continue
            last = self._last_accepted.get(sender_id)
            if last is not None and now - last < self.min_interval:
                continue
            self._attempts.pop(sender_id, None)
            self._last_accepted.pop(sender_id, None)
            self._locked_until.pop(sender_id, None)

    def is_in_flight(self, sender_id: str) -> bool:
        return sender_id in self._in_flight

    def check(self, sender_id: str) -> None:
        """Record a submission attempt; raises ``SubmissionRejected`` if it must not run."""
        now = self.clock()
        self._forget_idle(now)

        if sender_id in self._in_flight:
            self._reject(sender_id, SubmissionRejected("in_flight"))

        locked_until = self._locked_until.get(sender_id, 0.0)
        if now < locked_until:
            self._reject(sender_id, SubmissionRejected("locked_out", retry_after=locked_until - now))

        attempts = self._attempts[sender_id]
        while attempts and now - attempts[0] >= self.burst_window:
            attempts.popleft()
        attempts.append(now)

        if len(attempts) >= self.burst_limit:
            attempts.clear()
            self._locked_until[sender_id] = now + self.lockout
            self._reject(sender_id, SubmissionRejected("locked_out", retry_after=self.lockout))

        last = self._last_accepted.get(sender_id)
        if last is not None and now - last < self.min_interval:
            self._reject(sender_id, SubmissionRejected("too_fast", retry_after=self.min_interval - (now - last)))

        self._last_accepted[sender_id] = now

    @contextmanager
    def submission(self, sender_id: str) -> Iterator[None]:
        """Check the sender and mark them in flight for the duration of the block."""
        self.check(sender_id)
        self._in_flight.add(sender_id)
        try:
            yield
        finally:
            self._in_flight.discard(sender_id)

    def _reject(self, sender_id: str, error: SubmissionRejected) -> None:
        audit_logger.log(
            action="submission_checked",
            resource_type="session",
            session_id=sender_id,
            status="rejected",
            details={"reason": error.reason, "retry_after": round(error.retry_after, 3)}
        )
        raise error
