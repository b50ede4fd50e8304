"""
Sliding-window rate limiter.

Each key owns an ordered list of admission timestamps. ``admit`` prunes
entries that fell out of the trailing window and records a new timestamp
only when the request is admitted. Denial is a normal ``False`` result,
never an exception.

Windows are process-local and safe to lose on restart. A multi-instance
deployment keeps the same algorithm with the timestamps moved to a shared
store.
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta

from .locks import KeyedLocks
from .ports import Clock, utc_now


@dataclass(frozen=True)
class RateLimitPolicy:
    max_attempts: int
    window: timedelta


# Defaults per action, matching the registry's public limits.
HTTP_POLICY = RateLimitPolicy(max_attempts=10, window=timedelta(seconds=60))
VERIFICATION_POLICY = RateLimitPolicy(max_attempts=5, window=timedelta(seconds=300))
REPORT_POLICY = RateLimitPolicy(max_attempts=3, window=timedelta(seconds=600))


class RateLimiter:
    """Admission control for one action, keyed by actor."""

    def __init__(self, max_attempts: int, window: timedelta, clock: Clock = utc_now) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.window = window
        self.locks = KeyedLocks()
        self._clock = clock
        self._windows: dict[str, deque[datetime]] = {}

    @classmethod
    def from_policy(cls, policy: RateLimitPolicy, clock: Clock = utc_now) -> "RateLimiter":
        return cls(policy.max_attempts, policy.window, clock)

    def __len__(self) -> int:
        return len(self._windows)

    def _prune(self, key: str, now: datetime) -> deque[datetime]:
        timestamps = self._windows.setdefault(key, deque())
        cutoff = now - self.window
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()
        return timestamps

    def admit(self, key: str) -> bool:
        with self.locks.hold(key):
            now = self._clock()
            timestamps = self._prune(key, now)
            if len(timestamps) >= self.max_attempts:
                return False
            timestamps.append(now)
            return True

    def remaining(self, key: str) -> int:
        with self.locks.hold(key):
            timestamps = self._prune(key, self._clock())
            return max(0, self.max_attempts - len(timestamps))

    def cleanup(self) -> int:
        """Drop keys whose window is empty. Returns the number of keys dropped."""
        dropped = 0
        for key in list(self._windows):
            with self.locks.hold(key):
                timestamps = self._windows.get(key)
                if timestamps is not None and not self._prune(key, self._clock()):
                    del self._windows[key]
                    dropped += 1
        return dropped


class ActionRateLimits:
    """One RateLimiter per action; keys are (actor, action) pairs."""

    def __init__(self, policies: dict[str, RateLimitPolicy], clock: Clock = utc_now) -> None:
        self._limiters = {
            action: RateLimiter.from_policy(policy, clock) for action, policy in policies.items()
        }

    def _limiter(self, action: str) -> RateLimiter:
        try:
            return self._limiters[action]
        except KeyError:
            raise ValueError(f"No rate limit policy for action: {action}") from None

    def admit(self, actor: str, action: str) -> bool:
        return self._limiter(action).admit(actor)

    def remaining(self, actor: str, action: str) -> int:
        return self._limiter(action).remaining(actor)

    def cleanup(self) -> int:
        return sum(limiter.cleanup() for limiter in self._limiters.values())
