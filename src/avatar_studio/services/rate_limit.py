"""Admission control keyed by user id.

Both gates acquire on check: an admitted call consumes one slot, a denied
call consumes nothing. Neither method awaits, so check-and-consume is
atomic on the event loop.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import Protocol


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class RateGate(Protocol):
    """Admission policy interface."""

    def try_acquire(self, key: int) -> bool:
        """Consume a slot for ``key`` and return True, or return False."""

    def remaining(self, key: int) -> int:
        """Return how many slots ``key`` has left right now."""

    def release(self, key: int) -> None:
        """Give back the most recent slot consumed by ``key``."""


@dataclass
class SlidingWindowRateGate(RateGate):
    """Admit at most ``limit`` grants per key within a trailing window."""

    limit: int
    window_seconds: float
    clock: Callable[[], datetime] = _utc_now
    _grants: dict[int, list[datetime]] = field(default_factory=dict, repr=False)

    def try_acquire(self, key: int) -> bool:
        """Admit and record a grant when under the limit."""
        now = self.clock()
        history = self._prune(key, now)
        if len(history) >= self.limit:
            return False
        history.append(now)
        return True

    def remaining(self, key: int) -> int:
        """Return the number of grants still available in the window."""
        history = self._prune(key, self.clock())
        return max(0, self.limit - len(history))

    def release(self, key: int) -> None:
        """Undo the latest grant, for a call admitted here but refused later."""
        history = self._grants.get(key)
        if history:
            history.pop()

    def reset(self, key: int) -> None:
        """Forget all grants for a key."""
        self._grants.pop(key, None)

    def _prune(self, key: int, now: datetime) -> list[datetime]:
        window_start = now - timedelta(seconds=self.window_seconds)
        history = [ts for ts in self._grants.get(key, []) if ts > window_start]
        self._grants[key] = history
        return history


@dataclass
class DailyRateGate(RateGate):
    """Admit at most ``daily_limit`` grants per key per UTC calendar day."""

    daily_limit: int
    clock: Callable[[], datetime] = _utc_now
    _counts: dict[int, tuple[date, int]] = field(default_factory=dict, repr=False)

    def try_acquire(self, key: int) -> bool:
        """Admit and count a grant when today's cap is not reached."""
        today = self._today()
        used = self._used(key, today)
        if used >= self.daily_limit:
            return False
        self._counts[key] = (today, used + 1)
        return True

    def remaining(self, key: int) -> int:
        """Return the number of grants still available today."""
        return max(0, self.daily_limit - self._used(key, self._today()))

    def release(self, key: int) -> None:
        """Undo one of today's grants."""
        today = self._today()
        used = self._used(key, today)
        if used:
            self._counts[key] = (today, used - 1)

    def reset(self, key: int) -> None:
        """Forget today's count for a key."""
        self._counts.pop(key, None)

    def _today(self) -> date:
        return self.clock().astimezone(UTC).date()

    def _used(self, key: int, today: date) -> int:
        entry = self._counts.get(key)
        if entry is None or entry[0] != today:
            return 0
        return entry[1]
