"""
Clock -- the only source of "now" for settlement services.

Lateness, deadlines and activation dates all depend on the current time.
Services receive a Clock through their constructor; engines receive the
instant as a plain argument and never read the system time themselves.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone, tzinfo


def _require_aware(moment: datetime) -> datetime:
    if moment.tzinfo is None or moment.utcoffset() is None:
        raise ValueError(f"Clock times must be timezone-aware, got {moment!r}")
    return moment


class Clock(ABC):
    """Timezone-aware current time."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        """Calendar day of ``now()`` in the clock's own timezone."""
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock time, UTC unless another zone is given."""

    def __init__(self, zone: tzinfo = timezone.utc):
        self._zone = zone

    def now(self) -> datetime:
        return datetime.now(self._zone)


class DeterministicClock(Clock):
    """
    Manually driven clock for tests and replays.

    ``now()`` is constant until the clock is moved with ``set_time``,
    ``advance`` or ``advance_days``.
    """

    DEFAULT_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __init__(self, fixed_time: datetime | None = None):
        self._current = _require_aware(fixed_time or self.DEFAULT_TIME)

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = _require_aware(moment)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._current += timedelta(days=days)
