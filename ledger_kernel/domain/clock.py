"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock interface so that services and the
    scheduler never call ``datetime.now()`` or ``date.today()`` directly.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Invariants enforced:
    Every timestamp written to the ledger (transaction ``created_at``,
    payment ``processed_at``, alert ``created_at``) is the restaurant's
    local wall-clock time as a naive ``datetime``.  Chronological replay
    orders on those values, so they must all come from one clock.

Failure modes:
    - ZoneInfoNotFoundError if SystemClock is given an unknown zone name.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time must receive a Clock instance
        via constructor injection.

    Guarantees:
        - ``now()`` returns a naive local wall-clock ``datetime``.
        - ``today()`` is the date part of ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current local wall-clock time."""
        ...

    def today(self) -> date:
        """Get the current local date."""
        return self.now().date()


class SystemClock(Clock):
    """
    Production clock that returns actual system time.

    Contract:
        The sole sanctioned I/O boundary for time in the kernel.

    Guarantees:
        Returns the wall-clock time of ``timezone_name`` with tzinfo dropped,
        or the host's local time when no zone is configured.
    """

    def __init__(self, timezone_name: str | None = None):
        self._zone = ZoneInfo(timezone_name) if timezone_name else None

    def now(self) -> datetime:
        """Get current wall-clock time in the configured zone."""
        if self._zone is None:
            return datetime.now()
        return datetime.now(self._zone).replace(tzinfo=None)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until ``advance()``
          or ``set_time()`` is called.
        - ``tick()`` advances by exactly 1 second and returns the new time.
    """

    def __init__(self, fixed_time: datetime | None = None):
        """
        Initialize with optional fixed time.

        Args:
            fixed_time: If provided, clock starts at this time.
                       If None, uses a default epoch time.
        """
        self._fixed_time = fixed_time or datetime(2024, 1, 1, 12, 0, 0)
        self._advance_seconds = 0

    def now(self) -> datetime:
        """Get the fixed/controlled time."""
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
