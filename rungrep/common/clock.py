"""Clock interface for dependency injection."""

import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Clock interface used for timestamps and elapsed time."""

    @abstractmethod
    def time_ms(self) -> int:
        """Wall-clock time in milliseconds since the epoch."""

    @abstractmethod
    def monotonic_ms(self) -> int:
        """Monotonic time in milliseconds, for measuring intervals."""


class SystemClock(Clock):
    """Real clock implementation using the ``time`` module."""

    def time_ms(self) -> int:
        """Wall-clock time in milliseconds since the epoch."""
        return time.time_ns() // 1_000_000

    def monotonic_ms(self) -> int:
        """Monotonic time in milliseconds."""
        return time.monotonic_ns() // 1_000_000
