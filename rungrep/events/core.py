"""A small, thread-safe event bus.

Components publish immutable events; callers either poll with
:meth:`EventBus.get_events` (passing the ``event_t`` of the last event they
saw) or block with :meth:`EventBus.wait_for_event`. The bus keeps a bounded
history, so a slow poller loses the oldest events rather than stalling
publishers.
"""

import itertools
import threading
import time
from collections import deque
from typing import Any

from pydantic import Field

from ..common.pydantic import FrozenBaseModel

DEFAULT_HISTORY_SIZE = 10_000

_event_clock = itertools.count(time.time_ns())


class Event(FrozenBaseModel):
    """Base class for all events."""

    event_t: int = Field(default_factory=lambda: next(_event_clock))


class EventBus:
    """Event bus implementation."""

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        """Initialize the event bus."""
        self._events: deque[Event] = deque(maxlen=history_size)
        self._lock = threading.Lock()
        self._ping = threading.Condition(self._lock)

    def publish(self, event: Event) -> None:
        """Submit an event to the event bus."""
        with self._ping:
            self._events.append(event)
            self._ping.notify_all()

    def get_events(
        self, event_type: type[Event] | type[Any] | None = None, after_t: int | None = None, limit: int | None = None
    ) -> list[Event]:
        """Events of ``event_type`` published after ``after_t``, oldest first.

        With ``limit`` only the most recent ``limit`` events are returned.
        """
        with self._lock:
            return self._select(event_type, after_t, limit)

    def wait_for_event(
        self, event_type: type[Event] | None = None, after_t: int | None = None, timeout: float | None = None
    ) -> Event | None:
        """Block until an event of ``event_type`` newer than ``after_t`` exists; ``None`` on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._ping:
            while True:
                found = self._select(event_type, after_t, 1)
                if found:
                    return found[0]
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return None
                self._ping.wait(remaining)

    def _select(self, event_type: type[Any] | None, after_t: int | None, limit: int | None) -> list[Event]:
        result = []
        for ev in reversed(self._events):
            if after_t is not None and ev.event_t <= after_t:
                break
            if event_type is None or isinstance(ev, event_type):
                result.append(ev)
                if limit is not None and len(result) >= limit:
                    break
        return result[::-1]
