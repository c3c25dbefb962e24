"""Cooperative cancellation."""

import threading
from collections.abc import Callable
from typing import Self


class CancellationToken:
    """Read side of a cancellation source."""

    def __init__(self) -> None:
        """Initialize an unsignaled token."""
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._next_id = 0

    @property
    def is_cancellation_requested(self) -> bool:
        """Whether cancellation was signaled."""
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or until ``timeout`` expires."""
        return self._event.wait(timeout)

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` on cancellation and return a function that unregisters it.

        If the token is already cancelled the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                key = self._next_id
                self._next_id += 1
                self._callbacks[key] = callback

                def unregister() -> None:
                    with self._lock:
                        self._callbacks.pop(key, None)

                return unregister
        callback()
        return lambda: None

    def _signal(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
        for callback in callbacks:
            callback()


class CancellationTokenSource:
    """Owner side of a cancellation token, optionally linked to a parent token."""

    def __init__(self, parent: CancellationToken | None = None) -> None:
        """Create a fresh token, cancelled whenever ``parent`` is."""
        self.token = CancellationToken()
        self._unlink: Callable[[], None] | None = None
        if parent is not None:
            self._unlink = parent.register(self.cancel)

    @property
    def is_cancelled(self) -> bool:
        """Whether this source was cancelled."""
        return self.token.is_cancellation_requested

    def cancel(self) -> None:
        """Signal cancellation. Safe to call more than once."""
        self.token._signal()

    def close(self) -> None:
        """Detach from the parent token."""
        if self._unlink is not None:
            self._unlink()
            self._unlink = None

    def __enter__(self) -> Self:
        """Return the source."""
        return self

    def __exit__(self, *exc: object) -> None:
        """Detach from the parent token."""
        self.close()


NONE = CancellationToken()
"""A token that is never cancelled."""
