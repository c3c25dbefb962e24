"""Events."""

from .core import Event, EventBus

__all__ = ["Event", "EventBus"]
