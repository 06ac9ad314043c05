"""Request-scoped "wide event" used for one canonical log line per request.

Services and repositories add fields as the request progresses; the
RequestTimingMiddleware in core.telemetry creates the dict at request start
and emits it once the response body has been sent.

Usage:
    from core.wide_event import set_wide_event_fields

    set_wide_event_fields(habit_id=habit.id, completion_date="2024-06-01")
    set_wide_event_nested("streak", current=3, longest=10)
"""

from contextvars import ContextVar
from typing import Any

_wide_event: ContextVar[dict[str, Any]] = ContextVar("wide_event")


def init_wide_event() -> dict[str, Any]:
    """Start a fresh event dict for the current async context."""
    event: dict[str, Any] = {}
    _wide_event.set(event)
    return event


def get_wide_event() -> dict[str, Any]:
    """Current event dict, or an empty dict outside a request."""
    try:
        return _wide_event.get()
    except LookupError:
        return {}


def set_wide_event_fields(**kwargs: Any) -> None:
    """Merge fields into the current event.

    Silently ignored outside a request (CLI, migrations, unit tests), since
    no middleware is there to emit the event.
    """
    event = _wide_event.get(None)
    if event is not None:
        event.update(kwargs)


def set_wide_event_nested(category: str, **kwargs: Any) -> None:
    """Merge fields under a nested key, e.g. ``{"streak": {"current": 3}}``."""
    event = _wide_event.get(None)
    if event is None:
        return
    event.setdefault(category, {}).update(kwargs)


def clear_wide_event() -> None:
    _wide_event.set({})
