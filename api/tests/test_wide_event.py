"""Unit tests for core.wide_event module.

Tests the ContextVar-based wide event lifecycle: init, set, get, clear,
and safe no-op behavior outside request context.
"""

import contextvars

import pytest

from core.wide_event import (
    clear_wide_event,
    get_wide_event,
    init_wide_event,
    set_wide_event_fields,
    set_wide_event_nested,
)


@pytest.mark.unit
class TestWideEventLifecycle:
    def test_init_returns_empty_dict(self):
        assert init_wide_event() == {}

    def test_set_fields_accumulates_and_overwrites(self):
        init_wide_event()

        set_wide_event_fields(habit_id=1, date="2024-06-01")
        set_wide_event_fields(date="2024-06-02")

        assert get_wide_event() == {"habit_id": 1, "date": "2024-06-02"}

    def test_nested_fields(self):
        init_wide_event()

        set_wide_event_nested("streak", current=3)
        set_wide_event_nested("streak", longest=10)

        assert get_wide_event()["streak"] == {"current": 3, "longest": 10}

    def test_clear_resets_to_empty(self):
        init_wide_event()
        set_wide_event_fields(a=1)

        clear_wide_event()

        assert get_wide_event() == {}

    def test_init_returns_the_live_dict(self):
        event = init_wide_event()

        set_wide_event_fields(x=1)

        assert event["x"] == 1


@pytest.mark.unit
class TestOutsideRequestContext:
    def test_setters_are_noops_without_init(self):
        def run() -> dict:
            set_wide_event_fields(a=1)
            set_wide_event_nested("streak", current=1)
            return get_wide_event()

        # Fresh context: no event was ever initialized
        assert contextvars.Context().run(run) == {}
