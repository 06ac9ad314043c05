"""Unit tests for core.auth module.

Tests trusted-header authentication:
- get_user_id_from_request reads and validates the gateway header
- require_auth raises 401 and records the user on request state
"""

from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException, Request

from core.auth import MAX_USER_ID_LENGTH, get_user_id_from_request, require_auth
from core.wide_event import get_wide_event, init_wide_event


def _make_request(headers: dict | None = None) -> Request:
    request = MagicMock(spec=Request)
    request.headers = headers or {}
    request.state = MagicMock()
    return request


@pytest.mark.unit
class TestGetUserIdFromRequest:
    def test_returns_header_value(self):
        request = _make_request({"X-User-Id": "user_1"})

        assert get_user_id_from_request(request) == "user_1"

    def test_strips_whitespace(self):
        request = _make_request({"X-User-Id": "  user_1 "})

        assert get_user_id_from_request(request) == "user_1"

    @pytest.mark.parametrize("value", ["", "   ", "x" * (MAX_USER_ID_LENGTH + 1)])
    def test_rejects_blank_or_overlong(self, value):
        request = _make_request({"X-User-Id": value})

        assert get_user_id_from_request(request) is None

    def test_missing_header(self):
        assert get_user_id_from_request(_make_request()) is None

    def test_header_name_is_configurable(self, monkeypatch):
        monkeypatch.setenv("AUTH_USER_HEADER", "X-Forwarded-User")
        request = _make_request({"X-Forwarded-User": "gw-user"})

        assert get_user_id_from_request(request) == "gw-user"


@pytest.mark.unit
class TestRequireAuth:
    def test_raises_401_when_unauthenticated(self):
        with pytest.raises(HTTPException) as exc_info:
            require_auth(_make_request())

        assert exc_info.value.status_code == 401

    def test_sets_state_and_wide_event(self):
        event = init_wide_event()
        event["request_id"] = "req-1"
        request = _make_request({"X-User-Id": "user_1"})

        user_id = require_auth(request)

        assert user_id == "user_1"
        assert request.state.user_id == "user_1"
        assert get_wide_event()["user_id"] == "user_1"
