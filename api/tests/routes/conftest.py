"""Route test configuration: disable rate limiting."""

from unittest.mock import patch

import pytest


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Disable slowapi rate limiting so repeated requests aren't throttled."""
    with patch("core.ratelimit.limiter.enabled", False):
        yield
