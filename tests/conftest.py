"""Shared fixtures for cmdrelay tests."""

from __future__ import annotations

import time
from typing import Callable
from unittest.mock import AsyncMock

import pytest

from cmdrelay.py.slack.util import sign_request

TEST_SECRET = b"8f742231b10e8888abcd99yyyzzz85a5"


@pytest.fixture
def secret() -> bytes:
    return TEST_SECRET


@pytest.fixture
def make_headers() -> Callable[..., dict[str, str]]:
    """Build the two Slack headers for a body, signed with the test secret."""

    def _make(
        body: bytes, secret: bytes = TEST_SECRET, ts: int | None = None
    ) -> dict[str, str]:
        timestamp = str(int(time.time()) if ts is None else ts)
        return {
            "X-Slack-Request-Timestamp": timestamp,
            "X-Slack-Signature": sign_request(secret, timestamp, body),
        }

    return _make


@pytest.fixture
def broker() -> AsyncMock:
    """Stand-in for BrokerClient that records publishes."""
    fake = AsyncMock()
    fake.publish.return_value = 1
    return fake
