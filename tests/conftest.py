"""Pytest configuration and shared fixtures"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from cache_store import CacheStore


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDatetimeClock:
    """Manually advanced UTC datetime clock."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


def _make_response(status=200, json_data=None, headers=None, json_error=False):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.headers = headers or {}
    if json_error:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def make_response():
    """Build a requests.Response stand-in."""
    return _make_response


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dt_clock():
    return FakeDatetimeClock()


@pytest.fixture
def cache_store(tmp_path, dt_clock):
    return CacheStore(tmp_path / "cache", clock=dt_clock)


@pytest.fixture
def login_response():
    return _make_response(200, {
        "token": "tok-1",
        "id": "user-1",
        "subsonicToken": "sub-token",
        "subsonicSalt": "sub-salt",
    })
