"""Test doubles shared across the perfkit test suites."""

from __future__ import annotations

import json
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

TEST_SECRET = "perfkit-test-secret"
DEFAULT_TEST_USERNAME = "load_tester"


class FakeResponse:
    """Stand-in for ``requests.Response`` exposing what perfkit reads."""

    def __init__(self, status_code: int = 200, body: Any = "", elapsed_ms: float | None = 50):
        self.status_code = status_code
        self.text = body if isinstance(body, str) else json.dumps(body)
        self.elapsed = timedelta(milliseconds=elapsed_ms) if elapsed_ms is not None else None

    def json(self) -> Any:
        return json.loads(self.text)


class FakeSession:
    """
    Stand-in for ``requests.Session`` that replays queued outcomes.

    Each queued item is either a :class:`FakeResponse` or an exception
    instance to raise.  Every call is recorded in :attr:`calls`.
    """

    def __init__(self, *outcomes: Any):
        self.outcomes: deque[Any] = deque(outcomes)
        self.calls: list[dict[str, Any]] = []

    def queue(self, *outcomes: Any) -> None:
        self.outcomes.extend(outcomes)

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.outcomes:
            raise AssertionError(f"Unexpected request: {method} {url}")
        outcome = self.outcomes.popleft()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def create_test_token(
    username: str = DEFAULT_TEST_USERNAME,
    lifetime_seconds: int = 600,
    expired: bool = False,
) -> str:
    """Create a signed HS256 token like the ones a real auth endpoint issues."""
    now = datetime.now(timezone.utc)
    expiry_time = now - timedelta(hours=1) if expired else now + timedelta(seconds=lifetime_seconds)
    payload = {
        "sub": username,
        "iat": int(now.timestamp()),
        "exp": int(expiry_time.timestamp()),
    }
    return jwt.encode(payload, TEST_SECRET, algorithm="HS256")


def token_response(token: str | None = None, status_code: int = 200) -> FakeResponse:
    """Build a token-endpoint response carrying *token* as ``access_token``."""
    return FakeResponse(status_code, {"access_token": token or create_test_token(), "token_type": "bearer"})
