"""
Shared pytest fixtures for the perfkit test suite.

Fixtures provide fresh component instances for every test so no state
leaks between tests, plus fake HTTP and clock doubles so nothing ever
touches the network or waits on real time.

Key Concepts Demonstrated:
- Fixture dependencies (token cache built from fake session + clock)
- Test data factories backed by Faker
- Environment set before the package under test is imported
"""

# locust applies gevent monkey patching on import; it must run before
# requests and ssl are loaded through perfkit.
import locust  # noqa: F401

import os

import pytest
from faker import Faker

# Set testing environment before importing perfkit
os.environ["PERFKIT_ENV"] = "testing"

from perfkit.config import TokenConfig
from perfkit.correlation import CorrelationStore
from perfkit.error_log import ErrorLog
from perfkit.metrics import CheckLedger
from perfkit.token_cache import TokenCache
from perfkit.validation import ResponseValidator
from tests.helpers import FakeClock, FakeSession


# Initialize Faker for generating test data
fake = Faker()


# -----------------------------------------------------------------------------
# HTTP / time doubles
# -----------------------------------------------------------------------------

@pytest.fixture
def session() -> FakeSession:
    """Provide an empty fake HTTP session; tests queue their own responses."""
    return FakeSession()


@pytest.fixture
def clock() -> FakeClock:
    """Provide a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def sleeps() -> list[float]:
    """Collect the durations passed to the token cache's sleep hook."""
    return []


# -----------------------------------------------------------------------------
# Component fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def token_config() -> TokenConfig:
    """A valid token configuration pointing at a non-routable host."""
    return TokenConfig(
        url="http://auth.test/oauth/token",
        username="admin",
        password="secret",
        lifetime_seconds=600,
    )


@pytest.fixture
def token_cache(session, clock, sleeps) -> TokenCache:
    """Token cache wired to the fake session and clock."""
    return TokenCache(session, clock=clock, sleep=sleeps.append)


@pytest.fixture
def store() -> CorrelationStore:
    return CorrelationStore()


@pytest.fixture
def ledger() -> CheckLedger:
    return CheckLedger()


@pytest.fixture
def validator(ledger) -> ResponseValidator:
    return ResponseValidator(ledger)


@pytest.fixture
def error_log() -> ErrorLog:
    return ErrorLog()


# -----------------------------------------------------------------------------
# Test data fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def csv_factory(tmp_path):
    """
    Factory fixture that writes CSV text to a temporary file.

    Example:
        def test_something(csv_factory):
            path = csv_factory("email\\na@example.com\\n")
    """
    counter = {"n": 0}

    def _write(content: str, name: str | None = None):
        counter["n"] += 1
        path = tmp_path / (name or f"data_{counter['n']}.csv")
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def users_csv(csv_factory):
    """A three-row user dataset with realistic values."""
    rows = ["email,first_name,last_name"]
    for _ in range(3):
        rows.append(f"{fake.unique.email()},{fake.first_name()},{fake.last_name()}")
    return csv_factory("\n".join(rows) + "\n", name="users.csv")
