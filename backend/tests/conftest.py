"""Pytest configuration and fixtures.

Every test gets its own in-memory database behind a DatabaseGateway and a
frozen clock shared by the gateway and the session issuer.
"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from linkauth.backends.sqlite_adapter import InMemoryDatabase
from linkauth.core.auth import SessionIssuer
from linkauth.core.database import DatabaseGateway
from linkauth.models.user import User
from linkauth.repositories.user_repository import UserRepository

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

TEST_ISSUER = "linkauth"
TEST_AUDIENCE = "linkauth"

# Fixed "now" for every test that uses the clock fixture
FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)

TEST_EMAIL = "test@example.com"


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock() -> FrozenClock:
    """Frozen clock starting at FIXED_NOW."""
    return FrozenClock(FIXED_NOW)


@pytest_asyncio.fixture(scope="function")
async def db(clock: FrozenClock) -> AsyncGenerator[DatabaseGateway, None]:
    """Initialized gateway over a fresh in-memory database.

    Each test gets its own database; nothing leaks between tests.
    """
    gateway = DatabaseGateway(InMemoryDatabase(), clock=clock)
    await gateway.initialize()
    yield gateway
    await gateway.aclose()


@pytest_asyncio.fixture
async def test_user(db: DatabaseGateway) -> User:
    """Create the standard test user.

    Args:
        db: Gateway from the db fixture.

    Returns:
        User with TEST_EMAIL.
    """
    return await UserRepository.create(db, email=TEST_EMAIL, name="Test User")


@pytest.fixture
def issuer(clock: FrozenClock) -> SessionIssuer:
    """Session issuer sharing the test clock."""
    return SessionIssuer(
        TEST_AUTH_SECRET,
        issuer=TEST_ISSUER,
        audience=TEST_AUDIENCE,
        clock=clock,
    )
