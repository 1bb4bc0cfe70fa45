"""Shared fixtures for the identity test suite.

Tests run against an in-memory SQLite database (aiosqlite) so no external
services are needed. Environment overrides are applied before the
homeschool package is imported, because settings are read at import time.
"""

import os

os.environ.setdefault("DATABASE_DSN", "sqlite+aiosqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("CLEANUP_ENABLED", "false")

import re  # noqa: E402
import time  # noqa: E402
from collections.abc import AsyncGenerator, Callable, Iterator  # noqa: E402
from datetime import timedelta  # noqa: E402
from typing import Any  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from cryptography.hazmat.primitives.asymmetric import rsa  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from homeschool.core.auth import hash_password  # noqa: E402
from homeschool.core.email import EmailMessage, NotificationDispatcher  # noqa: E402
from homeschool.core.sessions import InMemorySessionStore  # noqa: E402
from homeschool.models import Base, User  # noqa: E402
from homeschool.repositories.user_repository import UserRepository  # noqa: E402

TEST_PASSWORD = "correct-horse-battery"  # nosec B105
GOOGLE_CLIENT_ID = "client-123.apps.googleusercontent.com"

_TOKEN_IN_LINK = re.compile(r"token=([A-Za-z0-9_\-]+)")


class RecordingTransport:
    """Email transport that keeps every message instead of sending it."""

    def __init__(self, *, fail: bool = False) -> None:
        self.sent: list[EmailMessage] = []
        self.fail = fail

    async def send(self, message: EmailMessage) -> None:
        if self.fail:
            msg = "SMTP unavailable"
            raise ConnectionError(msg)
        self.sent.append(message)

    def last_token(self, to: str | None = None) -> str:
        """Token from the link in the most recent message (optionally to one address)."""
        messages = [m for m in self.sent if to is None or m.to == to]
        assert messages, "no email was sent"
        match = _TOKEN_IN_LINK.search(messages[-1].text)
        assert match, "email has no token link"
        return match.group(1)


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine with the schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Database session for service and repository tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory over a file database, one connection per session.

    The in-memory engine shares a single connection, so tests that race two
    transactions against each other need this one.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'identity.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def email_transport() -> RecordingTransport:
    """Captures outgoing email."""
    return RecordingTransport()


@pytest.fixture
def dispatcher(email_transport: RecordingTransport) -> NotificationDispatcher:
    """Dispatcher delivering into the recording transport."""
    return NotificationDispatcher(email_transport, frontend_url="https://app.test")


@pytest.fixture
def session_store() -> InMemorySessionStore:
    """Fresh in-memory session store."""
    return InMemorySessionStore(timedelta(hours=1))


@pytest.fixture
def password() -> str:
    """Password used by make_user."""
    return TEST_PASSWORD


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable:
    """Factory that inserts a user with a bcrypt password.

    Returns:
        Async callable: await make_user(email, role=..., verified=..., password=...)
    """

    async def _make(
        email: str = "parent@example.com",
        *,
        role: str = "parent",
        verified: bool = True,
        password: str | None = TEST_PASSWORD,
        name: str = "Pat Parent",
    ) -> User:
        password_hash = await hash_password(password) if password else None
        user = await UserRepository.create(
            db_session,
            email=email,
            role=role,
            name=name,
            password_hash=password_hash,
            is_email_verified=verified,
        )
        await db_session.commit()
        return user

    return _make


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    session_store: InMemorySessionStore,
    dispatcher: NotificationDispatcher,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test database, store and dispatcher.

    httpx's ASGITransport doesn't run the lifespan, so the services it
    would build are placed on app.state directly. The base URL is https
    so the Secure session cookie round-trips.
    """
    from homeschool.core.database import get_db
    from homeschool.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.session_store = session_store
    app.state.dispatcher = dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="https://test") as ac:
        yield ac

    await dispatcher.drain()
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Rate limiting is tested separately; disable it elsewhere to avoid
    flaky failures from limit triggers.
    """
    from homeschool.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False
    yield
    limiter.enabled = original_enabled


# =============================================================================
# Identity provider fixtures
# =============================================================================

_GOOGLE_SIGNING_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)


class _SigningKey:
    def __init__(self, key: Any) -> None:
        self.key = key


class FakeJWKSClient:
    """Serves one public key, like PyJWKClient after fetching the JWKS."""

    def __init__(self, private_key: rsa.RSAPrivateKey = _GOOGLE_SIGNING_KEY) -> None:
        self._public = private_key.public_key()

    def get_signing_key_from_jwt(self, token: str) -> _SigningKey:
        jwt.get_unverified_header(token)
        return _SigningKey(self._public)


@pytest.fixture
def google_keys() -> FakeJWKSClient:
    """Key source matching tokens from make_id_token."""
    return FakeJWKSClient()


@pytest.fixture
def make_id_token() -> Callable[..., str]:
    """Factory for Google-style ID tokens.

    Keyword overrides replace claims; passing None drops a claim.
    private_key signs with a different key.
    """

    def _make(private_key: rsa.RSAPrivateKey = _GOOGLE_SIGNING_KEY, **overrides) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {
            "iss": "https://accounts.google.com",
            "aud": GOOGLE_CLIENT_ID,
            "sub": "google-sub-1",
            "email": "parent@example.com",
            "email_verified": True,
            "name": "Pat Parent",
            "picture": "https://img.test/pat.png",
            "iat": now,
            "exp": now + 600,
        }
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        return jwt.encode(
            claims, private_key, algorithm="RS256", headers={"kid": "test-key"}
        )

    return _make


@pytest.fixture
def google_client_id() -> Iterator[str]:
    """Configure the Google client id for the duration of a test."""
    from homeschool.core.config import settings

    original = settings.google_client_id
    settings.google_client_id = GOOGLE_CLIENT_ID
    yield GOOGLE_CLIENT_ID
    settings.google_client_id = original
