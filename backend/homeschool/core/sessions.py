"""Session registry: one session abstraction for every login method.

A session is created fresh on every successful login, read on every
authenticated request, destroyed on logout and revoked in bulk when the
password is reset. The same session id travels either as a bearer token
or as the session cookie; both resolve through the same store.

Two backends share the SessionStore interface:
- InMemorySessionStore: process-local dict with TTL (development, tests)
- RedisSessionStore: keys with native TTL, shared between instances

The store is built by create_session_store() during application startup
and closed at shutdown (see main.lifespan). Nothing in this module is a
module-level singleton.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from typing import Literal

import redis.asyncio as redis

from homeschool.core.config import Settings
from homeschool.core.tokens import generate_token

logger = logging.getLogger(__name__)

LoginMethodName = Literal["password", "oauth", "federated"]

_SESSION_KEY_PREFIX = "session:"
_USER_SESSIONS_KEY_PREFIX = "user_sessions:"


@dataclass(frozen=True)
class AuthSession:
    """An authenticated session with a snapshot of the user's identity.

    Attributes:
        session_id: Opaque random identifier (bearer token and cookie value).
        user_id: Owner of the session.
        role: Role at login time (parent, tutor, student).
        method: Login method that created the session.
        email: Email at login time.
        name: Display name at login time.
        profile_picture: Avatar URL at login time.
        created_at: When the session was issued.
        expires_at: When the session stops being accepted.
    """

    session_id: str
    user_id: uuid.UUID
    role: str
    method: LoginMethodName
    email: str
    name: str | None
    profile_picture: str | None
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the session is past its expiry."""
        return (now or datetime.now(UTC)) >= self.expires_at

    def to_json(self) -> str:
        """Serialize for storage in Redis."""
        payload = asdict(self)
        payload["user_id"] = str(self.user_id)
        payload["created_at"] = self.created_at.isoformat()
        payload["expires_at"] = self.expires_at.isoformat()
        return json.dumps(payload)

    @classmethod
    def from_json(cls, raw: str) -> "AuthSession":
        """Deserialize a session stored by to_json."""
        payload = json.loads(raw)
        payload["user_id"] = uuid.UUID(payload["user_id"])
        payload["created_at"] = datetime.fromisoformat(payload["created_at"])
        payload["expires_at"] = datetime.fromisoformat(payload["expires_at"])
        return cls(**payload)


class SessionStore(ABC):
    """Interface shared by the session backends."""

    def __init__(self, ttl: timedelta) -> None:
        self._ttl = ttl

    @property
    def ttl(self) -> timedelta:
        """Lifetime of newly created sessions."""
        return self._ttl

    def _new_session(
        self,
        *,
        user_id: uuid.UUID,
        role: str,
        method: LoginMethodName,
        email: str,
        name: str | None,
        profile_picture: str | None,
    ) -> AuthSession:
        now = datetime.now(UTC)
        return AuthSession(
            session_id=generate_token(),
            user_id=user_id,
            role=role,
            method=method,
            email=email,
            name=name,
            profile_picture=profile_picture,
            created_at=now,
            expires_at=now + self._ttl,
        )

    @abstractmethod
    async def create(
        self,
        *,
        user_id: uuid.UUID,
        role: str,
        method: LoginMethodName,
        email: str,
        name: str | None = None,
        profile_picture: str | None = None,
    ) -> AuthSession:
        """Create and persist a new session."""

    @abstractmethod
    async def get(self, session_id: str) -> AuthSession | None:
        """Return the session if it exists and has not expired."""

    @abstractmethod
    async def destroy(self, session_id: str) -> bool:
        """Remove a session. Returns True if it existed."""

    @abstractmethod
    async def destroy_all_for_user(self, user_id: uuid.UUID) -> int:
        """Remove every session of a user. Returns the number removed."""

    async def regenerate(
        self,
        previous_session_id: str | None,
        *,
        user_id: uuid.UUID,
        role: str,
        method: LoginMethodName,
        email: str,
        name: str | None = None,
        profile_picture: str | None = None,
    ) -> AuthSession:
        """Replace the session the client presented with a fresh one.

        The previous session is destroyed before the new one is written,
        so a session id known before login is never valid after it.

        Args:
            previous_session_id: Session id the client sent, if any.
            user_id: Authenticated user.
            role: User role.
            method: Login method.
            email: User email.
            name: User display name.
            profile_picture: User avatar URL.

        Returns:
            The new session.
        """
        if previous_session_id:
            await self.destroy(previous_session_id)
        return await self.create(
            user_id=user_id,
            role=role,
            method=method,
            email=email,
            name=name,
            profile_picture=profile_picture,
        )

    async def cleanup_expired(self) -> int:
        """Drop expired sessions. Backends with native expiry return 0."""
        return 0

    async def close(self) -> None:  # noqa: B027
        """Release backend resources."""


class InMemorySessionStore(SessionStore):
    """Process-local session store.

    Safe for async/await usage (single-threaded event loop) but not for
    multi-threaded access. Sessions vanish on restart and are not shared
    between instances.
    """

    def __init__(self, ttl: timedelta) -> None:
        super().__init__(ttl)
        self._sessions: dict[str, AuthSession] = {}

    async def create(
        self,
        *,
        user_id: uuid.UUID,
        role: str,
        method: LoginMethodName,
        email: str,
        name: str | None = None,
        profile_picture: str | None = None,
    ) -> AuthSession:
        session = self._new_session(
            user_id=user_id,
            role=role,
            method=method,
            email=email,
            name=name,
            profile_picture=profile_picture,
        )
        self._sessions[session.session_id] = session
        return session

    async def get(self, session_id: str) -> AuthSession | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.is_expired():
            del self._sessions[session_id]
            return None
        return session

    async def destroy(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    async def destroy_all_for_user(self, user_id: uuid.UUID) -> int:
        owned = [sid for sid, s in self._sessions.items() if s.user_id == user_id]
        for sid in owned:
            del self._sessions[sid]
        return len(owned)

    async def cleanup_expired(self) -> int:
        now = datetime.now(UTC)
        expired = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)

    def clear(self) -> None:
        """Clear all sessions (for testing)."""
        self._sessions.clear()


class RedisSessionStore(SessionStore):
    """Redis-backed session store.

    Each session lives at session:{id} with the session TTL. A set at
    user_sessions:{user_id} indexes a user's sessions for bulk revocation;
    ids in it whose key already expired are skipped.
    """

    def __init__(self, client: redis.Redis, ttl: timedelta) -> None:
        super().__init__(ttl)
        self._client = client

    @classmethod
    def from_url(cls, url: str, ttl: timedelta) -> "RedisSessionStore":
        """Build a store with its own connection pool."""
        return cls(redis.Redis.from_url(url, decode_responses=True), ttl)

    async def create(
        self,
        *,
        user_id: uuid.UUID,
        role: str,
        method: LoginMethodName,
        email: str,
        name: str | None = None,
        profile_picture: str | None = None,
    ) -> AuthSession:
        session = self._new_session(
            user_id=user_id,
            role=role,
            method=method,
            email=email,
            name=name,
            profile_picture=profile_picture,
        )
        ttl_seconds = int(self._ttl.total_seconds())
        index_key = f"{_USER_SESSIONS_KEY_PREFIX}{user_id}"
        await self._client.set(
            f"{_SESSION_KEY_PREFIX}{session.session_id}",
            session.to_json(),
            ex=ttl_seconds,
        )
        await self._client.sadd(index_key, session.session_id)
        await self._client.expire(index_key, ttl_seconds)
        return session

    async def get(self, session_id: str) -> AuthSession | None:
        raw = await self._client.get(f"{_SESSION_KEY_PREFIX}{session_id}")
        if raw is None:
            return None
        session = AuthSession.from_json(raw)
        if session.is_expired():
            return None
        return session

    async def destroy(self, session_id: str) -> bool:
        session = await self.get(session_id)
        deleted = await self._client.delete(f"{_SESSION_KEY_PREFIX}{session_id}")
        if session is not None:
            await self._client.srem(
                f"{_USER_SESSIONS_KEY_PREFIX}{session.user_id}", session_id
            )
        return bool(deleted)

    async def destroy_all_for_user(self, user_id: uuid.UUID) -> int:
        index_key = f"{_USER_SESSIONS_KEY_PREFIX}{user_id}"
        session_ids = await self._client.smembers(index_key)
        removed = 0
        if session_ids:
            removed = await self._client.delete(
                *(f"{_SESSION_KEY_PREFIX}{sid}" for sid in session_ids)
            )
        await self._client.delete(index_key)
        return int(removed)

    async def close(self) -> None:
        await self._client.aclose()


def create_session_store(settings: Settings) -> SessionStore:
    """Build the session store selected by SESSION_BACKEND.

    Args:
        settings: Application settings.

    Returns:
        A ready-to-use SessionStore.
    """
    ttl = timedelta(hours=settings.session_ttl_hours)
    if settings.session_backend == "redis":
        logger.info(
            "Using Redis session store",
            extra={"ttl_hours": settings.session_ttl_hours},
        )
        return RedisSessionStore.from_url(settings.redis_url, ttl)
    logger.info(
        "Using in-memory session store",
        extra={"ttl_hours": settings.session_ttl_hours},
    )
    return InMemorySessionStore(ttl)
