"""Tests for verification and password-reset tokens."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from homeschool.core.auth import verify_password
from homeschool.core.config import settings
from homeschool.core.email import NotificationDispatcher
from homeschool.core.errors import (
    AlreadyVerifiedError,
    ExpiredTokenError,
    InvalidTokenError,
    ResendCooldownError,
    ValidationError,
)
from homeschool.core.tokens import hash_token
from homeschool.repositories.user_repository import UserRepository
from homeschool.services import token_manager


async def _refresh(db: AsyncSession, user_id: uuid.UUID):
    db.expire_all()
    return await UserRepository.get_by_id(db, user_id)


class TestIssueVerificationToken:
    async def test_sets_pair_and_sends_email(
        self, db_session, dispatcher, email_transport, make_user
    ):
        user = await make_user("new@example.com", verified=False)
        before = datetime.now(UTC)

        await token_manager.issue_verification_token(db_session, dispatcher, user)
        await db_session.commit()
        await dispatcher.drain()

        user = await _refresh(db_session, user.id)
        token = email_transport.last_token("new@example.com")
        assert user.verification_token == hash_token(token)
        assert user.verification_token_expiry - before >= timedelta(hours=23, minutes=59)
        assert user.verification_token_expiry - before <= timedelta(hours=24, seconds=5)

    async def test_email_failure_does_not_raise(self, db_session, make_user):
        class BrokenTransport:
            async def send(self, message):
                raise ConnectionError("down")

        broken = NotificationDispatcher(BrokenTransport(), frontend_url="https://app.test")
        user = await make_user("new@example.com", verified=False)

        await token_manager.issue_verification_token(db_session, broken, user)
        await db_session.commit()
        await broken.drain()

        user = await _refresh(db_session, user.id)
        assert user.verification_token is not None

    async def test_email_waits_for_commit(
        self, db_session, dispatcher, email_transport, make_user
    ):
        user = await make_user("new@example.com", verified=False)

        await token_manager.issue_verification_token(db_session, dispatcher, user)
        await dispatcher.drain()
        assert email_transport.sent == []

        await db_session.commit()
        await dispatcher.drain()
        assert [m.to for m in email_transport.sent] == ["new@example.com"]

    async def test_no_email_when_transaction_rolls_back(
        self, db_session, dispatcher, email_transport, make_user
    ):
        user = await make_user("new@example.com", verified=False)

        await token_manager.issue_verification_token(db_session, dispatcher, user)
        await db_session.rollback()
        await dispatcher.drain()

        assert email_transport.sent == []


class TestConsumeVerificationToken:
    async def _pending_user(self, db_session, dispatcher, email_transport, make_user):
        user = await make_user("new@example.com", verified=False)
        await token_manager.issue_verification_token(db_session, dispatcher, user)
        await db_session.commit()
        await dispatcher.drain()
        return user, email_transport.last_token("new@example.com")

    async def test_verifies_and_clears_pair(
        self, db_session, dispatcher, email_transport, make_user
    ):
        user, token = await self._pending_user(
            db_session, dispatcher, email_transport, make_user
        )

        verified = await token_manager.consume_verification_token(db_session, token)

        assert verified.id == user.id
        assert verified.is_email_verified is True
        assert verified.verification_token is None
        assert verified.verification_token_expiry is None

    async def test_second_consume_is_idempotent(
        self, db_session, dispatcher, email_transport, make_user
    ):
        user, token = await self._pending_user(
            db_session, dispatcher, email_transport, make_user
        )
        other = await make_user("other@example.com", verified=False)

        await token_manager.consume_verification_token(db_session, token)
        again = await token_manager.consume_verification_token(db_session, token)

        assert again.id == user.id
        assert again.is_email_verified is True
        other = await _refresh(db_session, other.id)
        assert other.is_email_verified is False

    async def test_unknown_token(self, db_session):
        with pytest.raises(InvalidTokenError):
            await token_manager.consume_verification_token(db_session, "nope")

    async def test_expired_token(self, db_session, dispatcher, email_transport, make_user):
        user, token = await self._pending_user(
            db_session, dispatcher, email_transport, make_user
        )
        await UserRepository.update(
            db_session,
            user.id,
            verification_token_expiry=datetime.now(UTC) - timedelta(minutes=1),
        )

        with pytest.raises(ExpiredTokenError):
            await token_manager.consume_verification_token(db_session, token)

        user = await _refresh(db_session, user.id)
        assert user.is_email_verified is False

    async def test_verification_does_not_touch_reset_pair(
        self, db_session, dispatcher, email_transport, make_user
    ):
        user, token = await self._pending_user(
            db_session, dispatcher, email_transport, make_user
        )
        await token_manager.request_password_reset(db_session, dispatcher, user.email)

        verified = await token_manager.consume_verification_token(db_session, token)

        assert verified.password_reset_token is not None
        assert verified.password_reset_token_expiry is not None


class TestResendVerification:
    async def test_unknown_email_is_generic(self, db_session, dispatcher, email_transport):
        message = await token_manager.resend_verification(
            db_session, dispatcher, "ghost@example.com"
        )
        await db_session.commit()
        await dispatcher.drain()

        assert message == token_manager.GENERIC_RESEND_MESSAGE
        assert email_transport.sent == []

    async def test_already_verified(self, db_session, dispatcher, make_user):
        await make_user("done@example.com", verified=True)

        with pytest.raises(AlreadyVerifiedError):
            await token_manager.resend_verification(
                db_session, dispatcher, "done@example.com"
            )

    async def test_cooldown(self, db_session, dispatcher, make_user):
        user = await make_user("new@example.com", verified=False)
        await token_manager.issue_verification_token(db_session, dispatcher, user)

        with pytest.raises(ResendCooldownError) as exc_info:
            await token_manager.resend_verification(
                db_session, dispatcher, "new@example.com"
            )
        retry_after = exc_info.value.details[0]["retry_after"]
        assert 0 < retry_after <= settings.resend_verification_cooldown_seconds

    async def test_resend_after_cooldown_replaces_token(
        self, db_session, dispatcher, email_transport, make_user
    ):
        user = await make_user("new@example.com", verified=False)
        await token_manager.issue_verification_token(db_session, dispatcher, user)
        await db_session.commit()
        await dispatcher.drain()
        old_token = email_transport.last_token()
        # Pretend the first link went out two minutes ago
        issued_long_ago = (
            datetime.now(UTC)
            + timedelta(hours=settings.verification_token_ttl_hours)
            - timedelta(minutes=2)
        )
        await UserRepository.update(
            db_session, user.id, verification_token_expiry=issued_long_ago
        )

        await token_manager.resend_verification(db_session, dispatcher, "new@example.com")
        await db_session.commit()
        await dispatcher.drain()

        new_token = email_transport.last_token()
        assert new_token != old_token
        with pytest.raises(InvalidTokenError):
            await token_manager.consume_verification_token(db_session, old_token)
        verified = await token_manager.consume_verification_token(db_session, new_token)
        assert verified.is_email_verified is True


class TestPasswordReset:
    async def test_request_for_unknown_email_is_generic(
        self, db_session, dispatcher, email_transport
    ):
        message = await token_manager.request_password_reset(
            db_session, dispatcher, "ghost@example.com"
        )
        await db_session.commit()
        await dispatcher.drain()

        assert message == token_manager.GENERIC_RESET_MESSAGE
        assert email_transport.sent == []

    async def test_request_sets_one_hour_token(
        self, db_session, dispatcher, email_transport, make_user
    ):
        user = await make_user("parent@example.com")
        before = datetime.now(UTC)

        message = await token_manager.request_password_reset(
            db_session, dispatcher, "parent@example.com"
        )
        await db_session.commit()
        await dispatcher.drain()

        assert message == token_manager.GENERIC_RESET_MESSAGE
        user = await _refresh(db_session, user.id)
        token = email_transport.last_token("parent@example.com")
        assert user.password_reset_token == hash_token(token)
        assert user.password_reset_token_expiry - before <= timedelta(hours=1, seconds=5)

    async def test_consume_sets_password_and_revokes_sessions(
        self, db_session, dispatcher, email_transport, session_store, make_user
    ):
        user = await make_user("parent@example.com")
        session = await session_store.create(
            user_id=user.id, role="parent", method="password", email=user.email
        )
        await token_manager.request_password_reset(db_session, dispatcher, user.email)
        await db_session.commit()
        await dispatcher.drain()
        token = email_transport.last_token()

        updated = await token_manager.consume_password_reset(
            db_session, session_store, token, "brand-new-password"
        )

        assert await verify_password("brand-new-password", updated.password_hash)
        assert updated.password_reset_token is None
        assert updated.password_reset_token_expiry is None
        assert await session_store.get(session.session_id) is None

    async def test_token_is_single_use(
        self, db_session, dispatcher, email_transport, session_store, make_user
    ):
        user = await make_user("parent@example.com")
        await token_manager.request_password_reset(db_session, dispatcher, user.email)
        await db_session.commit()
        await dispatcher.drain()
        token = email_transport.last_token()
        await token_manager.consume_password_reset(
            db_session, session_store, token, "brand-new-password"
        )

        with pytest.raises(InvalidTokenError):
            await token_manager.consume_password_reset(
                db_session, session_store, token, "another-password"
            )

    async def test_expired_token(
        self, db_session, dispatcher, email_transport, session_store, make_user
    ):
        user = await make_user("parent@example.com")
        await token_manager.request_password_reset(db_session, dispatcher, user.email)
        await db_session.commit()
        await dispatcher.drain()
        await UserRepository.update(
            db_session,
            user.id,
            password_reset_token_expiry=datetime.now(UTC) - timedelta(seconds=1),
        )

        with pytest.raises(ExpiredTokenError):
            await token_manager.consume_password_reset(
                db_session, session_store, email_transport.last_token(), "brand-new-password"
            )

    async def test_weak_password_checked_first(self, db_session, session_store):
        with pytest.raises(ValidationError):
            await token_manager.consume_password_reset(
                db_session, session_store, "unknown-token", "short"
            )

    async def test_reset_does_not_touch_verification_pair(
        self, db_session, dispatcher, email_transport, session_store, make_user
    ):
        user = await make_user("new@example.com", verified=False)
        await token_manager.issue_verification_token(db_session, dispatcher, user)
        await token_manager.request_password_reset(db_session, dispatcher, user.email)
        await db_session.commit()
        await dispatcher.drain()
        reset_token = email_transport.last_token()

        updated = await token_manager.consume_password_reset(
            db_session, session_store, reset_token, "brand-new-password"
        )

        assert updated.verification_token is not None
        assert updated.verification_token_expiry is not None
