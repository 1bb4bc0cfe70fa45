"""Tests for login-method dispatch and session establishment."""

import pytest

from homeschool.core.errors import AuthError
from homeschool.services.authentication import (
    AuthenticatedUser,
    FederatedProfile,
    OAuthAssertion,
    PasswordCredentials,
    authenticate,
    establish_session,
)


class TestAuthenticate:
    async def test_password(self, db_session, make_user, password):
        user = await make_user()

        result = await authenticate(
            db_session, PasswordCredentials(email=user.email, password=password)
        )

        assert result.user.id == user.id
        assert result.method == "password"

    async def test_password_mismatch(self, db_session, make_user):
        user = await make_user()

        with pytest.raises(AuthError):
            await authenticate(
                db_session, PasswordCredentials(email=user.email, password="nope-nope")
            )

    async def test_oauth(self, db_session, make_id_token, google_keys, google_client_id):
        result = await authenticate(
            db_session,
            OAuthAssertion(id_token=make_id_token(), role="parent"),
            jwks_client=google_keys,
        )

        assert result.method == "oauth"
        assert result.user.email == "parent@example.com"

    async def test_federated(self, db_session):
        result = await authenticate(
            db_session,
            FederatedProfile(
                uid="fed-1",
                email="fed@example.com",
                display_name="Fed",
                photo_url=None,
                role="tutor",
            ),
        )

        assert result.method == "federated"
        assert result.user.role == "tutor"

    async def test_unknown_method(self, db_session):
        with pytest.raises(TypeError):
            await authenticate(db_session, object())  # type: ignore[arg-type]


class TestEstablishSession:
    async def test_records_user_and_method(self, make_user, session_store):
        user = await make_user()

        session = await establish_session(
            session_store,
            AuthenticatedUser(user=user, method="password"),
            previous_session_id=None,
        )

        assert session.user_id == user.id
        assert session.role == "parent"
        assert session.method == "password"
        assert session.email == user.email
        assert await session_store.get(session.session_id) == session

    async def test_destroys_previous_session(self, make_user, session_store):
        user = await make_user()
        authenticated = AuthenticatedUser(user=user, method="password")
        first = await establish_session(
            session_store, authenticated, previous_session_id=None
        )

        second = await establish_session(
            session_store, authenticated, previous_session_id=first.session_id
        )

        assert second.session_id != first.session_id
        assert await session_store.get(first.session_id) is None
