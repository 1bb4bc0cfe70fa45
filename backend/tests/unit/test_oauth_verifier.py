"""Tests for Google ID token verification."""

import time

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from homeschool.core.errors import AuthError, ValidationError
from homeschool.core.oauth import verify_identity_assertion

CLIENT_ID = "client-123.apps.googleusercontent.com"


class TestVerifyIdentityAssertion:
    async def test_valid_token(self, make_id_token, google_keys):
        identity = await verify_identity_assertion(
            make_id_token(email="Parent@Example.com"),
            client_id=CLIENT_ID,
            jwks_client=google_keys,
        )

        assert identity.subject == "google-sub-1"
        assert identity.email == "parent@example.com"
        assert identity.email_verified is True
        assert identity.name == "Pat Parent"
        assert identity.picture == "https://img.test/pat.png"

    async def test_issuer_without_scheme_accepted(self, make_id_token, google_keys):
        identity = await verify_identity_assertion(
            make_id_token(iss="accounts.google.com"),
            client_id=CLIENT_ID,
            jwks_client=google_keys,
        )
        assert identity.subject == "google-sub-1"

    async def test_string_email_verified_claim(self, make_id_token, google_keys):
        identity = await verify_identity_assertion(
            make_id_token(email_verified="true"),
            client_id=CLIENT_ID,
            jwks_client=google_keys,
        )
        assert identity.email_verified is True

    async def test_unverified_email_claim(self, make_id_token, google_keys):
        identity = await verify_identity_assertion(
            make_id_token(email_verified=False),
            client_id=CLIENT_ID,
            jwks_client=google_keys,
        )
        assert identity.email_verified is False

    @pytest.mark.parametrize(
        "overrides",
        [
            {"aud": "someone-else"},
            {"iss": "https://evil.example.com"},
            {"exp": int(time.time()) - 3600},
            {"sub": None},
        ],
    )
    async def test_rejects_bad_claims(self, make_id_token, google_keys, overrides):
        with pytest.raises(AuthError):
            await verify_identity_assertion(
                make_id_token(**overrides),
                client_id=CLIENT_ID,
                jwks_client=google_keys,
            )

    async def test_rejects_wrong_signature(self, make_id_token, google_keys):
        other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        with pytest.raises(AuthError):
            await verify_identity_assertion(
                make_id_token(private_key=other_key),
                client_id=CLIENT_ID,
                jwks_client=google_keys,
            )

    async def test_rejects_garbage(self, google_keys):
        with pytest.raises(AuthError):
            await verify_identity_assertion(
                "not-a-jwt", client_id=CLIENT_ID, jwks_client=google_keys
            )

    async def test_rejects_token_without_email(self, make_id_token, google_keys):
        with pytest.raises(AuthError, match="no email"):
            await verify_identity_assertion(
                make_id_token(email=None),
                client_id=CLIENT_ID,
                jwks_client=google_keys,
            )

    async def test_requires_client_id(self, make_id_token, google_keys):
        with pytest.raises(ValidationError):
            await verify_identity_assertion(
                make_id_token(), client_id="", jwks_client=google_keys
            )
