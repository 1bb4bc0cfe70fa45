"""Tests for find-or-link-or-create of external identities."""

import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from homeschool.core.account_linking import (
    ExternalIdentity,
    find_or_link_or_create_user,
    resolve_self_serve_role,
)
from homeschool.core.errors import (
    AccountLinkingBlockedError,
    ConflictError,
    RoleRequiredError,
    ValidationError,
)
from homeschool.models import Account, User
from homeschool.repositories.account_repository import AccountRepository
from homeschool.repositories.user_repository import UserRepository


def google(subject: str = "g-1", email: str = "parent@example.com", **kwargs):
    return ExternalIdentity(provider="google", subject=subject, email=email, **kwargs)


class TestNewUserCreation:
    """No account and no matching email."""

    async def test_creates_verified_user_with_account(self, db_session: AsyncSession):
        user, outcome = await find_or_link_or_create_user(
            db_session,
            google(name="Pat", picture="https://img.test/p.png"),
            role="parent",
        )

        assert outcome == "created"
        assert user.role == "parent"
        assert user.is_email_verified is True
        assert user.password_hash is None
        assert user.name == "Pat"
        account = await AccountRepository.get_by_provider_and_account_id(
            db_session, "google", "g-1"
        )
        assert account is not None
        assert account.user_id == user.id

    async def test_role_required(self, db_session: AsyncSession):
        with pytest.raises(RoleRequiredError):
            await find_or_link_or_create_user(db_session, google(), role=None)
        assert await UserRepository.get_by_email(db_session, "parent@example.com") is None

    async def test_student_role_rejected(self, db_session: AsyncSession):
        with pytest.raises(ValidationError):
            await find_or_link_or_create_user(db_session, google(), role="student")

    async def test_teacher_alias_becomes_tutor(self, db_session: AsyncSession):
        user, _ = await find_or_link_or_create_user(
            db_session, google(email="t@example.com"), role="Teacher"
        )
        assert user.role == "tutor"

    async def test_email_normalized(self, db_session: AsyncSession):
        user, _ = await find_or_link_or_create_user(
            db_session, google(email="  Mixed@Example.COM "), role="tutor"
        )
        assert user.email == "mixed@example.com"


class TestReturningUser:
    async def test_matched_by_provider_subject(self, db_session: AsyncSession):
        first, _ = await find_or_link_or_create_user(db_session, google(), role="parent")

        again, outcome = await find_or_link_or_create_user(
            db_session, google(email="changed@example.com"), role=None
        )

        assert outcome == "returning"
        assert again.id == first.id

    async def test_role_ignored_for_existing_user(self, db_session: AsyncSession):
        first, _ = await find_or_link_or_create_user(db_session, google(), role="parent")

        again, _ = await find_or_link_or_create_user(db_session, google(), role="tutor")

        assert again.id == first.id
        assert again.role == "parent"


class TestLinking:
    """Email matches an existing user."""

    async def test_links_to_password_account(self, db_session: AsyncSession, make_user):
        existing = await make_user("parent@example.com", verified=False)

        user, outcome = await find_or_link_or_create_user(
            db_session, google(picture="https://img.test/p.png"), role=None
        )

        assert outcome == "linked"
        assert user.id == existing.id
        assert user.password_hash is not None
        assert user.is_email_verified is True
        assert user.verification_token is None
        assert user.profile_picture == "https://img.test/p.png"
        accounts = await AccountRepository.list_for_user(db_session, user.id)
        assert [a.provider for a in accounts] == ["google"]

    async def test_keeps_existing_name(self, db_session: AsyncSession, make_user):
        await make_user("parent@example.com", name="Original Name")

        user, _ = await find_or_link_or_create_user(
            db_session, google(name="Provider Name"), role=None
        )

        assert user.name == "Original Name"

    async def test_user_can_hold_both_providers(self, db_session: AsyncSession, make_user):
        existing = await make_user("parent@example.com")

        await find_or_link_or_create_user(db_session, google(), role=None)
        user, outcome = await find_or_link_or_create_user(
            db_session,
            ExternalIdentity(
                provider="federated", subject="fb-uid-1", email="parent@example.com"
            ),
            role=None,
        )

        assert outcome == "linked"
        assert user.id == existing.id
        providers = {
            a.provider for a in await AccountRepository.list_for_user(db_session, user.id)
        }
        assert providers == {"google", "federated"}

    async def test_blocked_when_provider_email_unverified(
        self, db_session: AsyncSession, make_user
    ):
        await make_user("parent@example.com")

        with pytest.raises(AccountLinkingBlockedError):
            await find_or_link_or_create_user(
                db_session, google(email_verified=False), role=None
            )

    async def test_blocked_when_provider_already_linked(
        self, db_session: AsyncSession, make_user
    ):
        await make_user("parent@example.com")
        await find_or_link_or_create_user(db_session, google(subject="g-1"), role=None)

        with pytest.raises(AccountLinkingBlockedError):
            await find_or_link_or_create_user(
                db_session, google(subject="g-2"), role=None
            )


class TestCreateRace:
    """Two first sign-ins for the same identity create one user."""

    async def test_constraint_violation_is_conflict(
        self, db_session: AsyncSession, make_user, monkeypatch
    ):
        async def no_email_match(db, email):
            return None

        await make_user("parent@example.com")
        monkeypatch.setattr(UserRepository, "get_by_email", staticmethod(no_email_match))

        with pytest.raises(ConflictError):
            await find_or_link_or_create_user(db_session, google(), role="parent")

        assert (
            await AccountRepository.get_by_provider_and_account_id(
                db_session, "google", "g-1"
            )
            is None
        )

    async def test_concurrent_first_sign_ins(self, file_session_factory):
        async def attempt() -> str:
            async with file_session_factory() as session:
                try:
                    _, outcome = await find_or_link_or_create_user(
                        session, google(), role="parent"
                    )
                except ConflictError:
                    return "conflict"
                await session.commit()
                return outcome

        outcomes = await asyncio.gather(attempt(), attempt())

        assert "created" in outcomes
        assert outcomes.count("created") == 1
        async with file_session_factory() as session:
            users = await session.scalar(
                select(func.count()).select_from(User).where(User.email == "parent@example.com")
            )
            accounts = await session.scalar(select(func.count()).select_from(Account))
        assert users == 1
        assert accounts == 1


class TestResolveSelfServeRole:
    @pytest.mark.parametrize(
        ("given", "expected"),
        [("parent", "parent"), ("tutor", "tutor"), ("teacher", "tutor"), (" PARENT ", "parent")],
    )
    def test_allowed(self, given, expected):
        assert resolve_self_serve_role(given) == expected

    def test_missing(self):
        with pytest.raises(RoleRequiredError):
            resolve_self_serve_role("")

    @pytest.mark.parametrize("role", ["student", "admin"])
    def test_not_self_serve(self, role):
        with pytest.raises(ValidationError):
            resolve_self_serve_role(role)
