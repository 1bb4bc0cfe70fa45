"""Find-or-link-or-create for external identities.

Shared by Google sign-in and the federated identity bridge. Both reduce
their credential to an ExternalIdentity and run the same steps:

1. provider + subject already linked -> returning user
2. email matches an existing user -> link the identity to that user and
   mark the email verified (the provider vouched for it)
3. no match -> create a verified user with the chosen role

Linking never creates a second user for an email. It is refused when the
provider itself has not verified the email, since anyone can claim an
address they don't own at an unverified provider.
"""

import logging
from dataclasses import dataclass
from typing import Literal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from homeschool.core.errors import (
    AccountLinkingBlockedError,
    ConflictError,
    RoleRequiredError,
    ValidationError,
)
from homeschool.models.user import SELF_SERVE_ROLES, User, normalize_role
from homeschool.repositories.account_repository import AccountRepository
from homeschool.repositories.user_repository import UserRepository, normalize_email

logger = logging.getLogger(__name__)

LinkOutcome = Literal["returning", "linked", "created"]


@dataclass(frozen=True)
class ExternalIdentity:
    """An identity asserted by an external provider.

    Attributes:
        provider: "google" or "federated".
        subject: Provider's stable user id.
        email: Email the provider reports.
        email_verified: Whether the provider verified the email.
        name: Display name from the provider.
        picture: Avatar URL from the provider.
    """

    provider: str
    subject: str
    email: str
    email_verified: bool = True
    name: str | None = None
    picture: str | None = None


def resolve_self_serve_role(role: str | None) -> str:
    """Validate the role chosen by someone creating their own account.

    Args:
        role: Role from the request, possibly an alias or None.

    Returns:
        Normalized role.

    Raises:
        RoleRequiredError: If no role was given.
        ValidationError: If the role can't be chosen at signup.
    """
    if not role:
        raise RoleRequiredError()
    normalized = normalize_role(role)
    if normalized not in SELF_SERVE_ROLES:
        raise ValidationError(
            "Role must be one of: " + ", ".join(SELF_SERVE_ROLES),
            details=[{"field": "role", "allowed": list(SELF_SERVE_ROLES)}],
        )
    return normalized


async def _link_identity(
    db: AsyncSession, user: User, identity: ExternalIdentity
) -> User:
    existing = await AccountRepository.get_by_user_and_provider(
        db, user.id, identity.provider
    )
    if existing is not None:
        # Same provider, different subject: someone else's identity
        logger.warning(
            "Account linking blocked: provider already linked",
            extra={"user_id": str(user.id), "provider": identity.provider},
        )
        raise AccountLinkingBlockedError()

    await AccountRepository.create(
        db,
        user_id=user.id,
        provider=identity.provider,
        provider_account_id=identity.subject,
    )
    updated = await UserRepository.update(
        db,
        user.id,
        is_email_verified=True,
        verification_token=None,
        verification_token_expiry=None,
        name=user.name or identity.name,
        profile_picture=user.profile_picture or identity.picture,
    )
    logger.info(
        "Linked external identity to existing user",
        extra={"user_id": str(user.id), "provider": identity.provider},
    )
    return updated or user


async def find_or_link_or_create_user(
    db: AsyncSession,
    identity: ExternalIdentity,
    *,
    role: str | None = None,
) -> tuple[User, LinkOutcome]:
    """Resolve an external identity to exactly one user.

    Args:
        db: Async database session.
        identity: Identity asserted by the provider.
        role: Role for a brand-new account. Ignored for existing users.

    Returns:
        Tuple of (User, outcome).

    Raises:
        RoleRequiredError: New user and no role given.
        ValidationError: New user and the role is not self-serve.
        AccountLinkingBlockedError: Email matches but linking is unsafe.
        ConflictError: A concurrent request created the same email first.
    """
    email = normalize_email(identity.email)

    # Step 1: returning user
    account = await AccountRepository.get_by_provider_and_account_id(
        db, identity.provider, identity.subject
    )
    if account is not None:
        user = await UserRepository.get_by_id(db, account.user_id)
        if user is not None:
            logger.info(
                "Returning external identity user",
                extra={"user_id": str(user.id), "provider": identity.provider},
            )
            return user, "returning"

    # Step 2: link by email
    existing_user = await UserRepository.get_by_email(db, email)
    if existing_user is not None:
        if not identity.email_verified:
            logger.warning(
                "Account linking blocked: provider email unverified",
                extra={"provider": identity.provider},
            )
            raise AccountLinkingBlockedError()
        return await _link_identity(db, existing_user, identity), "linked"

    # Step 3: create
    chosen_role = resolve_self_serve_role(role)
    try:
        user = await UserRepository.create(
            db,
            email=email,
            role=chosen_role,
            name=identity.name,
            profile_picture=identity.picture,
            is_email_verified=True,
        )
        await AccountRepository.create(
            db,
            user_id=user.id,
            provider=identity.provider,
            provider_account_id=identity.subject,
        )
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError() from exc

    logger.info(
        "Created user from external identity",
        extra={"user_id": str(user.id), "provider": identity.provider},
    )
    return user, "created"
