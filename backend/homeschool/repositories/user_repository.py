"""Repository for User CRUD operations.

Provides database access for the users table, including lookups by
stored token digest and the bulk sweeps used by identity cleanup.
"""

import uuid
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from homeschool.models.account import Account
from homeschool.models.user import User

# Fields that may be updated via UserRepository.update().
# Never add 'id', 'email', 'role', 'created_at' or 'updated_at':
# - id: primary key, immutable
# - email: unique identity
# - role: fixed at creation
# - created_at/updated_at: managed timestamps
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "password_hash",
        "is_email_verified",
        "verification_token",
        "verification_token_expiry",
        "consumed_verification_token",
        "password_reset_token",
        "password_reset_token_expiry",
        "profile_picture",
    }
)


def normalize_email(email: str) -> str:
    """Lower-case and strip an email for storage and lookup."""
    return email.strip().lower()


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static; there is no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == normalize_email(email))
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_verification_token(
        db: AsyncSession, token_hash: str
    ) -> User | None:
        """Fetch the user holding a pending verification token digest."""
        stmt = select(User).where(User.verification_token == token_hash)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_consumed_verification_token(
        db: AsyncSession, token_hash: str
    ) -> User | None:
        """Fetch the user whose last consumed verification token matches."""
        stmt = select(User).where(User.consumed_verification_token == token_hash)
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def get_by_reset_token(db: AsyncSession, token_hash: str) -> User | None:
        """Fetch the user holding a pending password reset token digest."""
        stmt = select(User).where(User.password_reset_token == token_hash)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        role: str,
        name: str | None = None,
        password_hash: str | None = None,
        is_email_verified: bool = False,
        verification_token: str | None = None,
        verification_token_expiry: datetime | None = None,
        profile_picture: str | None = None,
    ) -> User:
        """Create a new user.

        Email is normalized to lowercase before storage.

        Args:
            db: Async database session.
            email: User email address.
            role: parent, tutor or student.
            name: Display name.
            password_hash: bcrypt hash (None for identity-provider users).
            is_email_verified: Whether login is allowed immediately.
            verification_token: Digest of a pending verification token.
            verification_token_expiry: Expiry of that token.
            profile_picture: Avatar URL.

        Returns:
            Created User with generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email already exists.
        """
        user = User(
            email=normalize_email(email),
            role=role,
            name=name,
            password_hash=password_hash,
            is_email_verified=is_email_verified,
            verification_token=verification_token,
            verification_token_expiry=verification_token_expiry,
            profile_picture=profile_picture,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user_id: uuid.UUID,
        **kwargs: str | datetime | bool | None,
    ) -> User | None:
        """Update user fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            user_id: UUID of the user to update.
            **kwargs: Field names and values to update.

        Returns:
            Updated User if found, None if user does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        user = await db.get(User, user_id)
        if user is None:
            return None

        for field, value in kwargs.items():
            setattr(user, field, value)

        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def delete_expired_unverified(db: AsyncSession, now: datetime) -> int:
        """Delete password signups that never verified before their token expired.

        Users with a linked external identity are kept; they have another
        way to sign in.

        Args:
            db: Async database session.
            now: Reference time.

        Returns:
            Number of users deleted.
        """
        has_account = select(Account.id).where(Account.user_id == User.id).exists()
        stmt = delete(User).where(
            User.is_email_verified.is_(False),
            User.password_hash.is_not(None),
            User.verification_token_expiry.is_not(None),
            User.verification_token_expiry < now,
            ~has_account,
        ).execution_options(synchronize_session=False)
        result = await db.execute(stmt)
        return result.rowcount or 0

    @staticmethod
    async def clear_expired_reset_tokens(db: AsyncSession, now: datetime) -> int:
        """Clear reset token pairs whose expiry has passed.

        Args:
            db: Async database session.
            now: Reference time.

        Returns:
            Number of users whose reset pair was cleared.
        """
        stmt = (
            update(User)
            .where(
                User.password_reset_token_expiry.is_not(None),
                User.password_reset_token_expiry < now,
            )
            .values(password_reset_token=None, password_reset_token_expiry=None)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount or 0
