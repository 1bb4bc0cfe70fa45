"""Repository for Account CRUD operations.

Provides database access for the accounts table (external identities).
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homeschool.models.account import Account


class AccountRepository:
    """Stateless repository for Account table operations.

    All methods are static; there is no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        provider: str,
        provider_account_id: str,
    ) -> Account:
        """Link an external identity to a user.

        Args:
            db: Async database session.
            user_id: FK to users table.
            provider: Provider name ("google", "federated").
            provider_account_id: Provider's unique user identifier.

        Returns:
            Created Account.

        Raises:
            sqlalchemy.exc.IntegrityError: If provider+account_id already exists.
        """
        account = Account(
            user_id=user_id,
            provider=provider,
            provider_account_id=provider_account_id,
        )
        db.add(account)
        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def get_by_provider_and_account_id(
        db: AsyncSession,
        provider: str,
        provider_account_id: str,
    ) -> Account | None:
        """Find an account by provider and provider's user id.

        Args:
            db: Async database session.
            provider: Provider name.
            provider_account_id: Provider's unique user identifier.

        Returns:
            Account if found, None otherwise.
        """
        stmt = select(Account).where(
            Account.provider == provider,
            Account.provider_account_id == provider_account_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_user_and_provider(
        db: AsyncSession,
        user_id: uuid.UUID,
        provider: str,
    ) -> Account | None:
        """Find a user's account for one provider."""
        stmt = select(Account).where(
            Account.user_id == user_id,
            Account.provider == provider,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: uuid.UUID) -> list[Account]:
        """All external identities linked to a user."""
        stmt = select(Account).where(Account.user_id == user_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())
