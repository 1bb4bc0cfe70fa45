"""Account model - external identity connections.

One row per (user, provider). provider is "google" for OAuth ID tokens
and "federated" for the client-side identity SDK.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from homeschool.models.base import Base, utcnow

if TYPE_CHECKING:
    from homeschool.models.user import User


class Account(Base):
    """External identity linked to a user.

    Attributes:
        id: UUID primary key.
        user_id: FK to users table.
        provider: Provider name ("google", "federated").
        provider_account_id: Provider's unique user id (OAuth sub, SDK uid).
        created_at: When the identity was linked.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint(
            "provider", "provider_account_id", name="uq_accounts_provider_account"
        ),
        UniqueConstraint("user_id", "provider", name="uq_accounts_user_provider"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        nullable=False,
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="accounts")
