"""SQLAlchemy ORM models for Homeschool Hub identity.

All models are exported from this module for convenient imports:
    from homeschool.models import User, Account, StudentInvite, StudentProfile

Models are organized by domain:
- user.py: User
- account.py: Account (external identities)
- student.py: StudentInvite, StudentProfile
"""

from homeschool.models.account import Account
from homeschool.models.base import Base
from homeschool.models.student import StudentInvite, StudentProfile
from homeschool.models.user import User

__all__ = [
    "Account",
    "Base",
    "StudentInvite",
    "StudentProfile",
    "User",
]
