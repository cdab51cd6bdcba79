"""SQLAlchemy ORM models.

All models are exported from this module for convenient imports:
    from app.models import Account, Base

- account.py: Account, plus the AuthMethod enum and the embedded
  VerificationChallenge value type
"""

from app.models.account import (
    PLACEHOLDER_FIRST_NAME,
    PLACEHOLDER_LAST_NAME,
    Account,
    AuthMethod,
    VerificationChallenge,
)
from app.models.base import Base, TimestampMixin

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Identity
    "Account",
    "AuthMethod",
    "VerificationChallenge",
    "PLACEHOLDER_FIRST_NAME",
    "PLACEHOLDER_LAST_NAME",
]
