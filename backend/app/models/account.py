"""Account model - the unit of identity.

One row per email address. A row can hold a password, a Google link,
and an outstanding verification code at the same time.
"""

import enum
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Boolean, Enum, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin

# Names given to accounts created implicitly by the code sign-in flow
PLACEHOLDER_FIRST_NAME = "New"
PLACEHOLDER_LAST_NAME = "User"


class AuthMethod(enum.StrEnum):
    """Primary sign-in method most recently used by an account."""

    LOCAL = "local"
    FEDERATED = "federated"


@dataclass(frozen=True)
class VerificationChallenge:
    """Short-lived numeric code proving ownership of an email address.

    Attributes:
        code: Six-digit numeric string.
        expires_at: Absolute expiry (timezone-aware, UTC).
    """

    code: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """Check whether the challenge has lapsed at ``now``.

        Args:
            now: Current time (timezone-aware).

        Returns:
            True once ``now >= expires_at``.
        """
        return now >= self.expires_at


def _as_utc(value: datetime) -> datetime:
    # Some backends (SQLite) hand back naive datetimes; stored values are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Account(Base, TimestampMixin):
    """Unified identity record keyed by email.

    Attributes:
        id: UUID primary key, assigned at creation, never reused.
        email: Unique email address, stored lower-cased.
        first_name: Given name (placeholder "New" for implicit accounts).
        last_name: Family name (placeholder "User" for implicit accounts).
        password_hash: bcrypt hash. NULL until password registration.
        federated_id: Google subject identifier. NULL until linked.
        profile_image_url: Photo URL adopted from Google.
        last_used_method: Most recently used primary sign-in method.
        is_verified: Whether the account has proven ownership of its email.
        registration_pending: Code proven for a placeholder account that has
            not yet completed registration.
        verification_code: Outstanding six-digit code, if any.
        verification_code_expires: Expiry of the outstanding code.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    federated_id: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )
    profile_image_url: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    last_used_method: Mapped[AuthMethod] = mapped_column(
        Enum(
            AuthMethod,
            name="auth_method",
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        default=AuthMethod.LOCAL,
    )
    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    registration_pending: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    verification_code: Mapped[str | None] = mapped_column(
        String(6),
        nullable=True,
    )
    verification_code_expires: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    @property
    def display_name(self) -> str:
        """First and last name joined for display."""
        return f"{self.first_name} {self.last_name}"

    @property
    def has_password(self) -> bool:
        """Whether password sign-in is possible for this account."""
        return self.password_hash is not None

    @property
    def has_federated_link(self) -> bool:
        """Whether a Google identity is linked to this account."""
        return self.federated_id is not None

    @property
    def has_placeholder_name(self) -> bool:
        """Whether the account still carries the implicit-creation name."""
        return (
            self.first_name == PLACEHOLDER_FIRST_NAME
            and self.last_name == PLACEHOLDER_LAST_NAME
        )

    @property
    def awaiting_registration(self) -> bool:
        """Whether complete_registration may name this account."""
        return self.registration_pending and self.has_placeholder_name

    @property
    def active_challenge(self) -> VerificationChallenge | None:
        """Outstanding verification challenge, or None."""
        if self.verification_code is None or self.verification_code_expires is None:
            return None
        return VerificationChallenge(
            code=self.verification_code,
            expires_at=_as_utc(self.verification_code_expires),
        )

    @active_challenge.setter
    def active_challenge(self, challenge: VerificationChallenge | None) -> None:
        if challenge is None:
            self.verification_code = None
            self.verification_code_expires = None
        else:
            self.verification_code = challenge.code
            self.verification_code_expires = challenge.expires_at
