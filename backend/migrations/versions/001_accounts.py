"""Create accounts table.

Revision ID: 001_accounts
Revises:
Create Date: 2026-10-17

One row per email address. Email and federated_id are unique; the
outstanding verification code lives on the row.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_accounts"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_auth_method = sa.Enum("local", "federated", name="auth_method")


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("federated_id", sa.String(255), nullable=True),
        sa.Column("profile_image_url", sa.Text(), nullable=True),
        sa.Column(
            "last_used_method",
            _auth_method,
            server_default="local",
            nullable=False,
        ),
        sa.Column(
            "is_verified",
            sa.Boolean(),
            server_default=sa.false(),
            nullable=False,
        ),
        sa.Column("verification_code", sa.String(6), nullable=True),
        sa.Column(
            "verification_code_expires", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        # Email uniqueness is the store's guarantee against duplicate accounts
        sa.UniqueConstraint("email", name="uq_accounts_email"),
        sa.UniqueConstraint("federated_id", name="uq_accounts_federated_id"),
    )


def downgrade() -> None:
    op.drop_table("accounts")
    _auth_method.drop(op.get_bind(), checkfirst=True)
