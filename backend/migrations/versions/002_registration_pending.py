"""Add accounts.registration_pending.

Revision ID: 002_registration_pending
Revises: 001_accounts
Create Date: 2026-10-17

Set once a placeholder account has proven its sign-in code; only then may
registration name the account.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "002_registration_pending"
down_revision: str | None = "001_accounts"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column(
        "accounts",
        sa.Column(
            "registration_pending",
            sa.Boolean(),
            server_default=sa.false(),
            nullable=False,
        ),
    )


def downgrade() -> None:
    op.drop_column("accounts", "registration_pending")
