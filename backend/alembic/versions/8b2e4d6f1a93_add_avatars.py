"""add_avatars

Revision ID: 8b2e4d6f1a93
Revises: 3f9c1b2a7d10
Create Date: 2026-10-18 14:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8b2e4d6f1a93'
down_revision: Union[str, Sequence[str], None] = '3f9c1b2a7d10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "avatars",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    # All-time coin ranking
    op.create_index("ix_users_coins", "users", ["coins"])


def downgrade() -> None:
    op.drop_index("ix_users_coins", table_name="users")
    op.drop_table("avatars")
