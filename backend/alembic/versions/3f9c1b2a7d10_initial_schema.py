"""initial_schema

Revision ID: 3f9c1b2a7d10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c1b2a7d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("username", sa.String(length=255), nullable=True),
        sa.Column("coins", sa.Integer(), server_default="0", nullable=False),
        sa.Column("status", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("premium_avatar_id", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "plans",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "user_plans",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("plan_id", sa.UUID(), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=20), server_default="ACTIVE", nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["plan_id"], ["plans.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_plans_user_id", "user_plans", ["user_id"])
    # Sweeper scan: ACTIVE plans past their end_date
    op.create_index("ix_user_plans_status_end_date", "user_plans", ["status", "end_date"])

    op.create_table(
        "click_transactions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("click_trans_id", sa.String(length=64), nullable=False),
        sa.Column("prepare_id", sa.String(length=64), nullable=False),
        sa.Column("merchant_trans_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("plan_id", sa.UUID(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("action", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("sign_time", sa.String(length=32), nullable=False),
        sa.Column("created_date", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("click_trans_id"),
    )
    op.create_index("ix_click_transactions_prepare_id", "click_transactions", ["prepare_id"])
    op.create_index("ix_click_transactions_user_id", "click_transactions", ["user_id"])
    op.create_index("ix_click_transactions_plan_id", "click_transactions", ["plan_id"])

    op.create_table(
        "payme_transactions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("payme_trans_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("plan_id", sa.UUID(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("state", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("perform_at", sa.DateTime(), nullable=True),
        sa.Column("cancel_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payme_trans_id"),
    )
    op.create_index("ix_payme_transactions_user_id", "payme_transactions", ["user_id"])
    op.create_index("ix_payme_transactions_plan_id", "payme_transactions", ["plan_id"])
    op.create_index("ix_payme_transactions_created_at", "payme_transactions", ["created_at"])


def downgrade() -> None:
    op.drop_table("payme_transactions")
    op.drop_table("click_transactions")
    op.drop_index("ix_user_plans_status_end_date", table_name="user_plans")
    op.drop_index("ix_user_plans_user_id", table_name="user_plans")
    op.drop_table("user_plans")
    op.drop_table("plans")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
