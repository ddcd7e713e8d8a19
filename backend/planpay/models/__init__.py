"""SQLAlchemy models for PlanPay.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from planpay.models.avatar import Avatar
from planpay.models.plan import Plan, PlanName
from planpay.models.transaction import (
    ClickTransaction,
    PaymeState,
    PaymeTransaction,
    TransactionStatus,
)
from planpay.models.user import User
from planpay.models.user_plan import UserPlan, UserPlanStatus

__all__ = [
    "Avatar",
    "ClickTransaction",
    "PaymeState",
    "PaymeTransaction",
    "Plan",
    "PlanName",
    "TransactionStatus",
    "User",
    "UserPlan",
    "UserPlanStatus",
]
