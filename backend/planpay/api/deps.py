"""Shared API dependencies — single import point for all routers.

Re-exports the database session and the admin guard so that router modules
can import everything they need from one place::

    from planpay.api.deps import get_db, require_admin
"""

from planpay.auth.basic import require_admin
from planpay.database import get_db

__all__ = [
    "get_db",
    "require_admin",
]
