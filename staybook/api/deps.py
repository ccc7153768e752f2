"""Shared API dependencies: single import point for all routers.

Re-exports database session, authentication and payment dependencies so that
router modules can import everything they need from one place::

    from staybook.api.deps import get_db, require_capability
"""

from staybook.auth.dependencies import (
    get_current_active_user,
    get_current_user,
    require_capability,
)
from staybook.auth.permissions import Capability
from staybook.database import get_db
from staybook.payments.dependencies import get_gateway, get_reconciler

__all__ = [
    "Capability",
    "get_db",
    "get_current_user",
    "get_current_active_user",
    "get_gateway",
    "get_reconciler",
    "require_capability",
]
