# Overview: Administrator capability check consulted by settlement reversal.

"""
Fail closed: unknown, inactive or non-admin users are not administrators.
Every denial is logged with the action it was checked for.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import User
from .errors import PermissionDenied

logger = logging.getLogger(__name__)


ROLE_ADMIN = "admin"
ROLE_OPERATOR = "operator"
VALID_ROLES = {ROLE_ADMIN, ROLE_OPERATOR}


def is_admin(user_id: int | None) -> bool:
    if user_id is None:
        return False
    user = db.session.get(User, user_id)
    return bool(user and user.is_active and user.role == ROLE_ADMIN)


def require_admin(user_id: int | None, action: str) -> None:
    """
    Raises:
        PermissionDenied: caller is not an active administrator
    """
    if not is_admin(user_id):
        logger.warning("Permission denied: user %s attempted %s", user_id, action)
        raise PermissionDenied(f"Only administrators can {action}")
