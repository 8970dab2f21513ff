# studio_tracker/permissions.py
from typing import Optional

from .errors import PermissionDenied
from .models import Actor, Role

STAFF_AND_ADMIN = frozenset({Role.ADMIN, Role.STAFF})
ADMIN_ONLY = frozenset({Role.ADMIN})

RULES = {
    "create": STAFF_AND_ADMIN,
    "update": STAFF_AND_ADMIN,
    "mark_ready": STAFF_AND_ADMIN,
    "complete": ADMIN_ONLY,
    "delete": ADMIN_ONLY,
    "catalog.add": ADMIN_ONLY,
    "catalog.delete": ADMIN_ONLY,
    "stats": ADMIN_ONLY,
}


def authorize(actor: Optional[Actor], action: str) -> Actor:
    allowed = RULES[action]
    if actor is None:
        raise PermissionDenied(f"Sign in to {action.replace('_', ' ')}")
    if actor.role not in allowed:
        raise PermissionDenied(f"{actor.role.value} may not {action.replace('_', ' ')}")
    return actor
