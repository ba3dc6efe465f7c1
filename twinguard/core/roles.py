"""
Role definitions for the users system of record.

Roles in hierarchy (lowest to highest):
- user: Regular signed-in visitor
- admin: Full access including role management, audit trail and attack log maintenance
"""
from enum import Enum
from typing import Dict, Set


class Role(str, Enum):
    """User roles with hierarchy."""
    USER = "user"
    ADMIN = "admin"


ROLE_HIERARCHY: Dict[str, int] = {
    Role.USER: 1,
    Role.ADMIN: 2,
}

VALID_ROLES: Set[str] = {r.value for r in Role}


def normalize_role(role: str) -> str:
    """
    Normalize role string.

    Unknown roles collapse to the least privileged role.
    """
    role_lower = (role or "").lower().strip()
    if role_lower in VALID_ROLES:
        return role_lower
    return Role.USER.value


def is_valid_role(role: str) -> bool:
    """True if the role is one of the known roles (exact, case-insensitive)."""
    return isinstance(role, str) and role.lower().strip() in VALID_ROLES


def has_permission(user_role: str, required_role: str) -> bool:
    """
    Check if user role has permission for required role.

    Args:
        user_role: User's role
        required_role: Minimum required role

    Returns:
        True if user has sufficient permissions
    """
    user_level = ROLE_HIERARCHY.get(normalize_role(user_role), 0)
    required_level = ROLE_HIERARCHY.get(normalize_role(required_role), 0)
    return user_level >= required_level
