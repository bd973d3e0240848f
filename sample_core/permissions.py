# sample_core/permissions.py
from __future__ import annotations

from typing import Iterable, Set

from rest_framework.exceptions import NotAuthenticated
from rest_framework.permissions import BasePermission

from .exceptions import RoleForbidden
from .models import UserRole
from .roles import (
    ADMINISTRATOR,
    CLIENT,
    STAFF_ROLES,
    normalize_role,
    normalize_roles,
    role_codes_for,
    roles_for_capability,
)
from .services import audit


# ------------------------------------------------------------------
# Role resolution
# ------------------------------------------------------------------
def roles_for_user(user) -> Set[str]:
    """
    Canonical roles held by the user.

    - UserRole rows (normalized)
    - superusers act as ADMINISTRATOR
    - a user owning an active Client profile acts as CLIENT
    """
    if not user or not getattr(user, "is_authenticated", False):
        return set()

    roles = normalize_roles(
        UserRole.objects.filter(user=user, is_active=True).values_list("role", flat=True)
    )

    if getattr(user, "is_superuser", False):
        roles.add(ADMINISTRATOR)

    profile = getattr(user, "client_profile", None)
    if profile is not None and profile.is_active:
        roles.add(CLIENT)

    return roles


def role_codes_for_user(user) -> Set[str]:
    return role_codes_for(roles_for_user(user))


def require_authenticated(user) -> None:
    if not user or not getattr(user, "is_authenticated", False):
        raise NotAuthenticated("Authentication credentials were not provided.")


def require_roles(
    user,
    allowed: Iterable[str],
    *,
    action: str,
    entity=None,
    entity_name: str = "",
    entity_id=None,
    message: str = "",
) -> Set[str]:
    """
    Raise RoleForbidden (and audit the blocked attempt) unless the user holds one
    of the allowed roles. Returns the user's roles.
    """
    require_authenticated(user)
    roles = roles_for_user(user)
    allowed_set = {normalize_role(r) for r in allowed}

    if not roles & allowed_set:
        reason = message or f"Requires one of: {', '.join(sorted(allowed_set))}."
        audit.record_blocked(
            action,
            actor=user,
            entity=entity,
            entity_name=entity_name,
            entity_id=entity_id,
            reason=reason,
            roles=roles,
        )
        raise RoleForbidden(reason, required_roles=sorted(allowed_set))

    return roles


def require_capability(user, capability: str, *, entity=None, entity_name: str = "", entity_id=None) -> Set[str]:
    return require_roles(
        user,
        roles_for_capability(capability),
        action=capability,
        entity=entity,
        entity_name=entity_name,
        entity_id=entity_id,
    )


def require_role_code(user, role_code: str, *, action: str, entity=None, entity_name: str = "", entity_id=None) -> None:
    """
    The actor may only act for a role code they actually hold (no cross-role acts).
    """
    require_authenticated(user)
    codes = role_codes_for_user(user)
    if role_code not in codes:
        reason = f"Your role cannot act for the {role_code} slot."
        audit.record_blocked(
            action,
            actor=user,
            entity=entity,
            entity_name=entity_name,
            entity_id=entity_id,
            reason=reason,
            roles=roles_for_user(user),
        )
        raise RoleForbidden(reason, role_code=role_code, held_codes=sorted(codes))


# ------------------------------------------------------------------
# DRF permissions
# ------------------------------------------------------------------
class IsStaffMember(BasePermission):
    """
    Any authenticated user holding a staff role.
    """

    message = "Staff role required."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        return bool(roles_for_user(user) & STAFF_ROLES)
