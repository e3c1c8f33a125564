"""Role and permission checks for LeagueHub."""

from __future__ import annotations

from copy import deepcopy
from functools import wraps
from typing import Iterable

from flask import abort, g, jsonify
from flask_login import current_user

from leaguehub.models import UserRole

# module -> allowed actions
MODULES: dict[str, tuple[str, ...]] = {
    "teams": ("view", "create", "edit", "delete"),
    "groups": ("view", "create", "edit", "delete"),
    "matches": ("view", "create", "edit", "delete"),
    "users": ("view", "create", "edit", "delete"),
    "players": ("view", "create", "edit", "delete"),
    "reports": ("view", "export"),
}

# Tenant users can look at everything except user management and change nothing.
DEFAULT_PERMISSIONS: dict[str, dict[str, bool]] = {
    "teams": {"view": True, "create": False, "edit": False, "delete": False},
    "groups": {"view": True, "create": False, "edit": False, "delete": False},
    "matches": {"view": True, "create": False, "edit": False, "delete": False},
    "users": {"view": False, "create": False, "edit": False, "delete": False},
    "players": {"view": True, "create": False, "edit": False, "delete": False},
    "reports": {"view": True, "export": False},
}


def default_permissions() -> dict[str, dict[str, bool]]:
    return deepcopy(DEFAULT_PERMISSIONS)


def normalize_permissions(raw: dict | None) -> dict[str, dict[str, bool]]:
    """Overlay a stored permission map on the defaults, dropping unknown keys."""
    merged = default_permissions()
    for module, actions in (raw or {}).items():
        if module not in MODULES or not isinstance(actions, dict):
            continue
        for action, allowed in actions.items():
            if action in MODULES[module]:
                merged[module][action] = bool(allowed)
    return merged


def has_permission(user, module: str, action: str) -> bool:
    if user is None or not getattr(user, "is_authenticated", False):
        return False
    if user.has_role(UserRole.SUPERADMIN, UserRole.ADMIN):
        return True
    return normalize_permissions(user.permissions).get(module, {}).get(action, False)


def _normalize_roles(roles: Iterable[UserRole | str]) -> set[str]:
    normalized: set[str] = set()
    for role in roles:
        if isinstance(role, UserRole):
            normalized.add(role.value)
        else:
            normalized.add(str(role))
    return normalized


def roles_required(*roles: UserRole | str):
    """Ensure the current user is authenticated and has one of the roles."""

    required = _normalize_roles(roles)

    def decorator(view_func):
        @wraps(view_func)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({"error": "Authentication required"}), 401

            if getattr(g, "tenant_scope", None) is None:
                abort(403)

            user_role = (
                current_user.role.value
                if isinstance(current_user.role, UserRole)
                else str(current_user.role)
            )
            if required and user_role not in required:
                abort(403)

            return view_func(*args, **kwargs)

        return wrapped

    return decorator


def permission_required(module: str, action: str):
    """Ensure the current user may perform ``action`` on ``module``."""

    def decorator(view_func):
        @wraps(view_func)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({"error": "Authentication required"}), 401
            if getattr(g, "tenant_scope", None) is None:
                abort(403)
            if not has_permission(current_user, module, action):
                abort(403)
            return view_func(*args, **kwargs)

        return wrapped

    return decorator


__all__ = [
    "MODULES",
    "DEFAULT_PERMISSIONS",
    "default_permissions",
    "normalize_permissions",
    "has_permission",
    "roles_required",
    "permission_required",
]
