"""Tenant scope resolution and multi-tenant helpers."""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Type, TypeVar

from flask import abort, g, has_request_context, jsonify, session
from flask_login import current_user
from sqlalchemy import event
from sqlalchemy.orm import Query

from leaguehub.extensions import db
from leaguehub.models import Organization
from leaguehub.standings.errors import NotFoundError, ValidationError

Model = TypeVar("Model", bound=db.Model)

SESSION_CLIENT_KEY = "active_org_id"


@dataclass(frozen=True)
class TenantScope:
    """Which tenant's rows a caller may see.

    ``org_id`` is set for tenant users and for a super-admin who switched into
    a client. A super-admin without a selected client gets the global variant,
    which reads across tenants but cannot create tenant-owned rows.
    """

    org_id: str | None = None
    is_global: bool = False

    def __post_init__(self):
        if self.is_global and self.org_id is not None:
            raise ValueError("A global scope cannot carry a tenant id")
        if not self.is_global and not self.org_id:
            raise ValueError("A tenant scope requires a tenant id")

    @classmethod
    def for_tenant(cls, org_id: str) -> "TenantScope":
        return cls(org_id=org_id)

    @classmethod
    def global_admin(cls) -> "TenantScope":
        return cls(is_global=True)

    def query(self, model: Type[Model]) -> Query:
        query = model.query
        if self.is_global:
            return query
        return query.filter_by(org_id=self.org_id)

    def get(self, model: Type[Model], object_id: str | None) -> Model | None:
        if not object_id:
            return None
        return self.query(model).filter_by(id=object_id).first()

    def get_or_raise(self, model: Type[Model], object_id: str | None, label: str | None = None) -> Model:
        obj = self.get(model, object_id)
        if obj is None:
            name = label or model.__name__
            raise NotFoundError(f"{name} not found", id=object_id)
        return obj

    def owns(self, obj) -> bool:
        return self.is_global or getattr(obj, "org_id", None) == self.org_id

    def require_tenant(self) -> str:
        """Tenant id for writes; a global scope must switch into a client first."""
        if self.org_id is None:
            raise ValidationError("Select a client before creating league data")
        return self.org_id


def scope_for_user(user, selected_org_id: str | None = None) -> TenantScope:
    """Build the scope once, at the access-control boundary."""
    if user is None or not getattr(user, "is_authenticated", False):
        raise PermissionError("Authentication required")

    if getattr(user, "is_superadmin", False):
        if selected_org_id:
            org = db.session.get(Organization, selected_org_id)
            if org is not None:
                return TenantScope.for_tenant(org.id)
        return TenantScope.global_admin()

    if not user.org_id:
        raise PermissionError("User is not attached to a client")
    return TenantScope.for_tenant(user.org_id)


def init_tenant(app) -> None:
    """Register tenant resolution hooks with the Flask app."""

    @app.before_request
    def _load_tenant() -> None:
        resolve_tenant()


def resolve_tenant() -> TenantScope | None:
    g.tenant_scope = None
    if not current_user or not current_user.is_authenticated:
        return None
    try:
        g.tenant_scope = scope_for_user(current_user, session.get(SESSION_CLIENT_KEY))
    except PermissionError:
        g.tenant_scope = None
    return g.tenant_scope


def current_scope() -> TenantScope:
    scope = getattr(g, "tenant_scope", None)
    if scope is None:
        raise RuntimeError("Tenant scope has not been resolved")
    return scope


def tenant_required(view):
    """Ensure an authenticated caller with a resolved scope."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({"error": "Authentication required"}), 401
        if getattr(g, "tenant_scope", None) is None:
            abort(403)
        return view(*args, **kwargs)

    return wrapped


@event.listens_for(db.session, "before_flush")
def _inject_org_id(session, flush_context, instances) -> None:
    """Automatically assign org_id and guard cross-tenant writes."""

    if not has_request_context():
        return

    scope = getattr(g, "tenant_scope", None)
    if scope is None or scope.is_global:
        return

    for obj in session.new:
        if hasattr(obj, "org_id") and not isinstance(obj, Organization):
            current_value = getattr(obj, "org_id", None)
            if current_value is None:
                setattr(obj, "org_id", scope.org_id)
            elif current_value != scope.org_id:
                raise PermissionError("Cross-organization insert blocked")

    for obj in session.dirty:
        if hasattr(obj, "org_id") and not isinstance(obj, Organization):
            current_value = getattr(obj, "org_id", None)
            if current_value is not None and current_value != scope.org_id:
                raise PermissionError("Cross-organization update blocked")


__all__ = [
    "TenantScope",
    "scope_for_user",
    "init_tenant",
    "resolve_tenant",
    "current_scope",
    "tenant_required",
    "SESSION_CLIENT_KEY",
]
