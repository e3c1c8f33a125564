"""Audit logging service for administrative events."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flask import current_app, has_request_context, request

from leaguehub.extensions import db
from leaguehub.models import AuditLog

if TYPE_CHECKING:
    from leaguehub.models import User


def log_admin_action(
    user: User | None,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    org_id: str | None = None,
) -> None:
    """
    Log an administrative action.

    Args:
        user: User who performed the action (None for CLI and background jobs)
        action: Action performed (e.g., "team_deleted", "score_updated")
        entity_type: Type of entity affected
        entity_id: ID of entity affected
        metadata: Additional metadata
        org_id: Tenant the action touched; defaults to the user's tenant
    """
    try:
        meta = dict(metadata or {})
        if has_request_context():
            meta['ip_address'] = request.remote_addr

        audit_entry = AuditLog(
            org_id=org_id if org_id is not None else getattr(user, 'org_id', None),
            user_id=getattr(user, 'id', None),
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            meta=meta,
        )

        db.session.add(audit_entry)
        db.session.commit()

    except Exception as e:
        # The audited change is already committed; a lost audit row must not undo it.
        db.session.rollback()
        current_app.logger.error(f"Failed to log admin action {action}: {e}")


__all__ = ["log_admin_action"]
