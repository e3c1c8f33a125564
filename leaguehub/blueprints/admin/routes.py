"""Administration JSON API: clients, users, standings maintenance and backups."""

from __future__ import annotations

import json

from flask import Blueprint, jsonify, request, send_file, session
from flask_login import current_user

from leaguehub.blueprints.common.tenant import SESSION_CLIENT_KEY, current_scope
from leaguehub.extensions import csrf, limiter
from leaguehub.models import AuditLog, Organization, User, UserRole
from leaguehub.security import normalize_permissions, roles_required
from leaguehub.security.config import admin_rate_limit
from leaguehub.services.audit import log_admin_action
from leaguehub.services.backup import BackupService, get_backup_scheduler
from leaguehub.services.league import get_orchestrator
from leaguehub.services.organization import OrganizationService, UserService
from leaguehub.standings.errors import ValidationError

admin_bp = Blueprint('admin', __name__)
csrf.exempt(admin_bp)
limiter.limit(admin_rate_limit)(admin_bp)


def serialize_organization(org: Organization) -> dict:
    return {
        'id': org.id,
        'name': org.name,
        'slug': org.slug,
        'contact_email': org.contact_email,
        'is_active': org.is_active,
        'created_at': org.created_at.isoformat() if org.created_at else None,
    }


def serialize_user(user: User) -> dict:
    return {
        'id': user.id,
        'email': user.email,
        'name': user.name,
        'role': user.role.value,
        'org_id': user.org_id,
        'active': user.active,
        'permissions': normalize_permissions(user.permissions),
        'last_login_at': user.last_login_at.isoformat() if user.last_login_at else None,
    }


def serialize_audit_entry(entry: AuditLog) -> dict:
    return {
        'id': entry.id,
        'org_id': entry.org_id,
        'user_id': entry.user_id,
        'action': entry.action,
        'entity_type': entry.entity_type,
        'entity_id': entry.entity_id,
        'meta': entry.meta or {},
        'created_at': entry.created_at.isoformat() if entry.created_at else None,
    }


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _tenant_ids() -> list[str]:
    """Clients the caller is acting on: the selected one, or all for a global scope."""
    scope = current_scope()
    if scope.is_global:
        return [org.id for org in OrganizationService.list_organizations()]
    return [scope.org_id]


# Clients -------------------------------------------------------------------

@admin_bp.route('/clients', methods=['GET'])
@roles_required(UserRole.SUPERADMIN)
def list_clients():
    return jsonify({'items': [serialize_organization(o) for o in OrganizationService.list_organizations()]})


@admin_bp.route('/clients', methods=['POST'])
@roles_required(UserRole.SUPERADMIN)
def create_client():
    payload = _json_body()
    org = OrganizationService.create_organization(
        payload.get('name'),
        slug=payload.get('slug'),
        contact_email=payload.get('contact_email'),
    )
    log_admin_action(current_user, 'client_created', 'organization', org.id, org_id=org.id)
    return jsonify(serialize_organization(org)), 201


@admin_bp.route('/clients/<org_id>', methods=['PATCH'])
@roles_required(UserRole.SUPERADMIN)
def update_client(org_id):
    payload = _json_body()
    if 'is_active' not in payload:
        raise ValidationError("Nothing to update")
    org = OrganizationService.set_active(org_id, bool(payload['is_active']))
    return jsonify(serialize_organization(org))


@admin_bp.route('/clients/<org_id>/stats', methods=['GET'])
@roles_required(UserRole.SUPERADMIN)
def client_stats(org_id):
    OrganizationService.get_organization(org_id)
    return jsonify(OrganizationService.stats(org_id))


@admin_bp.route('/clients/<org_id>', methods=['DELETE'])
@roles_required(UserRole.SUPERADMIN)
def delete_client(org_id):
    OrganizationService.delete_organization(org_id)
    if session.get(SESSION_CLIENT_KEY) == org_id:
        session.pop(SESSION_CLIENT_KEY, None)
    return jsonify({'message': 'Client deleted'})


# Users ---------------------------------------------------------------------

@admin_bp.route('/users', methods=['GET'])
@roles_required(UserRole.SUPERADMIN, UserRole.ADMIN)
def list_users():
    return jsonify({'items': [serialize_user(u) for u in UserService.list_users(current_scope())]})


@admin_bp.route('/users', methods=['POST'])
@roles_required(UserRole.SUPERADMIN, UserRole.ADMIN)
def create_user():
    payload = _json_body()
    scope = current_scope()
    role = payload.get('role', UserRole.USER.value)

    if current_user.is_superadmin:
        org_id = payload.get('org_id') or scope.org_id
    else:
        if str(role).lower() == UserRole.SUPERADMIN.value:
            return jsonify({'error': 'Only super-admins can create super-admins'}), 403
        org_id = scope.org_id

    user = UserService.create_user(
        payload.get('email'),
        payload.get('password'),
        role=role,
        org_id=org_id,
        name=payload.get('name'),
        permissions=payload.get('permissions'),
    )
    log_admin_action(current_user, 'user_created', 'user', user.id, org_id=user.org_id)
    return jsonify(serialize_user(user)), 201


@admin_bp.route('/users/<user_id>/permissions', methods=['PUT'])
@roles_required(UserRole.SUPERADMIN, UserRole.ADMIN)
def update_permissions(user_id):
    payload = _json_body()
    user = UserService.update_permissions(current_scope(), user_id, payload.get('permissions'))
    log_admin_action(current_user, 'permissions_updated', 'user', user.id, org_id=user.org_id)
    return jsonify(serialize_user(user))


@admin_bp.route('/users/<user_id>', methods=['PATCH'])
@roles_required(UserRole.SUPERADMIN, UserRole.ADMIN)
def update_user(user_id):
    payload = _json_body()
    if 'active' not in payload:
        raise ValidationError("Nothing to update")
    user = UserService.set_active(current_scope(), user_id, bool(payload['active']))
    return jsonify(serialize_user(user))


@admin_bp.route('/users/<user_id>', methods=['DELETE'])
@roles_required(UserRole.SUPERADMIN, UserRole.ADMIN)
def delete_user(user_id):
    UserService.delete_user(current_scope(), user_id, actor=current_user)
    log_admin_action(current_user, 'user_deleted', 'user', user_id)
    return jsonify({'message': 'User deleted'})


# Standings maintenance -------------------------------------------------------

@admin_bp.route('/standings/recalculate', methods=['POST'])
@roles_required(UserRole.SUPERADMIN, UserRole.ADMIN)
def recalculate_standings():
    orchestrator = get_orchestrator()
    teams = 0
    for org_id in _tenant_ids():
        teams += len(orchestrator.recalculate_tenant(org_id))
        log_admin_action(current_user, 'standings_recalculated', 'organization', org_id, org_id=org_id)
    return jsonify({'teams_recalculated': teams})


@admin_bp.route('/standings/audit', methods=['GET'])
@roles_required(UserRole.SUPERADMIN, UserRole.ADMIN)
def audit_standings():
    """Raises ConsistencyError (HTTP 500) when any stored row has drifted."""
    orchestrator = get_orchestrator()
    checked = sum(orchestrator.audit_tenant(org_id) for org_id in _tenant_ids())
    return jsonify({'teams_checked': checked, 'consistent': True})


@admin_bp.route('/audit-log', methods=['GET'])
@roles_required(UserRole.SUPERADMIN, UserRole.ADMIN)
def audit_log():
    limit = min(request.args.get('limit', 100, type=int) or 100, 500)
    entries = current_scope().query(AuditLog).order_by(AuditLog.created_at.desc()).limit(limit).all()
    return jsonify({'items': [serialize_audit_entry(e) for e in entries]})


# Backups -------------------------------------------------------------------

@admin_bp.route('/backups', methods=['GET'])
@roles_required(UserRole.SUPERADMIN)
def list_backups():
    return jsonify({'items': BackupService.list_backups()})


@admin_bp.route('/backups', methods=['POST'])
@roles_required(UserRole.SUPERADMIN)
def create_backup():
    filename = BackupService.create_backup(
        org_id=current_scope().org_id,
        kind='manual',
        created_by=current_user.email,
    )
    log_admin_action(current_user, 'backup_created', 'backup', None, metadata={'filename': filename})
    return jsonify({'filename': filename}), 201


@admin_bp.route('/backups/<filename>', methods=['GET'])
@roles_required(UserRole.SUPERADMIN)
def download_backup(filename):
    return send_file(
        BackupService.backup_path(filename),
        mimetype='application/json',
        as_attachment=True,
        download_name=filename,
    )


@admin_bp.route('/backups/<filename>', methods=['DELETE'])
@roles_required(UserRole.SUPERADMIN)
def delete_backup(filename):
    BackupService.delete_backup(filename)
    log_admin_action(current_user, 'backup_deleted', 'backup', None, metadata={'filename': filename})
    return jsonify({'message': 'Backup deleted'})


@admin_bp.route('/backups/restore', methods=['POST'])
@roles_required(UserRole.SUPERADMIN)
def restore_backup():
    """Restore from an uploaded file, a stored filename, or an inline payload."""
    upload = request.files.get('backup')
    if upload is not None:
        try:
            payload = json.load(upload.stream)
        except ValueError:
            raise ValidationError("Backup file is not valid JSON") from None
    else:
        body = _json_body()
        payload = BackupService.load_backup(body['filename']) if body.get('filename') else body

    restored = BackupService.restore(payload, org_id=current_scope().org_id)
    log_admin_action(current_user, 'backup_restored', 'backup', None, metadata={'restored': restored})
    return jsonify({'restored': restored})


@admin_bp.route('/backups/schedule', methods=['GET'])
@roles_required(UserRole.SUPERADMIN)
def get_backup_schedule():
    return jsonify(get_backup_scheduler().load())


@admin_bp.route('/backups/schedule', methods=['POST'])
@roles_required(UserRole.SUPERADMIN)
def set_backup_schedule():
    payload = _json_body()
    enabled = payload.get('enabled')
    if not isinstance(enabled, bool):
        raise ValidationError("'enabled' must be true or false")

    scheduler = get_backup_scheduler()
    if enabled:
        schedule = scheduler.start(payload.get('time') or '', payload.get('frequency') or '')
    else:
        schedule = scheduler.stop()
    log_admin_action(current_user, 'backup_schedule_updated', 'backup', None, metadata={'enabled': enabled})
    return jsonify(schedule)
