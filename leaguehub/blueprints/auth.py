"""Authentication blueprint: JSON session login for LeagueHub."""

from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, jsonify, session
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf import FlaskForm
from sqlalchemy import func
from wtforms import BooleanField, PasswordField, StringField
from wtforms.validators import DataRequired, Length

from leaguehub.blueprints.common.tenant import SESSION_CLIENT_KEY, resolve_tenant
from leaguehub.extensions import csrf, db, limiter
from leaguehub.models import Organization, User
from leaguehub.security import normalize_permissions
from leaguehub.security.config import auth_rate_limit
from leaguehub.services.audit import log_admin_action


class LoginForm(FlaskForm):
    class Meta:
        csrf = False

    email = StringField("Email", validators=[DataRequired(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired()])
    remember_me = BooleanField("Remember me")


class SwitchClientForm(FlaskForm):
    class Meta:
        csrf = False

    org_id = StringField("Client", validators=[Length(max=36)])


auth_bp = Blueprint("auth", __name__)
csrf.exempt(auth_bp)


def serialize_session_user(user: User) -> dict:
    scope = resolve_tenant()
    return {
        'id': user.id,
        'email': user.email,
        'name': user.name,
        'role': user.role.value,
        'org_id': user.org_id,
        'active_org_id': scope.org_id if scope else None,
        'permissions': normalize_permissions(user.permissions),
    }


@auth_bp.route("/login", methods=["POST"])
@limiter.limit(auth_rate_limit)
def login():
    form = LoginForm()
    if not form.validate_on_submit():
        return jsonify({'error': 'Email and password are required', 'fields': form.errors}), 400

    email = form.email.data.strip().lower()
    user = User.query.filter(func.lower(User.email) == email).first()

    if user is None or not user.check_password(form.password.data):
        return jsonify({'error': 'Invalid email or password'}), 401

    if not user.is_active:
        return jsonify({'error': 'Account is inactive. Contact your administrator.'}), 403

    if user.organization is not None and not user.organization.is_active:
        return jsonify({'error': 'Client is inactive. Contact your administrator.'}), 403

    login_user(user, remember=form.remember_me.data)
    session.pop(SESSION_CLIENT_KEY, None)
    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()

    log_admin_action(user, 'login_success', 'user', user.id)
    return jsonify({'user': serialize_session_user(user)})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    session.pop(SESSION_CLIENT_KEY, None)
    logout_user()
    return jsonify({'message': 'Logged out'})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({'user': serialize_session_user(current_user)})


@auth_bp.route("/switch-client", methods=["POST"])
@login_required
def switch_client():
    """Super-admins pick the client whose data they act on; empty clears it."""
    if not current_user.is_superadmin:
        return jsonify({'error': 'Only super-admins can switch clients'}), 403

    form = SwitchClientForm()
    if not form.validate_on_submit():
        return jsonify({'error': 'Invalid client', 'fields': form.errors}), 400

    org_id = (form.org_id.data or '').strip()
    if not org_id:
        session.pop(SESSION_CLIENT_KEY, None)
        return jsonify({'user': serialize_session_user(current_user)})

    org = db.session.get(Organization, org_id)
    if org is None:
        return jsonify({'error': 'Client not found'}), 404

    session[SESSION_CLIENT_KEY] = org.id
    return jsonify({'user': serialize_session_user(current_user)})
