"""Client (tenant) and user management service."""

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from leaguehub.extensions import db
from leaguehub.models import (
    AuditLog,
    Group,
    Match,
    MatchEvent,
    Organization,
    Player,
    Team,
    User,
    UserRole,
)
from leaguehub.security import default_permissions, normalize_permissions
from leaguehub.security.config import is_password_strong
from leaguehub.standings.errors import ConflictError, NotFoundError, ValidationError

RESERVED_SLUGS = {
    'admin', 'api', 'auth', 'public', 'static', 'assets',
    'login', 'logout', 'register', 'www', 'system', 'root',
}


def slugify(text: str) -> str:
    """Convert text to a URL-safe slug."""
    text = text.lower()
    text = re.sub(r'[^a-z0-9\s-]', '', text)
    text = re.sub(r'[\s-]+', '-', text)
    return text.strip('-')


def validate_slug(slug: str) -> None:
    if not slug:
        raise ValidationError("Slug cannot be empty")
    if len(slug) < 3:
        raise ValidationError("Slug must be at least 3 characters long", slug=slug)
    if len(slug) > 63:
        raise ValidationError("Slug must be 63 characters or less", slug=slug)
    if not re.match(r'^[a-z0-9]+(-[a-z0-9]+)*$', slug):
        raise ValidationError(
            "Slug can only contain lowercase letters, numbers, and single hyphens",
            slug=slug,
        )
    if slug in RESERVED_SLUGS:
        raise ValidationError(f"'{slug}' is a reserved slug and cannot be used", slug=slug)
    if Organization.query.filter_by(slug=slug).first():
        raise ConflictError("This slug is already taken", slug=slug)


class OrganizationService:
    """Clients are created and removed by super-admins only."""

    @staticmethod
    def list_organizations() -> list[Organization]:
        return list(db.session.execute(select(Organization).order_by(Organization.name)).scalars())

    @staticmethod
    def get_organization(org_id: str) -> Organization:
        org = db.session.get(Organization, org_id)
        if org is None:
            raise NotFoundError("Client not found", id=org_id)
        return org

    @staticmethod
    def create_organization(
        name: str,
        slug: str | None = None,
        contact_email: str | None = None,
    ) -> Organization:
        name = (name or '').strip()
        if not name:
            raise ValidationError("Client name is required")

        slug = (slug or slugify(name)).strip().lower()
        validate_slug(slug)

        org = Organization(name=name, slug=slug, contact_email=contact_email or None)
        try:
            db.session.add(org)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("This slug is already taken", slug=slug) from None

        current_app.logger.info(f"Client {org.slug} created ({org.id})")
        return org

    @staticmethod
    def set_active(org_id: str, active: bool) -> Organization:
        org = OrganizationService.get_organization(org_id)
        org.is_active = bool(active)
        db.session.commit()
        return org

    @staticmethod
    def delete_organization(org_id: str) -> None:
        """Delete a client and every row it owns, children first."""
        org = OrganizationService.get_organization(org_id)
        try:
            for model in (MatchEvent, Match, Player, Team, Group, AuditLog, User):
                db.session.execute(
                    delete(model).where(model.org_id == org.id),
                    execution_options={'synchronize_session': 'fetch'},
                )
            db.session.expire(org)
            db.session.delete(org)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            current_app.logger.error(f"Failed to delete client {org_id}: {e}")
            raise

        current_app.logger.info(f"Client {org_id} deleted")

    @staticmethod
    def stats(org_id: str) -> dict:
        """Row counts for the admin dashboard."""
        counts = {}
        for label, model in (
            ('groups', Group),
            ('teams', Team),
            ('players', Player),
            ('matches', Match),
            ('events', MatchEvent),
            ('users', User),
        ):
            counts[label] = db.session.execute(
                select(func.count(model.id)).where(model.org_id == org_id)
            ).scalar_one()
        counts['completed_matches'] = db.session.execute(
            select(func.count(Match.id))
            .where(Match.org_id == org_id)
            .where(Match.home_score.is_not(None))
            .where(Match.away_score.is_not(None))
        ).scalar_one()
        return counts


def _parse_role(value) -> UserRole:
    if isinstance(value, UserRole):
        return value
    try:
        return UserRole(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(r.value for r in UserRole)
        raise ValidationError(f"Invalid role. Allowed: {allowed}", role=value) from None


class UserService:
    """Accounts: super-admins are global, everyone else belongs to one client."""

    @staticmethod
    def create_user(
        email: str,
        password: str,
        role=UserRole.USER,
        org_id: str | None = None,
        name: str | None = None,
        permissions: dict | None = None,
    ) -> User:
        email = (email or '').strip().lower()
        if not email or '@' not in email:
            raise ValidationError("A valid email is required")

        ok, message = is_password_strong(password or '')
        if not ok:
            raise ValidationError(message)

        role = _parse_role(role)
        if role is UserRole.SUPERADMIN:
            org_id = None
        else:
            if not org_id:
                raise ValidationError("Client is required for this role")
            OrganizationService.get_organization(org_id)

        if User.query.filter(func.lower(User.email) == email).first():
            raise ConflictError("An account with this email already exists", email=email)

        user = User(
            email=email,
            name=(name or '').strip() or None,
            role=role,
            org_id=org_id,
            permissions=normalize_permissions(permissions) if permissions else default_permissions(),
        )
        user.set_password(password)
        try:
            db.session.add(user)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("An account with this email already exists", email=email) from None

        current_app.logger.info(f"User {email} created with role {role.value}")
        return user

    @staticmethod
    def list_users(scope) -> list[User]:
        query = select(User).order_by(User.email)
        if not scope.is_global:
            query = query.where(User.org_id == scope.org_id)
        return list(db.session.execute(query).scalars())

    @staticmethod
    def get_user(scope, user_id: str) -> User:
        user = db.session.get(User, user_id)
        if user is None or (not scope.is_global and user.org_id != scope.org_id):
            raise NotFoundError("User not found", id=user_id)
        return user

    @staticmethod
    def update_permissions(scope, user_id: str, permissions: dict) -> User:
        if not isinstance(permissions, dict):
            raise ValidationError("Permissions must be an object")
        user = UserService.get_user(scope, user_id)
        user.permissions = normalize_permissions(permissions)
        db.session.commit()
        return user

    @staticmethod
    def set_active(scope, user_id: str, active: bool) -> User:
        user = UserService.get_user(scope, user_id)
        user.active = bool(active)
        db.session.commit()
        return user

    @staticmethod
    def delete_user(scope, user_id: str, actor: User | None = None) -> None:
        user = UserService.get_user(scope, user_id)
        if actor is not None and actor.id == user.id:
            raise ConflictError("You cannot delete your own account")
        db.session.delete(user)
        db.session.commit()


__all__ = [
    'slugify',
    'validate_slug',
    'OrganizationService',
    'UserService',
]
