"""User management CLI commands."""

import click
from flask.cli import with_appcontext

from leaguehub.extensions import db
from leaguehub.models import Organization, User, UserRole
from leaguehub.security.config import is_password_strong
from leaguehub.services.organization import UserService
from leaguehub.standings.errors import LeagueError


def _get_org_by_slug(slug: str) -> Organization | None:
    return db.session.query(Organization).filter_by(slug=slug).first()


@click.group('user')
def user_commands():
    """User management commands."""
    pass


@user_commands.command('create')
@click.option('--org', 'org_slug', help='Client slug (not used for super-admins)')
@click.option('--email', required=True, help='User email')
@click.option('--password', required=True, help='User password')
@click.option('--name', help='Display name')
@click.option('--role', type=click.Choice([r.value for r in UserRole]), default=UserRole.ADMIN.value, show_default=True)
@with_appcontext
def create_user(org_slug, email, password, name, role):
    """Create a user; super-admins belong to no client."""
    org = None
    if role != UserRole.SUPERADMIN.value:
        if not org_slug:
            click.echo(click.style('Error: --org is required for this role', fg='red'))
            return
        org = _get_org_by_slug(org_slug)
        if not org:
            click.echo(click.style(f'Error: Client with slug "{org_slug}" not found', fg='red'))
            return

    try:
        user = UserService.create_user(
            email,
            password,
            role=role,
            org_id=org.id if org else None,
            name=name,
        )
    except LeagueError as e:
        click.echo(click.style(f'Error: {e.message}', fg='red'))
        return

    click.echo(click.style('User created successfully!', fg='green'))
    if org:
        click.echo(f'  Client: {org.slug} ({org.name})')
    click.echo(f'  Email: {user.email}')
    click.echo(f'  Role: {role}')


@user_commands.command('set-password')
@click.option('--email', required=True, help='User email')
@click.option('--password', required=True, help='New password')
@with_appcontext
def set_password(email, password):
    """Set or reset a user's password."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo(click.style(f'Error: No user {email} found', fg='red'))
        return

    ok, message = is_password_strong(password)
    if not ok:
        click.echo(click.style(f'Error: {message}', fg='red'))
        return

    user.set_password(password)
    db.session.commit()
    click.echo(click.style('Password updated.', fg='green'))
