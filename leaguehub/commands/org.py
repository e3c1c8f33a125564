"""Client (organization) management CLI commands."""

import click
from flask.cli import with_appcontext

from leaguehub.extensions import db
from leaguehub.models import Organization, Team, User
from leaguehub.services.organization import OrganizationService
from leaguehub.standings.errors import LeagueError


@click.group('org')
def org_commands():
    """Client management commands."""
    pass


@org_commands.command('create')
@click.option('--name', required=True, help='Client name')
@click.option('--slug', help='Client slug (derived from the name when omitted)')
@click.option('--contact-email', help='Contact email')
@with_appcontext
def create_org(name, slug, contact_email):
    """Create a new client.

    Example:
        flask org create --name "Summer Cup" --slug summer-cup
    """
    try:
        org = OrganizationService.create_organization(name, slug=slug, contact_email=contact_email)
    except LeagueError as e:
        click.echo(click.style(f'Error: {e.message}', fg='red'))
        return

    click.echo(click.style('Client created successfully!', fg='green'))
    click.echo(f'  Name: {org.name}')
    click.echo(f'  Slug: {org.slug}')
    click.echo(f'  ID: {org.id}')


@org_commands.command('list')
@with_appcontext
def list_orgs():
    """List all clients."""
    orgs = OrganizationService.list_organizations()

    if not orgs:
        click.echo('No clients found.')
        return

    click.echo(f'Found {len(orgs)} client(s):\n')

    for org in orgs:
        user_count = db.session.query(User).filter_by(org_id=org.id).count()
        team_count = db.session.query(Team).filter_by(org_id=org.id).count()

        click.echo(f'- {org.name}')
        click.echo(f'  Slug: {org.slug}')
        click.echo(f'  ID: {org.id}')
        click.echo(f'  Users: {user_count}')
        click.echo(f'  Teams: {team_count}')
        click.echo(f'  Active: {"yes" if org.is_active else "no"}')
        click.echo()


@org_commands.command('delete')
@click.argument('slug')
@click.option('--force', is_flag=True, help='Skip confirmation prompt')
@with_appcontext
def delete_org(slug, force):
    """Delete a client and all of its data."""
    org = db.session.query(Organization).filter_by(slug=slug).first()
    if not org:
        click.echo(click.style(f'Error: Client with slug "{slug}" not found', fg='red'))
        return

    if not force and not click.confirm(f'Delete client "{org.name}" and all of its data?'):
        click.echo('Aborted.')
        return

    OrganizationService.delete_organization(org.id)
    click.echo(click.style(f'Client "{slug}" deleted.', fg='green'))
