"""Standings maintenance CLI commands."""

import click
from flask.cli import with_appcontext

from leaguehub.extensions import db
from leaguehub.models import Organization
from leaguehub.services.league import get_orchestrator
from leaguehub.standings.errors import ConsistencyError


def _target_orgs(org_slug):
    query = db.session.query(Organization).order_by(Organization.slug)
    if org_slug:
        query = query.filter_by(slug=org_slug)
    return query.all()


@click.group('standings')
def standings_commands():
    """Standings maintenance commands."""
    pass


@standings_commands.command('recalc')
@click.option('--org', 'org_slug', help='Client slug (all clients when omitted)')
@with_appcontext
def recalc(org_slug):
    """Recompute every team's standings from its completed matches."""
    orgs = _target_orgs(org_slug)
    if not orgs:
        click.echo(click.style('Error: No matching clients found', fg='red'))
        return

    orchestrator = get_orchestrator()
    for org in orgs:
        results = orchestrator.recalculate_tenant(org.id)
        click.echo(f'{org.slug}: {len(results)} team(s) recalculated')
    click.echo(click.style('Standings recalculated.', fg='green'))


@standings_commands.command('audit')
@click.option('--org', 'org_slug', help='Client slug (all clients when omitted)')
@with_appcontext
def audit(org_slug):
    """Compare stored standings with a fresh computation; exits 1 on drift."""
    orgs = _target_orgs(org_slug)
    if not orgs:
        click.echo(click.style('Error: No matching clients found', fg='red'))
        return

    orchestrator = get_orchestrator()
    drifted = False
    for org in orgs:
        try:
            checked = orchestrator.audit_tenant(org.id)
        except ConsistencyError as e:
            drifted = True
            click.echo(click.style(f'{org.slug}: {e.message}', fg='red'))
            for team_id, diff in e.context.get('mismatches', {}).items():
                click.echo(f'  {team_id}: stored {diff["stored"]} expected {diff["expected"]}')
            continue
        click.echo(f'{org.slug}: {checked} team(s) consistent')

    if drifted:
        raise click.exceptions.Exit(1)
    click.echo(click.style('All standings consistent.', fg='green'))
