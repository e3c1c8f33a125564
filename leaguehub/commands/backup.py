"""Backup CLI commands."""

import click
from flask.cli import with_appcontext

from leaguehub.extensions import db
from leaguehub.models import Organization
from leaguehub.services.backup import BackupService
from leaguehub.standings.errors import LeagueError


@click.group('backup')
def backup_commands():
    """Backup and restore commands."""
    pass


def _org_id(org_slug):
    if not org_slug:
        return None
    org = db.session.query(Organization).filter_by(slug=org_slug).first()
    if not org:
        raise LeagueError(f'Client with slug "{org_slug}" not found')
    return org.id


@backup_commands.command('create')
@click.option('--org', 'org_slug', help='Client slug (all clients when omitted)')
@with_appcontext
def create_backup(org_slug):
    """Write a JSON backup to BACKUP_DIR."""
    try:
        filename = BackupService.create_backup(org_id=_org_id(org_slug), created_by='cli')
    except LeagueError as e:
        click.echo(click.style(f'Error: {e.message}', fg='red'))
        return
    click.echo(click.style(f'Backup created: {filename}', fg='green'))


@backup_commands.command('list')
@with_appcontext
def list_backups():
    """List stored backups, newest first."""
    backups = BackupService.list_backups()
    if not backups:
        click.echo('No backups found.')
        return
    for item in backups:
        click.echo(f'{item["filename"]}  {item["type"]}  {item["total_records"]} record(s)')


@backup_commands.command('restore')
@click.argument('filename')
@click.option('--org', 'org_slug', help='Restore only this client')
@click.option('--force', is_flag=True, help='Skip confirmation prompt')
@with_appcontext
def restore_backup(filename, org_slug, force):
    """Replace league data with a stored backup and recalculate standings."""
    if not force and not click.confirm('This replaces existing league data. Continue?'):
        click.echo('Aborted.')
        return

    try:
        restored = BackupService.restore(BackupService.load_backup(filename), org_id=_org_id(org_slug))
    except LeagueError as e:
        click.echo(click.style(f'Error: {e.message}', fg='red'))
        return

    total = sum(restored.values())
    click.echo(click.style(f'Restored {total} record(s) from {filename}', fg='green'))
