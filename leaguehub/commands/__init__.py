"""CLI commands for LeagueHub."""

from .backup import backup_commands
from .org import org_commands
from .standings import standings_commands
from .user import user_commands


def register_commands(app):
    """Register all CLI command groups with the Flask app."""
    app.cli.add_command(org_commands)
    app.cli.add_command(user_commands)
    app.cli.add_command(standings_commands)
    app.cli.add_command(backup_commands)
