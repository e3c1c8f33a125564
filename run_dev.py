#!/usr/bin/env python3
"""Development server runner for LeagueHub."""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from leaguehub import create_app
from leaguehub.extensions import db


def setup_environment():
    """Load .env and set Flask development defaults."""
    env_file = Path(__file__).parent / '.env'
    if env_file.exists():
        load_dotenv(env_file)
        print(f"✓ Loaded environment from {env_file}")
    else:
        print(f"⚠️ No .env file found at {env_file}")

    os.environ.setdefault('FLASK_APP', 'leaguehub')
    os.environ.setdefault('FLASK_DEBUG', '1')
    # Local HTTP needs non-secure session cookies.
    os.environ.setdefault('SESSION_COOKIE_SECURE', 'false')


def initialize_database(app):
    """Create missing tables; production databases go through flask db upgrade."""
    with app.app_context():
        db.create_all()
        print(f"✓ Database ready: {app.config['SQLALCHEMY_DATABASE_URI']}")


def main():
    print("LeagueHub - Development Setup")
    print("=" * 60)

    setup_environment()
    app = create_app()
    initialize_database(app)

    print("\nAPI available at http://localhost:5000/api/v1")
    print("\nTo get started, run in another terminal:")
    print("   flask org create --name 'Demo League' --slug demo-league")
    print("   flask user create --org demo-league --email admin@demo.test --password Admin1234")
    print("\nScheduled backups also need a worker:")
    print(f"   rq worker --with-scheduler {app.config['BACKUP_QUEUE_NAME']}")
    print("=" * 60)

    try:
        app.run(host='0.0.0.0', port=5000, debug=True, use_reloader=True)
    except KeyboardInterrupt:
        print("\n\n🛑 Development server stopped by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
