from datetime import datetime, timezone

import pytest

from leaguehub import create_app
from leaguehub.blueprints.common.tenant import TenantScope
from leaguehub.config import Config
from leaguehub.extensions import db
from leaguehub.models import Organization, UserRole
from leaguehub.services.league import GroupService, PlayerService, TeamService
from leaguehub.services.organization import UserService

PASSWORD = 'Secret123'
KICKOFF = datetime(2025, 3, 1, 15, 0, tzinfo=timezone.utc)


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    SCORE_SOURCE = 'events'


@pytest.fixture
def app(tmp_path):
    """Create and configure a test application instance."""
    config = type('LeagueTestConfig', (TestConfig,), {
        'BACKUP_DIR': str(tmp_path / 'backups'),
        'BACKUP_SCHEDULE_FILE': str(tmp_path / 'backup-schedule.json'),
    })
    app = create_app(config)

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """An application context for tests that call services directly."""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    """Create a test client for the app."""
    return app.test_client()


def create_org(name='North League', slug='north-league') -> Organization:
    org = Organization(name=name, slug=slug)
    db.session.add(org)
    db.session.commit()
    return org


def create_user(email, role=UserRole.ADMIN, org=None, permissions=None):
    return UserService.create_user(
        email,
        PASSWORD,
        role=role,
        org_id=org.id if org is not None else None,
        permissions=permissions,
    )


def login(client, email, password=PASSWORD):
    return client.post('/auth/login', json={'email': email, 'password': password})


class League:
    """A client with one group, three teams and a couple of players each."""

    def __init__(self, slug='north-league'):
        self.org = create_org(name=slug.replace('-', ' ').title(), slug=slug)
        self.scope = TenantScope.for_tenant(self.org.id)
        self.group = GroupService.create_group(self.scope, 'a')
        self.teams = {}
        self.players = {}
        for name in ('Alpha', 'Beta', 'Gamma'):
            team = TeamService.create_team(self.scope, name, self.group.id)
            self.teams[name] = team
            for number in (9, 10):
                player = PlayerService.create_player(self.scope, {
                    'team_id': team.id,
                    'name': f'{name} {number}',
                    'number': number,
                })
                self.players[f'{name} {number}'] = player


@pytest.fixture
def league(ctx):
    return League()
