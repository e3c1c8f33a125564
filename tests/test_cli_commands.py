"""CLI commands, driven through Flask's test runner."""

import pytest

from leaguehub.extensions import db
from leaguehub.models import Organization, Team, User, UserRole
from leaguehub.services.league import MatchService

from conftest import KICKOFF, PASSWORD, League


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def league_ids(app):
    with app.app_context():
        league = League()
        MatchService.create_match(league.scope, {
            'group_id': league.group.id,
            'home_team_id': league.teams['Alpha'].id,
            'away_team_id': league.teams['Beta'].id,
            'scheduled_at': KICKOFF.isoformat(),
            'home_score': 2,
            'away_score': 1,
        })
        return {'org': league.org.id, 'alpha': league.teams['Alpha'].id}


def test_org_create_and_list(app, runner):
    result = runner.invoke(args=['org', 'create', '--name', 'Summer Cup', '--contact-email', 'cup@example.com'])

    assert result.exit_code == 0
    assert 'Client created successfully!' in result.output
    assert 'Slug: summer-cup' in result.output

    result = runner.invoke(args=['org', 'list'])
    assert 'Summer Cup' in result.output
    assert 'Teams: 0' in result.output

    with app.app_context():
        assert db.session.query(Organization).filter_by(slug='summer-cup').count() == 1


@pytest.mark.parametrize('slug, message', [
    ('admin', 'reserved'),
    ('ab', 'at least 3'),
    ('Bad_Slug!', 'Slug'),
])
def test_org_create_rejects_bad_slugs(runner, slug, message):
    result = runner.invoke(args=['org', 'create', '--name', 'Anything', '--slug', slug])

    assert 'Error:' in result.output
    assert message in result.output


def test_org_create_duplicate_slug(runner):
    runner.invoke(args=['org', 'create', '--name', 'Summer Cup'])

    result = runner.invoke(args=['org', 'create', '--name', 'Summer Cup'])

    assert 'already taken' in result.output


def test_org_delete(app, runner, league_ids):
    result = runner.invoke(args=['org', 'delete', 'north-league', '--force'])

    assert 'deleted' in result.output
    with app.app_context():
        assert db.session.get(Organization, league_ids['org']) is None
        assert db.session.query(Team).count() == 0


def test_user_create(app, runner, league_ids):
    result = runner.invoke(args=[
        'user', 'create', '--org', 'north-league',
        '--email', 'Coach@North.test', '--password', PASSWORD,
    ])

    assert 'User created successfully!' in result.output
    with app.app_context():
        user = db.session.query(User).filter_by(email='coach@north.test').one()
        assert user.role is UserRole.ADMIN
        assert user.org_id == league_ids['org']


def test_user_create_superadmin_needs_no_client(app, runner):
    result = runner.invoke(args=[
        'user', 'create', '--email', 'root@leaguehub.test',
        '--password', PASSWORD, '--role', 'superadmin',
    ])

    assert 'User created successfully!' in result.output
    with app.app_context():
        assert db.session.query(User).filter_by(email='root@leaguehub.test').one().org_id is None


def test_user_create_errors(runner, league_ids):
    result = runner.invoke(args=['user', 'create', '--email', 'a@north.test', '--password', PASSWORD])
    assert '--org is required' in result.output

    result = runner.invoke(args=[
        'user', 'create', '--org', 'nowhere', '--email', 'a@north.test', '--password', PASSWORD,
    ])
    assert 'not found' in result.output

    result = runner.invoke(args=[
        'user', 'create', '--org', 'north-league', '--email', 'a@north.test', '--password', 'short',
    ])
    assert 'Error:' in result.output


def test_set_password(app, runner, league_ids):
    runner.invoke(args=[
        'user', 'create', '--org', 'north-league', '--email', 'coach@north.test', '--password', PASSWORD,
    ])

    result = runner.invoke(args=['user', 'set-password', '--email', 'coach@north.test', '--password', 'weak'])
    assert 'Error:' in result.output

    result = runner.invoke(args=[
        'user', 'set-password', '--email', 'coach@north.test', '--password', 'Another456',
    ])
    assert 'Password updated.' in result.output
    with app.app_context():
        user = db.session.query(User).filter_by(email='coach@north.test').one()
        assert user.check_password('Another456')


def test_standings_audit_and_recalc(app, runner, league_ids):
    result = runner.invoke(args=['standings', 'audit'])
    assert result.exit_code == 0
    assert 'All standings consistent.' in result.output

    with app.app_context():
        db.session.get(Team, league_ids['alpha']).points = 42
        db.session.commit()

    result = runner.invoke(args=['standings', 'audit', '--org', 'north-league'])
    assert result.exit_code == 1
    assert league_ids['alpha'] in result.output

    result = runner.invoke(args=['standings', 'recalc'])
    assert result.exit_code == 0
    assert 'north-league: 3 team(s) recalculated' in result.output

    with app.app_context():
        assert db.session.get(Team, league_ids['alpha']).points == 3
    assert runner.invoke(args=['standings', 'audit']).exit_code == 0


def test_standings_unknown_client(runner):
    result = runner.invoke(args=['standings', 'recalc', '--org', 'nowhere'])

    assert 'No matching clients found' in result.output


def test_backup_create_list_and_restore(app, runner, league_ids):
    result = runner.invoke(args=['backup', 'create', '--org', 'north-league'])
    assert 'Backup created: backup-manual-' in result.output
    filename = result.output.split('Backup created: ')[1].strip()

    result = runner.invoke(args=['backup', 'list'])
    assert filename in result.output

    with app.app_context():
        db.session.query(Team).filter_by(org_id=league_ids['org']).delete()
        db.session.commit()

    result = runner.invoke(args=['backup', 'restore', filename, '--org', 'north-league', '--force'])

    # group + 3 teams + 6 players + 1 match
    assert 'Restored 11 record(s)' in result.output
    with app.app_context():
        assert db.session.get(Team, league_ids['alpha']).points == 3


def test_backup_restore_unknown_file(runner):
    result = runner.invoke(args=['backup', 'restore', 'backup-missing.json', '--force'])

    assert 'Error: Backup not found' in result.output
