"""Tenant scoping: every read and write stays inside the caller's client."""

import pytest
from flask import g

from leaguehub.blueprints.common.tenant import TenantScope, scope_for_user
from leaguehub.extensions import db
from leaguehub.models import Team, UserRole
from leaguehub.services.league import MatchService, TeamService
from leaguehub.standings.errors import NotFoundError, ValidationError

from conftest import KICKOFF, League, create_user, login


@pytest.fixture
def two_leagues(ctx):
    return League('north-league'), League('south-league')


def test_scope_requires_exactly_one_mode():
    with pytest.raises(ValueError):
        TenantScope()
    with pytest.raises(ValueError):
        TenantScope(org_id='abc', is_global=True)

    assert TenantScope.global_admin().is_global
    assert TenantScope.for_tenant('abc').org_id == 'abc'


def test_tenant_scope_only_sees_its_own_rows(two_leagues):
    north, south = two_leagues
    south_alpha = south.teams['Alpha']

    assert {t.org_id for t in TeamService.list_teams(north.scope)} == {north.org.id}
    assert north.scope.get(Team, south_alpha.id) is None
    assert not north.scope.owns(south_alpha)
    assert south.scope.owns(south_alpha)

    with pytest.raises(NotFoundError):
        TeamService.get_team(north.scope, south_alpha.id)


def test_global_scope_reads_everything_but_cannot_create(two_leagues):
    scope = TenantScope.global_admin()

    assert len(TeamService.list_teams(scope)) == 6
    assert scope.owns(two_leagues[1].teams['Beta'])

    with pytest.raises(ValidationError):
        TeamService.create_team(scope, 'Nomads')


def test_fixture_with_foreign_teams_is_not_found(two_leagues):
    north, south = two_leagues

    with pytest.raises(NotFoundError):
        MatchService.create_match(north.scope, {
            'group_id': north.group.id,
            'home_team_id': north.teams['Alpha'].id,
            'away_team_id': south.teams['Beta'].id,
            'scheduled_at': KICKOFF.isoformat(),
        })


def test_scope_for_user(two_leagues):
    north, _ = two_leagues
    root = create_user('root@leaguehub.test', role=UserRole.SUPERADMIN)
    admin = create_user('admin@north.test', org=north.org)

    assert scope_for_user(root).is_global
    assert scope_for_user(root, north.org.id) == TenantScope.for_tenant(north.org.id)
    assert scope_for_user(root, 'missing').is_global
    assert scope_for_user(admin) == north.scope
    # A tenant user cannot pick another client.
    assert scope_for_user(admin, 'anything') == north.scope

    with pytest.raises(PermissionError):
        scope_for_user(None)


def test_flush_guard_blocks_cross_tenant_insert(app, two_leagues):
    north, south = two_leagues

    with app.test_request_context():
        g.tenant_scope = north.scope
        db.session.add(Team(org_id=south.org.id, name='Intruder'))
        with pytest.raises(PermissionError):
            db.session.flush()
        db.session.rollback()

    assert db.session.query(Team).filter_by(name='Intruder').count() == 0


def test_flush_guard_fills_in_missing_org_id(app, two_leagues):
    north, _ = two_leagues

    with app.test_request_context():
        g.tenant_scope = north.scope
        team = Team(name='Newcomers')
        db.session.add(team)
        db.session.commit()
        assert team.org_id == north.org.id


@pytest.fixture
def http_leagues(app):
    with app.app_context():
        north, south = League('north-league'), League('south-league')
        create_user('admin@north.test', org=north.org)
        create_user('viewer@north.test', role=UserRole.USER, org=north.org)
        create_user(
            'editor@north.test',
            role=UserRole.USER,
            org=north.org,
            permissions={'groups': {'create': True}},
        )
        ids = {
            'north_group': north.group.id,
            'north_alpha': north.teams['Alpha'].id,
            'south_alpha': south.teams['Alpha'].id,
            'south_group': south.group.id,
        }
        match = MatchService.create_match(south.scope, {
            'group_id': south.group.id,
            'home_team_id': south.teams['Alpha'].id,
            'away_team_id': south.teams['Beta'].id,
            'scheduled_at': KICKOFF.isoformat(),
        })
        ids['south_match'] = match.id
    return ids


def test_api_hides_other_tenants(client, http_leagues):
    assert login(client, 'admin@north.test').status_code == 200

    response = client.get('/api/v1/teams')
    assert response.status_code == 200
    team_ids = {item['id'] for item in response.get_json()['items']}
    assert len(team_ids) == 3
    assert http_leagues['north_alpha'] in team_ids
    assert http_leagues['south_alpha'] not in team_ids

    response = client.get(f"/api/v1/teams/{http_leagues['south_alpha']}")
    assert response.status_code == 404
    assert response.get_json()['kind'] == 'NotFoundError'

    response = client.put(
        f"/api/v1/matches/{http_leagues['south_match']}/score",
        json={'home_score': 1, 'away_score': 0},
    )
    assert response.status_code == 404

    response = client.delete(f"/api/v1/groups/{http_leagues['south_group']}")
    assert response.status_code == 404


def test_default_user_permissions_are_read_only(client, http_leagues):
    login(client, 'viewer@north.test')

    assert client.get('/api/v1/groups').status_code == 200
    assert client.post('/api/v1/groups', json={'name': 'B'}).status_code == 403
    assert client.delete(f"/api/v1/teams/{http_leagues['north_alpha']}").status_code == 403
    assert client.get('/admin/users').status_code == 403


def test_granted_permission_allows_the_action(client, http_leagues):
    login(client, 'editor@north.test')

    response = client.post('/api/v1/groups', json={'name': 'b'})
    assert response.status_code == 201
    assert response.get_json()['name'] == 'B'

    assert client.post('/api/v1/teams', json={'name': 'Delta'}).status_code == 403


def test_anonymous_requests_are_rejected(client, http_leagues):
    response = client.get('/api/v1/teams')

    assert response.status_code == 401
    assert response.get_json()['error'] == 'Authentication required'
