"""Tenant-aware JSON API blueprint."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user

from leaguehub.blueprints.common.tenant import current_scope, tenant_required
from leaguehub.extensions import csrf
from leaguehub.models import Group, Match, MatchEvent, Player, Team
from leaguehub.security import permission_required
from leaguehub.services.audit import log_admin_action
from leaguehub.services.league import (
    FixtureService,
    GroupService,
    MatchService,
    PlayerService,
    StandingsService,
    TeamService,
    parse_round,
)
from leaguehub.services.organization import OrganizationService
from leaguehub.standings.errors import ValidationError

api_bp = Blueprint('api', __name__)
csrf.exempt(api_bp)


def _iso(value):
    return value.isoformat() if value else None


def serialize_group(group: Group) -> dict:
    return {
        'id': group.id,
        'name': group.name,
        'created_at': _iso(group.created_at),
    }


def serialize_team(team: Team) -> dict:
    return {
        'id': team.id,
        'name': team.name,
        'group_id': team.group_id,
        'points': team.points,
        'wins': team.wins,
        'draws': team.draws,
        'losses': team.losses,
        'goals_for': team.goals_for,
        'goals_against': team.goals_against,
        'goal_difference': team.goal_difference,
    }


def serialize_player(player: Player) -> dict:
    return {
        'id': player.id,
        'team_id': player.team_id,
        'name': player.name,
        'number': player.number,
        'position': player.position,
        'age': player.age,
        'active': player.active,
    }


def serialize_match(match: Match) -> dict:
    return {
        'id': match.id,
        'group_id': match.group_id,
        'home_team_id': match.home_team_id,
        'away_team_id': match.away_team_id,
        'home_team': match.home_team.name if match.home_team else None,
        'away_team': match.away_team.name if match.away_team else None,
        'round': match.round,
        'scheduled_at': _iso(match.scheduled_at),
        'home_score': match.home_score,
        'away_score': match.away_score,
        'status': match.display_status().value,
    }


def serialize_event(event: MatchEvent) -> dict:
    return {
        'id': event.id,
        'match_id': event.match_id,
        'team_id': event.team_id,
        'player_id': event.player_id,
        'player': event.player.name if event.player else None,
        'event_type': event.event_type.value,
        'minute': event.minute,
        'details': event.details,
    }


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _audit(action: str, entity_type: str, entity_id: str | None, metadata: dict | None = None) -> None:
    log_admin_action(
        current_user,
        action,
        entity_type,
        entity_id,
        metadata=metadata,
        org_id=current_scope().org_id,
    )


# Groups ----------------------------------------------------------------------

@api_bp.route('/groups', methods=['GET'])
@permission_required('groups', 'view')
def list_groups():
    groups = GroupService.list_groups(current_scope())
    return jsonify({'items': [serialize_group(g) for g in groups]})


@api_bp.route('/groups', methods=['POST'])
@permission_required('groups', 'create')
def create_group():
    group = GroupService.create_group(current_scope(), _json_body().get('name'))
    _audit('group_created', 'group', group.id, {'name': group.name})
    return jsonify(serialize_group(group)), 201


@api_bp.route('/groups/<group_id>', methods=['GET'])
@permission_required('groups', 'view')
def get_group(group_id):
    group = GroupService.get_group(current_scope(), group_id)
    data = serialize_group(group)
    data['teams'] = [serialize_team(t) for t in TeamService.list_teams(current_scope(), group_id=group.id)]
    return jsonify(data)


@api_bp.route('/groups/<group_id>', methods=['PUT', 'PATCH'])
@permission_required('groups', 'edit')
def update_group(group_id):
    group = GroupService.rename_group(current_scope(), group_id, _json_body().get('name'))
    _audit('group_updated', 'group', group.id, {'name': group.name})
    return jsonify(serialize_group(group))


@api_bp.route('/groups/<group_id>', methods=['DELETE'])
@permission_required('groups', 'delete')
def delete_group(group_id):
    result = GroupService.delete_group(current_scope(), group_id)
    _audit('group_deleted', 'group', group_id, result)
    return jsonify(result)


@api_bp.route('/groups/<group_id>/standings', methods=['GET'])
@permission_required('teams', 'view')
def group_standings(group_id):
    return jsonify({'items': StandingsService.table(current_scope(), group_id=group_id)})


@api_bp.route('/standings', methods=['GET'])
@permission_required('teams', 'view')
def standings():
    group_id = request.args.get('group_id') or None
    return jsonify({'items': StandingsService.table(current_scope(), group_id=group_id)})


# Fixtures --------------------------------------------------------------------

@api_bp.route('/groups/<group_id>/round-robin', methods=['POST'])
@permission_required('matches', 'create')
def generate_round_robin(group_id):
    """Generate (or with ``dry_run`` only preview) a round-robin schedule."""
    payload = _json_body()
    options = dict(
        start_at=payload.get('start_at'),
        days_between_rounds=payload.get('days_between_rounds', 7),
        double_round=bool(payload.get('double_round', False)),
    )

    if payload.get('dry_run'):
        plan = FixtureService.plan_round_robin(current_scope(), group_id, **options)
        for item in plan:
            item['scheduled_at'] = item['scheduled_at'].isoformat()
        return jsonify({'items': plan})

    matches = FixtureService.generate_round_robin(current_scope(), group_id, **options)
    _audit('fixtures_generated', 'group', group_id, {'count': len(matches)})
    return jsonify({'items': [serialize_match(m) for m in matches]}), 201


@api_bp.route('/fixtures', methods=['POST'])
@permission_required('matches', 'create')
def create_fixtures():
    matches = FixtureService.create_fixtures(current_scope(), _json_body().get('fixtures'))
    _audit('fixtures_created', 'match', None, {'count': len(matches)})
    return jsonify({'items': [serialize_match(m) for m in matches]}), 201


# Teams -----------------------------------------------------------------------

@api_bp.route('/teams', methods=['GET'])
@permission_required('teams', 'view')
def list_teams():
    teams = TeamService.list_teams(current_scope(), group_id=request.args.get('group_id') or None)
    return jsonify({'items': [serialize_team(t) for t in teams]})


@api_bp.route('/teams', methods=['POST'])
@permission_required('teams', 'create')
def create_team():
    payload = _json_body()
    team = TeamService.create_team(current_scope(), payload.get('name'), payload.get('group_id'))
    _audit('team_created', 'team', team.id, {'name': team.name})
    return jsonify(serialize_team(team)), 201


@api_bp.route('/teams/<team_id>', methods=['GET'])
@permission_required('teams', 'view')
def get_team(team_id):
    team = TeamService.get_team(current_scope(), team_id)
    data = serialize_team(team)
    data['players'] = [serialize_player(p) for p in PlayerService.list_players(current_scope(), team_id=team.id)]
    return jsonify(data)


@api_bp.route('/teams/<team_id>', methods=['PUT', 'PATCH'])
@permission_required('teams', 'edit')
def update_team(team_id):
    payload = {k: v for k, v in _json_body().items() if k in ('name', 'group_id')}
    team = TeamService.update_team(current_scope(), team_id, payload)
    _audit('team_updated', 'team', team.id, payload)
    return jsonify(serialize_team(team))


@api_bp.route('/teams/<team_id>', methods=['DELETE'])
@permission_required('teams', 'delete')
def delete_team(team_id):
    result = TeamService.delete_team(current_scope(), team_id)
    _audit('team_deleted', 'team', team_id, result)
    return jsonify(result)


# Players ---------------------------------------------------------------------

@api_bp.route('/players', methods=['GET'])
@permission_required('players', 'view')
def list_players():
    players = PlayerService.list_players(current_scope(), team_id=request.args.get('team_id') or None)
    return jsonify({'items': [serialize_player(p) for p in players]})


@api_bp.route('/players', methods=['POST'])
@permission_required('players', 'create')
def create_player():
    player = PlayerService.create_player(current_scope(), _json_body())
    _audit('player_created', 'player', player.id, {'name': player.name})
    return jsonify(serialize_player(player)), 201


@api_bp.route('/players/<player_id>', methods=['GET'])
@permission_required('players', 'view')
def get_player(player_id):
    return jsonify(serialize_player(PlayerService.get_player(current_scope(), player_id)))


@api_bp.route('/players/<player_id>', methods=['PUT', 'PATCH'])
@permission_required('players', 'edit')
def update_player(player_id):
    player = PlayerService.update_player(current_scope(), player_id, _json_body())
    _audit('player_updated', 'player', player.id)
    return jsonify(serialize_player(player))


@api_bp.route('/players/<player_id>', methods=['DELETE'])
@permission_required('players', 'delete')
def delete_player(player_id):
    PlayerService.delete_player(current_scope(), player_id)
    _audit('player_deleted', 'player', player_id)
    return jsonify({'message': 'Player deleted'})


# Matches ---------------------------------------------------------------------

@api_bp.route('/matches', methods=['GET'])
@permission_required('matches', 'view')
def list_matches():
    round_value = request.args.get('round')
    matches = MatchService.list_matches(
        current_scope(),
        group_id=request.args.get('group_id') or None,
        team_id=request.args.get('team_id') or None,
        round_no=parse_round(round_value) if round_value else None,
    )
    return jsonify({'items': [serialize_match(m) for m in matches]})


@api_bp.route('/matches', methods=['POST'])
@permission_required('matches', 'create')
def create_match():
    match = MatchService.create_match(current_scope(), _json_body())
    _audit('match_created', 'match', match.id)
    return jsonify(serialize_match(match)), 201


@api_bp.route('/matches/<match_id>', methods=['GET'])
@permission_required('matches', 'view')
def get_match(match_id):
    match = MatchService.get_match(current_scope(), match_id)
    data = serialize_match(match)
    data['events'] = [serialize_event(e) for e in MatchService.list_events(current_scope(), match.id)]
    return jsonify(data)


@api_bp.route('/matches/<match_id>', methods=['PUT', 'PATCH'])
@permission_required('matches', 'edit')
def update_match(match_id):
    payload = _json_body()
    if 'home_score' in payload or 'away_score' in payload:
        raise ValidationError("Scores are set with the score or finalize endpoints")
    match = MatchService.update_fixture(current_scope(), match_id, payload)
    _audit('match_updated', 'match', match.id)
    return jsonify(serialize_match(match))


@api_bp.route('/matches/<match_id>', methods=['DELETE'])
@permission_required('matches', 'delete')
def delete_match(match_id):
    result = MatchService.delete_match(current_scope(), match_id)
    _audit('match_deleted', 'match', match_id, result)
    return jsonify(result)


@api_bp.route('/matches/<match_id>/score', methods=['PUT'])
@permission_required('matches', 'edit')
def set_score(match_id):
    payload = _json_body()
    match = MatchService.set_score(
        current_scope(), match_id, payload.get('home_score'), payload.get('away_score')
    )
    _audit('score_updated', 'match', match.id, {
        'home_score': match.home_score,
        'away_score': match.away_score,
    })
    return jsonify(serialize_match(match))


@api_bp.route('/matches/<match_id>/finalize', methods=['POST'])
@permission_required('matches', 'edit')
def finalize_match(match_id):
    payload = _json_body()
    match = MatchService.complete_match(
        current_scope(), match_id, payload.get('home_score'), payload.get('away_score')
    )
    _audit('match_completed', 'match', match.id, {
        'home_score': match.home_score,
        'away_score': match.away_score,
    })
    return jsonify(serialize_match(match))


@api_bp.route('/matches/<match_id>/events', methods=['GET'])
@permission_required('matches', 'view')
def list_events(match_id):
    events = MatchService.list_events(current_scope(), match_id)
    return jsonify({'items': [serialize_event(e) for e in events]})


@api_bp.route('/matches/<match_id>/events', methods=['POST'])
@permission_required('matches', 'edit')
def add_event(match_id):
    event = MatchService.add_event(current_scope(), match_id, _json_body())
    _audit('event_added', 'match_event', event.id, {'match_id': match_id, 'type': event.event_type.value})
    match = MatchService.get_match(current_scope(), match_id)
    return jsonify({'event': serialize_event(event), 'match': serialize_match(match)}), 201


@api_bp.route('/matches/<match_id>/events/<event_id>', methods=['DELETE'])
@permission_required('matches', 'edit')
def delete_event(match_id, event_id):
    MatchService.remove_event(current_scope(), match_id, event_id)
    _audit('event_removed', 'match_event', event_id, {'match_id': match_id})
    match = MatchService.get_match(current_scope(), match_id)
    return jsonify({'match': serialize_match(match)})


@api_bp.route('/dashboard', methods=['GET'])
@tenant_required
def dashboard():
    """Headline counts for the active client."""
    org_id = current_scope().require_tenant()
    return jsonify(OrganizationService.stats(org_id))
