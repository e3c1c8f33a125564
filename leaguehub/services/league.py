"""League data management: groups, teams, players, matches, events and fixtures.

Every write that can move a standings number is routed through the
:class:`~leaguehub.standings.StandingsOrchestrator`, so the mutation and the
recomputed aggregates commit together.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from flask import current_app
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError

from leaguehub.blueprints.common.tenant import TenantScope
from leaguehub.extensions import db
from leaguehub.models import Group, Match, MatchEvent, Player, Team
from leaguehub.standings import EventScoreProjection, StandingsOrchestrator, rank_standings
from leaguehub.standings.errors import ConflictError, NotFoundError, ValidationError
from leaguehub.standings.orchestrator import SCORE_SOURCE_EVENTS, validate_score

FIXTURE_FIELDS = ('group_id', 'home_team_id', 'away_team_id', 'round', 'scheduled_at')


def get_orchestrator() -> StandingsOrchestrator:
    """Orchestrator bound to the request session and the app's scoring policy."""
    return StandingsOrchestrator(
        db.session(),
        score_source=current_app.config.get('SCORE_SOURCE', SCORE_SOURCE_EVENTS),
        logger=current_app.logger,
    )


def get_projection() -> EventScoreProjection:
    return EventScoreProjection(get_orchestrator())


def parse_datetime(value, label: str = 'scheduled_at') -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(f"{label} must be an ISO 8601 date-time", value=value) from None
    else:
        raise ValidationError(f"{label} is required")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_round(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("Round must be a whole number", value=value)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Round must be a whole number", value=value) from None
    if number < 1:
        raise ValidationError("Round must be at least 1", value=value)
    return number


def _optional_int(value, label: str, minimum: int = 0) -> int | None:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a whole number", value=value)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a whole number", value=value) from None
    if number < minimum:
        raise ValidationError(f"{label} must be at least {minimum}", value=value)
    return number


def _required_name(value, label: str) -> str:
    name = (value or '').strip() if isinstance(value, str) else ''
    if not name:
        raise ValidationError(f"{label} is required")
    return name


def _save(instance, conflict_message: str, **context):
    """Insert a plain row; unique constraint failures become conflicts."""
    try:
        db.session.add(instance)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(conflict_message, **context) from None
    return instance


class GroupService:
    """Groups are stored upper-cased and unique per client."""

    @staticmethod
    def list_groups(scope: TenantScope) -> list[Group]:
        return scope.query(Group).order_by(Group.name).all()

    @staticmethod
    def get_group(scope: TenantScope, group_id: str) -> Group:
        return scope.get_or_raise(Group, group_id, 'Group')

    @staticmethod
    def _check_name(org_id: str, name: str, exclude_id: str | None = None) -> str:
        name = _required_name(name, 'Group name').upper()
        query = Group.query.filter_by(org_id=org_id, name=name)
        if exclude_id:
            query = query.filter(Group.id != exclude_id)
        if query.first():
            raise ConflictError(f"Group {name} already exists", name=name)
        return name

    @staticmethod
    def create_group(scope: TenantScope, name: str) -> Group:
        org_id = scope.require_tenant()
        name = GroupService._check_name(org_id, name)
        return _save(Group(org_id=org_id, name=name), f"Group {name} already exists", name=name)

    @staticmethod
    def rename_group(scope: TenantScope, group_id: str, name: str) -> Group:
        group = GroupService.get_group(scope, group_id)
        group.name = GroupService._check_name(group.org_id, name, exclude_id=group.id)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Group name already exists") from None
        return group

    @staticmethod
    def delete_group(scope: TenantScope, group_id: str) -> dict:
        """Delete the group's matches, detach its teams, then remove the group."""
        group = GroupService.get_group(scope, group_id)
        orchestrator = get_orchestrator()

        with orchestrator.transaction() as session:
            matches = list(session.execute(select(Match).where(Match.group_id == group.id)).scalars())
            teams = list(session.execute(select(Team).where(Team.group_id == group.id)).scalars())
            orchestrator.delete_matches(matches)
            for team in teams:
                team.group_id = None
            session.flush()
            session.expire(group)
            session.delete(group)

        current_app.logger.info(
            f"Group {group_id} deleted: {len(matches)} match(es) removed, {len(teams)} team(s) detached"
        )
        return {'matches_deleted': len(matches), 'teams_detached': len(teams)}


class TeamService:
    """Teams; aggregate columns are never accepted from callers."""

    @staticmethod
    def list_teams(scope: TenantScope, group_id: str | None = None) -> list[Team]:
        query = scope.query(Team)
        if group_id:
            query = query.filter_by(group_id=group_id)
        return query.order_by(Team.name).all()

    @staticmethod
    def get_team(scope: TenantScope, team_id: str) -> Team:
        return scope.get_or_raise(Team, team_id, 'Team')

    @staticmethod
    def _resolve_group(scope: TenantScope, org_id: str, group_id: str | None) -> str | None:
        if not group_id:
            return None
        group = scope.get_or_raise(Group, group_id, 'Group')
        if group.org_id != org_id:
            raise NotFoundError("Group not found", id=group_id)
        return group.id

    @staticmethod
    def _check_name(org_id: str, name: str, exclude_id: str | None = None) -> str:
        name = _required_name(name, 'Team name')
        query = Team.query.filter_by(org_id=org_id, name=name)
        if exclude_id:
            query = query.filter(Team.id != exclude_id)
        if query.first():
            raise ConflictError(f"Team {name} already exists", name=name)
        return name

    @staticmethod
    def create_team(scope: TenantScope, name: str, group_id: str | None = None) -> Team:
        org_id = scope.require_tenant()
        name = TeamService._check_name(org_id, name)
        team = Team(
            org_id=org_id,
            name=name,
            group_id=TeamService._resolve_group(scope, org_id, group_id),
        )
        return _save(team, f"Team {name} already exists", name=name)

    @staticmethod
    def update_team(scope: TenantScope, team_id: str, data: dict[str, Any]) -> Team:
        team = TeamService.get_team(scope, team_id)
        name = team.name
        group_id = team.group_id

        if 'name' in data:
            name = TeamService._check_name(team.org_id, data['name'], exclude_id=team.id)

        if 'group_id' in data:
            group_id = TeamService._resolve_group(scope, team.org_id, data['group_id'])
            if group_id != team.group_id:
                has_matches = db.session.execute(
                    select(Match.id)
                    .where(or_(Match.home_team_id == team.id, Match.away_team_id == team.id))
                    .limit(1)
                ).first()
                if has_matches:
                    raise ConflictError(
                        "Team has matches in its current group; delete them before moving the team",
                        team_id=team.id,
                    )

        team.name = name
        team.group_id = group_id

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Team name already exists") from None
        return team

    @staticmethod
    def delete_team(scope: TenantScope, team_id: str) -> dict:
        team = TeamService.get_team(scope, team_id)
        recomputed = get_orchestrator().delete_team(team)
        return {'recomputed_teams': sorted(recomputed)}


class PlayerService:
    """Players; shirt numbers are unique inside a team."""

    @staticmethod
    def list_players(scope: TenantScope, team_id: str | None = None) -> list[Player]:
        query = scope.query(Player)
        if team_id:
            query = query.filter_by(team_id=team_id)
        return query.order_by(Player.name).all()

    @staticmethod
    def get_player(scope: TenantScope, player_id: str) -> Player:
        return scope.get_or_raise(Player, player_id, 'Player')

    @staticmethod
    def _check_number(team_id: str, number: int | None, exclude_id: str | None = None) -> None:
        if number is None:
            return
        query = Player.query.filter_by(team_id=team_id, number=number)
        if exclude_id:
            query = query.filter(Player.id != exclude_id)
        if query.first():
            raise ConflictError(f"Number {number} is already used in this team", number=number)

    @staticmethod
    def create_player(scope: TenantScope, data: dict[str, Any]) -> Player:
        team = scope.get_or_raise(Team, data.get('team_id'), 'Team')
        name = _required_name(data.get('name'), 'Player name')
        number = _optional_int(data.get('number'), 'Number')
        PlayerService._check_number(team.id, number)

        player = Player(
            org_id=team.org_id,
            team_id=team.id,
            name=name,
            number=number,
            position=(data.get('position') or None),
            age=_optional_int(data.get('age'), 'Age', minimum=1),
            active=bool(data.get('active', True)),
        )
        return _save(player, "Number is already used in this team", number=number)

    @staticmethod
    def update_player(scope: TenantScope, player_id: str, data: dict[str, Any]) -> Player:
        player = PlayerService.get_player(scope, player_id)
        team_id = player.team_id

        if 'team_id' in data and data['team_id'] != player.team_id:
            team = scope.get_or_raise(Team, data['team_id'], 'Team')
            has_events = db.session.execute(
                select(MatchEvent.id).where(MatchEvent.player_id == player.id).limit(1)
            ).first()
            if has_events:
                raise ConflictError("Player has match events and cannot change team", player_id=player.id)
            team_id = team.id

        number = _optional_int(data['number'], 'Number') if 'number' in data else player.number
        PlayerService._check_number(team_id, number, exclude_id=player.id)

        name = _required_name(data['name'], 'Player name') if 'name' in data else player.name
        age = _optional_int(data['age'], 'Age', minimum=1) if 'age' in data else player.age

        player.name = name
        player.age = age
        player.team_id = team_id
        player.number = number
        if 'position' in data:
            player.position = data['position'] or None
        if 'active' in data:
            player.active = bool(data['active'])

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Number is already used in this team") from None
        return player

    @staticmethod
    def delete_player(scope: TenantScope, player_id: str) -> None:
        """Remove the player's events through the projection, then the player."""
        player = PlayerService.get_player(scope, player_id)
        projection = get_projection()

        with projection.orchestrator.transaction() as session:
            events = list(
                session.execute(select(MatchEvent).where(MatchEvent.player_id == player.id)).scalars()
            )
            for event in events:
                projection.remove_event(event)
            session.delete(player)


class MatchService:
    """Fixtures, scores and the event ledger of a match."""

    @staticmethod
    def list_matches(
        scope: TenantScope,
        group_id: str | None = None,
        team_id: str | None = None,
        round_no: int | None = None,
    ) -> list[Match]:
        query = scope.query(Match)
        if group_id:
            query = query.filter(Match.group_id == group_id)
        if team_id:
            query = query.filter(or_(Match.home_team_id == team_id, Match.away_team_id == team_id))
        if round_no is not None:
            query = query.filter(Match.round == round_no)
        return query.order_by(Match.round, Match.scheduled_at, Match.id).all()

    @staticmethod
    def get_match(scope: TenantScope, match_id: str) -> Match:
        return scope.get_or_raise(Match, match_id, 'Match')

    @staticmethod
    def validate_fixture(
        scope: TenantScope,
        group_id: str,
        home_team_id: str,
        away_team_id: str,
        round_no: int,
        exclude_match_id: str | None = None,
    ) -> tuple[Group, Team, Team]:
        if not group_id:
            raise ValidationError("Group is required")
        if not home_team_id or not away_team_id:
            raise ValidationError("Both teams are required")
        if home_team_id == away_team_id:
            raise ValidationError("A team cannot play against itself", team_id=home_team_id)

        group = scope.get_or_raise(Group, group_id, 'Group')
        home = scope.get_or_raise(Team, home_team_id, 'Team')
        away = scope.get_or_raise(Team, away_team_id, 'Team')

        if not (home.org_id == away.org_id == group.org_id):
            raise ValidationError("Teams and group must belong to the same client")
        if home.group_id != group.id or away.group_id != group.id:
            raise ValidationError(
                "Both teams must belong to the match's group",
                group_id=group.id,
            )

        if MatchService._pair_exists(group.id, home.id, away.id, round_no, exclude_match_id):
            raise ConflictError(
                "These teams already meet in this group and round",
                home_team_id=home.id,
                away_team_id=away.id,
                round=round_no,
            )
        return group, home, away

    @staticmethod
    def _pair_exists(group_id, team_a, team_b, round_no, exclude_match_id=None) -> bool:
        stmt = (
            select(Match.id)
            .where(Match.group_id == group_id)
            .where(Match.round == round_no)
            .where(
                or_(
                    and_(Match.home_team_id == team_a, Match.away_team_id == team_b),
                    and_(Match.home_team_id == team_b, Match.away_team_id == team_a),
                )
            )
        )
        if exclude_match_id:
            stmt = stmt.where(Match.id != exclude_match_id)
        return db.session.execute(stmt.limit(1)).first() is not None

    @staticmethod
    def _score_pair(home_score, away_score) -> tuple[int | None, int | None]:
        home = validate_score(home_score, "Home score")
        away = validate_score(away_score, "Away score")
        if (home is None) != (away is None):
            raise ValidationError("Provide both scores or neither")
        return home, away

    @staticmethod
    def create_match(scope: TenantScope, data: dict[str, Any]) -> Match:
        round_no = parse_round(data.get('round', 1))
        scheduled_at = parse_datetime(data.get('scheduled_at'))
        home_score, away_score = MatchService._score_pair(data.get('home_score'), data.get('away_score'))
        group, home, away = MatchService.validate_fixture(
            scope, data.get('group_id'), data.get('home_team_id'), data.get('away_team_id'), round_no
        )

        match = Match(
            org_id=group.org_id,
            group_id=group.id,
            home_team_id=home.id,
            away_team_id=away.id,
            round=round_no,
            scheduled_at=scheduled_at,
            home_score=home_score,
            away_score=away_score,
        )
        get_orchestrator().match_created(match)
        return match

    @staticmethod
    def update_fixture(scope: TenantScope, match_id: str, data: dict[str, Any]) -> Match:
        """Edit teams, group, round or kickoff; scores go through set_score."""
        match = MatchService.get_match(scope, match_id)
        changes = {key: data[key] for key in FIXTURE_FIELDS if key in data}

        group_id = changes.get('group_id', match.group_id)
        home_id = changes.get('home_team_id', match.home_team_id)
        away_id = changes.get('away_team_id', match.away_team_id)
        round_no = parse_round(changes.get('round', match.round))
        scheduled_at = (
            parse_datetime(changes['scheduled_at']) if 'scheduled_at' in changes else match.scheduled_at
        )

        previous_teams = (match.home_team_id, match.away_team_id)
        teams_changed = {home_id, away_id} != set(previous_teams)
        if teams_changed and match.events:
            raise ConflictError(
                "Match has events; remove them before changing the teams",
                match_id=match.id,
            )

        group, home, away = MatchService.validate_fixture(
            scope, group_id, home_id, away_id, round_no, exclude_match_id=match.id
        )

        orchestrator = get_orchestrator()
        with orchestrator.transaction():
            match.group_id = group.id
            match.home_team_id = home.id
            match.away_team_id = away.id
            match.round = round_no
            match.scheduled_at = scheduled_at
            if (home.id, away.id) == previous_teams[::-1]:
                # Scores follow the teams when sides are swapped.
                orchestrator.apply_score(match, match.away_score, match.home_score)
                if orchestrator.repository.has_goal_events(match.id):
                    orchestrator.session.flush()
                    EventScoreProjection(orchestrator).reproject(match)
            orchestrator.fixture_changed(match, previous_teams)
        return match

    @staticmethod
    def set_score(scope: TenantScope, match_id: str, home_score, away_score) -> Match:
        match = MatchService.get_match(scope, match_id)
        MatchService._score_pair(home_score, away_score)
        get_orchestrator().record_score(match, home_score, away_score)
        return match

    @staticmethod
    def complete_match(scope: TenantScope, match_id: str, home_score, away_score) -> Match:
        match = MatchService.get_match(scope, match_id)
        get_orchestrator().complete_match(match, home_score, away_score)
        return match

    @staticmethod
    def delete_match(scope: TenantScope, match_id: str) -> dict:
        match = MatchService.get_match(scope, match_id)
        recomputed = get_orchestrator().delete_match(match)
        return {'recomputed_teams': sorted(recomputed)}

    @staticmethod
    def list_events(scope: TenantScope, match_id: str) -> list[MatchEvent]:
        match = MatchService.get_match(scope, match_id)
        return list(
            db.session.execute(
                select(MatchEvent)
                .where(MatchEvent.match_id == match.id)
                .order_by(MatchEvent.minute, MatchEvent.created_at)
            ).scalars()
        )

    @staticmethod
    def add_event(scope: TenantScope, match_id: str, data: dict[str, Any]) -> MatchEvent:
        match = MatchService.get_match(scope, match_id)
        if not data.get('player_id'):
            raise ValidationError("Player is required")
        if data.get('event_type') in (None, ''):
            raise ValidationError("Event type is required")
        if data.get('minute') in (None, ''):
            raise ValidationError("Minute is required")
        player = scope.get_or_raise(Player, data.get('player_id'), 'Player')
        return get_projection().add_event(
            match,
            player,
            data.get('event_type'),
            data.get('minute'),
            details=data.get('details'),
        )

    @staticmethod
    def remove_event(scope: TenantScope, match_id: str, event_id: str) -> None:
        event = scope.get_or_raise(MatchEvent, event_id, 'Event')
        if event.match_id != match_id:
            raise NotFoundError("Event not found", id=event_id)
        get_projection().remove_event(event)


def round_robin_pairings(team_ids: list[str], double_round: bool = False) -> list[tuple[int, str, str]]:
    """Circle-method schedule as ``(round, home_id, away_id)`` tuples.

    Every team meets every other once per leg and plays at most once per
    round. With an odd number of teams one team rests each round. The second
    leg repeats the first with home and away swapped.
    """
    teams: list[str | None] = list(team_ids)
    if len(teams) < 2:
        return []
    if len(teams) % 2:
        teams.append(None)

    size = len(teams)
    fixtures: list[tuple[int, str, str]] = []
    for round_index in range(size - 1):
        for i in range(size // 2):
            home, away = teams[i], teams[size - 1 - i]
            if home is None or away is None:
                continue
            # Alternate the fixed team between home and away.
            if i == 0 and round_index % 2 == 1:
                home, away = away, home
            fixtures.append((round_index + 1, home, away))
        teams = [teams[0], teams[-1]] + teams[1:-1]

    if double_round:
        leg_length = size - 1
        second_leg = [(round_no + leg_length, away, home) for round_no, home, away in fixtures]
        fixtures.extend(second_leg)
    return fixtures


class FixtureService:
    """Bulk fixture creation, including generated round-robin schedules."""

    @staticmethod
    def plan_round_robin(
        scope: TenantScope,
        group_id: str,
        start_at,
        days_between_rounds: int = 7,
        double_round: bool = False,
    ) -> list[dict[str, Any]]:
        group = scope.get_or_raise(Group, group_id, 'Group')
        start = parse_datetime(start_at, 'start_at')
        spacing = _optional_int(days_between_rounds, 'Days between rounds') or 0

        teams = sorted(group.teams, key=lambda team: team.name.casefold())
        if len(teams) < 2:
            raise ValidationError("At least two teams are needed to generate fixtures", group_id=group.id)

        return [
            {
                'group_id': group.id,
                'home_team_id': home_id,
                'away_team_id': away_id,
                'round': round_no,
                'scheduled_at': start + timedelta(days=spacing * (round_no - 1)),
            }
            for round_no, home_id, away_id in round_robin_pairings(
                [team.id for team in teams], double_round=double_round
            )
        ]

    @staticmethod
    def create_fixtures(scope: TenantScope, fixtures: list[dict[str, Any]]) -> list[Match]:
        """Create every fixture or none of them."""
        if not isinstance(fixtures, list) or not fixtures:
            raise ValidationError("A non-empty list of fixtures is required")

        prepared = []
        seen: set[tuple] = set()
        duplicates = 0
        for item in fixtures:
            if not isinstance(item, dict):
                raise ValidationError("Each fixture must be an object")
            round_no = parse_round(item.get('round', 1))
            scheduled_at = parse_datetime(item.get('scheduled_at'))
            try:
                group, home, away = MatchService.validate_fixture(
                    scope,
                    item.get('group_id'),
                    item.get('home_team_id'),
                    item.get('away_team_id'),
                    round_no,
                )
            except ConflictError:
                duplicates += 1
                continue

            key = (group.id, round_no, frozenset((home.id, away.id)))
            if key in seen:
                duplicates += 1
                continue
            seen.add(key)
            prepared.append(
                Match(
                    org_id=group.org_id,
                    group_id=group.id,
                    home_team_id=home.id,
                    away_team_id=away.id,
                    round=round_no,
                    scheduled_at=scheduled_at,
                )
            )

        if duplicates:
            raise ConflictError("Some fixtures already exist", duplicates=duplicates)

        orchestrator = get_orchestrator()
        with orchestrator.transaction():
            for match in prepared:
                orchestrator.match_created(match)

        current_app.logger.info(f"Created {len(prepared)} fixture(s)")
        return prepared

    @staticmethod
    def generate_round_robin(
        scope: TenantScope,
        group_id: str,
        start_at,
        days_between_rounds: int = 7,
        double_round: bool = False,
    ) -> list[Match]:
        plan = FixtureService.plan_round_robin(
            scope, group_id, start_at, days_between_rounds, double_round
        )
        return FixtureService.create_fixtures(scope, plan)


class StandingsService:
    """Read side of the standings table."""

    @staticmethod
    def table(scope: TenantScope, group_id: str | None = None) -> list[dict[str, Any]]:
        if group_id:
            scope.get_or_raise(Group, group_id, 'Group')
        teams = TeamService.list_teams(scope, group_id=group_id)

        table = []
        for position, team in enumerate(rank_standings(teams), start=1):
            table.append({
                'position': position,
                'team_id': team.id,
                'team': team.name,
                'group_id': team.group_id,
                'played': team.wins + team.draws + team.losses,
                'points': team.points,
                'wins': team.wins,
                'draws': team.draws,
                'losses': team.losses,
                'goals_for': team.goals_for,
                'goals_against': team.goals_against,
                'goal_difference': team.goal_difference,
            })
        return table


__all__ = [
    'get_orchestrator',
    'get_projection',
    'parse_datetime',
    'parse_round',
    'round_robin_pairings',
    'GroupService',
    'TeamService',
    'PlayerService',
    'MatchService',
    'FixtureService',
    'StandingsService',
]
