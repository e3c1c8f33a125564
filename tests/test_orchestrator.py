"""Standings recomputation through the service layer and the orchestrator."""

from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from leaguehub.extensions import db
from leaguehub.models import Match, MatchEvent, Player, Team
from leaguehub.services.league import (
    FixtureService,
    GroupService,
    MatchService,
    TeamService,
    get_orchestrator,
    round_robin_pairings,
)
from leaguehub.standings import StandingsOrchestrator
from leaguehub.standings.calculator import TeamAggregates
from leaguehub.standings.errors import ConflictError, ConsistencyError, ValidationError
from leaguehub.standings.repository import MatchRepository

from conftest import KICKOFF


def stats(team):
    return (team.points, team.wins, team.draws, team.losses, team.goals_for, team.goals_against)


def make_match(league, home, away, home_score=None, away_score=None, round_no=1):
    return MatchService.create_match(league.scope, {
        'group_id': league.group.id,
        'home_team_id': league.teams[home].id,
        'away_team_id': league.teams[away].id,
        'round': round_no,
        'scheduled_at': KICKOFF.isoformat(),
        'home_score': home_score,
        'away_score': away_score,
    })


def test_new_teams_start_at_zero(league):
    for team in league.teams.values():
        assert stats(team) == (0, 0, 0, 0, 0, 0)


def test_match_created_with_score_updates_both_teams(league):
    make_match(league, 'Alpha', 'Beta', 2, 1)

    assert stats(league.teams['Alpha']) == (3, 1, 0, 0, 2, 1)
    assert stats(league.teams['Beta']) == (0, 0, 0, 1, 1, 2)
    assert stats(league.teams['Gamma']) == (0, 0, 0, 0, 0, 0)


def test_scheduled_match_does_not_count(league):
    match = make_match(league, 'Alpha', 'Beta')

    assert not match.is_completed
    assert stats(league.teams['Alpha']) == (0, 0, 0, 0, 0, 0)


def test_score_correction_turns_win_into_draw(league):
    match = make_match(league, 'Alpha', 'Beta', 2, 1)

    MatchService.set_score(league.scope, match.id, 2, 2)

    assert stats(league.teams['Alpha']) == (1, 0, 1, 0, 2, 2)
    assert stats(league.teams['Beta']) == (1, 0, 1, 0, 2, 2)


def test_clearing_a_score_returns_match_to_scheduled(league):
    match = make_match(league, 'Alpha', 'Beta', 2, 1)

    MatchService.set_score(league.scope, match.id, None, None)

    assert not db.session.get(Match, match.id).is_completed
    assert stats(league.teams['Alpha']) == (0, 0, 0, 0, 0, 0)


def test_deleting_a_match_equals_never_creating_it(league):
    make_match(league, 'Alpha', 'Gamma', 1, 1)
    before = {name: stats(team) for name, team in league.teams.items()}

    extra = make_match(league, 'Alpha', 'Beta', 3, 0)
    assert stats(league.teams['Alpha']) != before['Alpha']

    MatchService.delete_match(league.scope, extra.id)

    assert {name: stats(team) for name, team in league.teams.items()} == before


def test_deleting_a_match_removes_its_events(league):
    match = make_match(league, 'Alpha', 'Beta')
    MatchService.add_event(league.scope, match.id, {
        'player_id': league.players['Alpha 9'].id, 'event_type': 'goal', 'minute': 10,
    })

    MatchService.delete_match(league.scope, match.id)

    assert db.session.query(MatchEvent).count() == 0
    assert stats(league.teams['Alpha']) == (0, 0, 0, 0, 0, 0)


def test_deleting_a_team_recomputes_former_opponents(league):
    make_match(league, 'Alpha', 'Beta', 2, 1)
    make_match(league, 'Beta', 'Gamma', 0, 0)
    make_match(league, 'Alpha', 'Gamma', 1, 0, round_no=2)
    beta_id = league.teams['Beta'].id
    beta_player_ids = [league.players['Beta 9'].id, league.players['Beta 10'].id]

    result = TeamService.delete_team(league.scope, beta_id)

    assert sorted(result['recomputed_teams']) == sorted(
        [league.teams['Alpha'].id, league.teams['Gamma'].id]
    )
    assert db.session.get(Team, beta_id) is None
    assert all(db.session.get(Player, pid) is None for pid in beta_player_ids)
    assert db.session.query(Match).count() == 1
    assert stats(league.teams['Alpha']) == (3, 1, 0, 0, 1, 0)
    assert stats(league.teams['Gamma']) == (0, 0, 0, 1, 0, 1)


def test_fixture_change_recomputes_old_and_new_teams(league):
    match = make_match(league, 'Alpha', 'Beta', 2, 1)

    MatchService.update_fixture(league.scope, match.id, {'away_team_id': league.teams['Gamma'].id})

    assert stats(league.teams['Alpha']) == (3, 1, 0, 0, 2, 1)
    assert stats(league.teams['Beta']) == (0, 0, 0, 0, 0, 0)
    assert stats(league.teams['Gamma']) == (0, 0, 0, 1, 1, 2)


def test_swapping_sides_keeps_the_score_with_each_team(league):
    match = make_match(league, 'Alpha', 'Beta', 2, 1)

    MatchService.update_fixture(league.scope, match.id, {
        'home_team_id': league.teams['Beta'].id,
        'away_team_id': league.teams['Alpha'].id,
    })

    stored = db.session.get(Match, match.id)
    assert (stored.home_score, stored.away_score) == (1, 2)
    assert stats(league.teams['Alpha']) == (3, 1, 0, 0, 2, 1)
    assert stats(league.teams['Beta']) == (0, 0, 0, 1, 1, 2)


def test_swapping_sides_reprojects_goal_events(league):
    match = make_match(league, 'Alpha', 'Beta')
    for player, minute in (('Alpha 9', 12), ('Alpha 10', 40), ('Beta 9', 77)):
        MatchService.add_event(league.scope, match.id, {
            'player_id': league.players[player].id,
            'event_type': 'goal',
            'minute': minute,
        })

    MatchService.update_fixture(league.scope, match.id, {
        'home_team_id': league.teams['Beta'].id,
        'away_team_id': league.teams['Alpha'].id,
    })

    stored = db.session.get(Match, match.id)
    assert (stored.home_score, stored.away_score) == (1, 2)
    assert stats(league.teams['Alpha']) == (3, 1, 0, 0, 2, 1)
    assert stats(league.teams['Beta']) == (0, 0, 0, 1, 1, 2)
    assert get_orchestrator().audit_tenant(league.org.id) == 3


def test_orchestrator_binds_the_current_session(league):
    orchestrator = get_orchestrator()

    assert isinstance(orchestrator.session, Session)
    assert orchestrator.repository.session is orchestrator.session
    assert orchestrator.session is db.session()

    # A scoped registry handed in directly resolves to the same Session.
    direct = StandingsOrchestrator(db.session)
    assert direct.session is db.session()

    match = make_match(league, 'Alpha', 'Beta', 2, 1)
    assert stats(league.teams['Alpha']) == (3, 1, 0, 0, 2, 1)
    assert db.session.get(Match, match.id).home_score == 2


def test_failed_aggregate_write_rolls_back_everything(league, monkeypatch):
    match = make_match(league, 'Alpha', 'Beta')
    beta_id = league.teams['Beta'].id
    original = MatchRepository.set_team_aggregates

    def flaky(self, team_id, aggregates):
        if team_id == beta_id:
            return False
        return original(self, team_id, aggregates)

    monkeypatch.setattr(MatchRepository, 'set_team_aggregates', flaky)

    with pytest.raises(RuntimeError):
        MatchService.set_score(league.scope, match.id, 2, 1)

    monkeypatch.undo()
    stored = db.session.get(Match, match.id)
    assert stored.home_score is None and stored.away_score is None
    assert stats(league.teams['Alpha']) == (0, 0, 0, 0, 0, 0)
    assert stats(league.teams['Beta']) == (0, 0, 0, 0, 0, 0)


def test_aggregate_write_requires_a_transaction(league):
    team_id = league.teams['Alpha'].id
    db.session.commit()

    with pytest.raises(RuntimeError):
        MatchRepository(db.session()).set_team_aggregates(team_id, TeamAggregates(points=3))


def test_audit_detects_drift_and_recalculation_repairs_it(league):
    make_match(league, 'Alpha', 'Beta', 2, 1)
    orchestrator = get_orchestrator()
    assert orchestrator.audit_tenant(league.org.id) == 3

    alpha = league.teams['Alpha']
    alpha.points = 99
    db.session.commit()

    with pytest.raises(ConsistencyError) as excinfo:
        orchestrator.audit_tenant(league.org.id)
    assert alpha.id in excinfo.value.context['mismatches']
    assert excinfo.value.context['mismatches'][alpha.id]['expected']['points'] == 3

    orchestrator.recalculate_tenant(league.org.id)

    assert alpha.points == 3
    assert orchestrator.audit_tenant(league.org.id) == 3


def test_complete_match_lifecycle(league):
    match = make_match(league, 'Alpha', 'Beta')

    with pytest.raises(ValidationError):
        MatchService.complete_match(league.scope, match.id, 1, None)

    MatchService.complete_match(league.scope, match.id, 0, 3)
    assert stats(league.teams['Beta']) == (3, 1, 0, 0, 3, 0)

    with pytest.raises(ConflictError):
        MatchService.complete_match(league.scope, match.id, 1, 1)

    # Corrections still go through the score path.
    MatchService.set_score(league.scope, match.id, 1, 1)
    assert stats(league.teams['Beta']) == (1, 0, 1, 0, 1, 1)


@pytest.mark.parametrize('home_score, away_score', [(-1, 0), (1, None), (1.5, 0), ('x', 1)])
def test_invalid_scores_are_rejected(league, home_score, away_score):
    match = make_match(league, 'Alpha', 'Beta')

    with pytest.raises(ValidationError):
        MatchService.set_score(league.scope, match.id, home_score, away_score)

    assert not db.session.get(Match, match.id).is_completed


def test_fixture_validation(league):
    with pytest.raises(ValidationError):
        make_match(league, 'Alpha', 'Alpha')

    outsider = TeamService.create_team(league.scope, 'Delta')
    league.teams['Delta'] = outsider
    with pytest.raises(ValidationError):
        make_match(league, 'Alpha', 'Delta')

    make_match(league, 'Alpha', 'Beta')
    with pytest.raises(ConflictError):
        make_match(league, 'Beta', 'Alpha')

    # The same pair may meet again in another round.
    make_match(league, 'Beta', 'Alpha', round_no=2)
    assert db.session.query(Match).count() == 2


def test_deleting_a_group_removes_matches_and_detaches_teams(league):
    make_match(league, 'Alpha', 'Beta', 2, 1)

    result = GroupService.delete_group(league.scope, league.group.id)

    assert result == {'matches_deleted': 1, 'teams_detached': 3}
    assert db.session.query(Match).count() == 0
    for team in league.teams.values():
        assert team.group_id is None
        assert stats(team) == (0, 0, 0, 0, 0, 0)


def test_group_names_are_upper_cased_and_unique(league):
    assert league.group.name == 'A'

    with pytest.raises(ConflictError):
        GroupService.create_group(league.scope, ' a ')


def test_round_robin_pairings_cover_every_pair_once():
    fixtures = round_robin_pairings(['a', 'b', 'c', 'd'])

    pairs = {frozenset((home, away)) for _, home, away in fixtures}
    assert len(fixtures) == 6
    assert len(pairs) == 6
    for round_no in (1, 2, 3):
        playing = [t for r, home, away in fixtures if r == round_no for t in (home, away)]
        assert sorted(playing) == ['a', 'b', 'c', 'd']


def test_double_round_robin_swaps_home_and_away():
    fixtures = round_robin_pairings(['a', 'b', 'c'], double_round=True)

    assert len(fixtures) == 6
    first_leg = {(home, away) for r, home, away in fixtures if r <= 3}
    second_leg = {(home, away) for r, home, away in fixtures if r > 3}
    assert second_leg == {(away, home) for home, away in first_leg}


def test_generate_round_robin_creates_fixtures_once(league):
    matches = FixtureService.generate_round_robin(league.scope, league.group.id, KICKOFF, days_between_rounds=7)

    assert len(matches) == 3
    assert {m.round for m in matches} == {1, 2, 3}
    by_round = {m.round: m for m in matches}
    assert by_round[3].scheduled_at.replace(tzinfo=None) == (KICKOFF + timedelta(days=14)).replace(tzinfo=None)

    with pytest.raises(ConflictError):
        FixtureService.generate_round_robin(league.scope, league.group.id, KICKOFF)
    assert db.session.query(Match).count() == 3
