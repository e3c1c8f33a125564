"""Pure standings calculator tests; no app or database involved."""

from types import SimpleNamespace

import pytest

from leaguehub.standings.calculator import (
    EMPTY_AGGREGATES,
    MatchOutcome,
    MatchResult,
    TeamAggregates,
    calculate_aggregates,
    calculate_from_results,
    outcomes_for_team,
    rank_standings,
)
from leaguehub.standings.errors import ValidationError


def test_home_win_scenario():
    results = [MatchResult('A', 'B', 2, 1)]

    assert calculate_from_results('A', results) == TeamAggregates(3, 1, 0, 0, 2, 1)
    assert calculate_from_results('B', results) == TeamAggregates(0, 0, 0, 1, 1, 2)


def test_draw_gives_one_point_each():
    results = [MatchResult('A', 'B', 2, 2)]

    for team in ('A', 'B'):
        aggregates = calculate_from_results(team, results)
        assert aggregates.points == 1
        assert aggregates.draws == 1
        assert aggregates.goals_for == aggregates.goals_against == 2


def test_incomplete_matches_are_excluded():
    results = [
        MatchResult('A', 'B', None, None),
        MatchResult('A', 'C', 3, None),
        MatchResult('C', 'A', None, 0),
        MatchResult('B', 'A', 0, 1),
    ]

    aggregates = calculate_from_results('A', results)

    assert aggregates == TeamAggregates(points=3, wins=1, goals_for=1)
    assert aggregates.played == 1


def test_no_matches_yields_zero_aggregates():
    assert calculate_aggregates('A', []) == EMPTY_AGGREGATES


def test_points_and_goal_difference_invariants():
    results = [
        MatchResult('A', 'B', 4, 0),
        MatchResult('C', 'A', 2, 2),
        MatchResult('A', 'D', 0, 1),
        MatchResult('E', 'A', 1, 3),
        MatchResult('A', 'B', 1, 1),
    ]

    aggregates = calculate_from_results('A', results)

    assert aggregates.points == 3 * aggregates.wins + aggregates.draws
    assert aggregates.goal_difference == (4 - 0) + (2 - 2) + (0 - 1) + (3 - 1) + (1 - 1)
    assert aggregates.played == len(results)


def test_calculation_is_idempotent():
    outcomes = [MatchOutcome('B', 1, 0), MatchOutcome('C', 0, 0)]

    assert calculate_aggregates('A', outcomes) == calculate_aggregates('A', outcomes)


@pytest.mark.parametrize('my_score, opp_score', [(-1, 0), (0, -2), (None, 1), (1.5, 0), (True, 0), ('2', 1)])
def test_invalid_scores_are_rejected(my_score, opp_score):
    with pytest.raises(ValidationError):
        calculate_aggregates('A', [MatchOutcome('B', my_score, opp_score)])


def test_self_match_is_rejected():
    with pytest.raises(ValidationError):
        calculate_from_results('A', [MatchResult('A', 'A', 1, 0)])

    with pytest.raises(ValidationError):
        calculate_aggregates('A', [MatchOutcome('A', 1, 0)])


def test_match_without_the_team_is_rejected():
    with pytest.raises(ValidationError):
        outcomes_for_team('A', [MatchResult('B', 'C', 1, 0)])


def test_away_side_sees_swapped_scores():
    outcomes = outcomes_for_team('B', [MatchResult('A', 'B', 2, 1)])

    assert outcomes == [MatchOutcome(opponent_id='A', my_score=1, opp_score=2)]


def test_rank_standings_tiebreakers():
    def row(name, points, wins, goals_for, goals_against):
        return SimpleNamespace(
            name=name, points=points, wins=wins,
            goals_for=goals_for, goals_against=goals_against,
        )

    rows = [
        row('Delta', 4, 1, 3, 3),
        row('alpha', 6, 2, 5, 2),
        row('Bravo', 6, 2, 6, 3),
        row('Charlie', 6, 1, 4, 1),
        row('Echo', 4, 1, 3, 3),
    ]

    ranked = [r.name for r in rank_standings(rows)]

    # Bravo and alpha tie on points, difference and wins; goals for decides.
    assert ranked == ['Bravo', 'alpha', 'Charlie', 'Delta', 'Echo']
