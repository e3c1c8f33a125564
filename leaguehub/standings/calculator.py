"""Pure standings computation.

Nothing in this module touches the database. Aggregates are always rebuilt
from the full set of completed matches for a team, so any correction (score
edit, deleted goal, deleted match) is picked up by simply calling
:func:`calculate_aggregates` again.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Iterable, Sequence

from leaguehub.standings.errors import ValidationError

WIN_POINTS = 3
DRAW_POINTS = 1
LOSS_POINTS = 0


@dataclass(frozen=True)
class MatchResult:
    """A fixture as stored: both sides plus a possibly-missing score pair."""

    home_team_id: str
    away_team_id: str
    home_score: int | None
    away_score: int | None

    @property
    def is_completed(self) -> bool:
        return self.home_score is not None and self.away_score is not None


@dataclass(frozen=True)
class MatchOutcome:
    """A completed match seen from one team's side."""

    opponent_id: str
    my_score: int
    opp_score: int


@dataclass(frozen=True)
class TeamAggregates:
    points: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0

    @property
    def played(self) -> int:
        return self.wins + self.draws + self.losses

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


EMPTY_AGGREGATES = TeamAggregates()


def _check_score(value, label: str) -> int:
    # bool is an int subclass; a True score is a caller bug.
    if value is None or isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{label} must be an integer", value=value)
    if value < 0:
        raise ValidationError(f"{label} cannot be negative", value=value)
    return value


def outcomes_for_team(team_id: str, results: Iterable[MatchResult]) -> list[MatchOutcome]:
    """Project stored fixtures onto ``team_id``'s side.

    Matches that are not completed are skipped. A fixture the team does not
    play in, or a team playing itself, is rejected.
    """
    outcomes = []
    for result in results:
        if result.home_team_id == result.away_team_id:
            raise ValidationError("A team cannot play against itself", team_id=result.home_team_id)
        if team_id not in (result.home_team_id, result.away_team_id):
            raise ValidationError("Match does not involve this team", team_id=team_id)
        if not result.is_completed:
            continue
        if result.home_team_id == team_id:
            outcomes.append(MatchOutcome(result.away_team_id, result.home_score, result.away_score))
        else:
            outcomes.append(MatchOutcome(result.home_team_id, result.away_score, result.home_score))
    return outcomes


def calculate_aggregates(team_id: str, outcomes: Iterable[MatchOutcome]) -> TeamAggregates:
    """Sum points, W/D/L and goals over a team's completed matches."""
    points = wins = draws = losses = goals_for = goals_against = 0

    for outcome in outcomes:
        if outcome.opponent_id == team_id:
            raise ValidationError("A team cannot play against itself", team_id=team_id)
        my_score = _check_score(outcome.my_score, "Score")
        opp_score = _check_score(outcome.opp_score, "Opponent score")

        goals_for += my_score
        goals_against += opp_score

        if my_score > opp_score:
            wins += 1
            points += WIN_POINTS
        elif my_score == opp_score:
            draws += 1
            points += DRAW_POINTS
        else:
            losses += 1
            points += LOSS_POINTS

    return TeamAggregates(
        points=points,
        wins=wins,
        draws=draws,
        losses=losses,
        goals_for=goals_for,
        goals_against=goals_against,
    )


def calculate_from_results(team_id: str, results: Iterable[MatchResult]) -> TeamAggregates:
    return calculate_aggregates(team_id, outcomes_for_team(team_id, results))


def standings_sort_key(row) -> tuple:
    """Table order: points, goal difference, wins, goals for, then name."""
    return (
        -row.points,
        -(row.goals_for - row.goals_against),
        -row.wins,
        -row.goals_for,
        (row.name or '').casefold(),
    )


def rank_standings(rows: Sequence) -> list:
    """Sort team-like rows (points/wins/goals_for/goals_against/name) into a table."""
    return sorted(rows, key=standings_sort_key)


__all__ = [
    "WIN_POINTS",
    "DRAW_POINTS",
    "LOSS_POINTS",
    "MatchResult",
    "MatchOutcome",
    "TeamAggregates",
    "EMPTY_AGGREGATES",
    "outcomes_for_team",
    "calculate_aggregates",
    "calculate_from_results",
    "standings_sort_key",
    "rank_standings",
]
