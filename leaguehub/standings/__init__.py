"""Standings engine: pure calculator, repository, orchestrator and event projection."""

from leaguehub.standings.calculator import (
    MatchOutcome,
    MatchResult,
    TeamAggregates,
    calculate_aggregates,
    calculate_from_results,
    rank_standings,
)
from leaguehub.standings.errors import (
    ConflictError,
    ConsistencyError,
    LeagueError,
    NotFoundError,
    ValidationError,
)
from leaguehub.standings.orchestrator import StandingsOrchestrator
from leaguehub.standings.projection import EventScoreProjection
from leaguehub.standings.repository import GoalCounts, MatchRepository

__all__ = [
    "MatchOutcome",
    "MatchResult",
    "TeamAggregates",
    "calculate_aggregates",
    "calculate_from_results",
    "rank_standings",
    "ConflictError",
    "ConsistencyError",
    "LeagueError",
    "NotFoundError",
    "ValidationError",
    "StandingsOrchestrator",
    "EventScoreProjection",
    "GoalCounts",
    "MatchRepository",
]
