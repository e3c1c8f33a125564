"""SQLAlchemy-backed reads and writes used by the standings engine."""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session, scoped_session

from leaguehub.models import EventType, Match, MatchEvent, Team
from leaguehub.standings.calculator import MatchOutcome, TeamAggregates
from leaguehub.standings.errors import NotFoundError


def unwrap_session(session) -> Session:
    """Resolve a scoped_session registry to the Session it currently holds."""
    if isinstance(session, scoped_session):
        return session()
    return session


@dataclass(frozen=True)
class GoalCounts:
    home: int
    away: int


class MatchRepository:
    """Narrow persistence interface for the calculator and orchestrator."""

    def __init__(self, session: Session):
        self.session = unwrap_session(session)

    def _team(self, team_id: str) -> Team:
        team = self.session.get(Team, team_id)
        if team is None:
            raise NotFoundError("Team not found", team_id=team_id)
        return team

    def _completed_matches_stmt(self, team: Team):
        return (
            select(Match)
            .where(Match.org_id == team.org_id)
            .where(or_(Match.home_team_id == team.id, Match.away_team_id == team.id))
            .where(and_(Match.home_score.is_not(None), Match.away_score.is_not(None)))
            .order_by(Match.scheduled_at, Match.id)
        )

    def completed_matches_for_team(self, team_id: str) -> list[MatchOutcome]:
        """Completed matches from the team's side, limited to the team's tenant."""
        team = self._team(team_id)
        outcomes = []
        for match in self.session.execute(self._completed_matches_stmt(team)).scalars():
            if match.home_team_id == team.id:
                outcomes.append(MatchOutcome(match.away_team_id, match.home_score, match.away_score))
            else:
                outcomes.append(MatchOutcome(match.home_team_id, match.away_score, match.home_score))
        return outcomes

    def opponents_in_completed_matches(self, team_id: str) -> set[str]:
        return {outcome.opponent_id for outcome in self.completed_matches_for_team(team_id)}

    def set_team_aggregates(self, team_id: str, aggregates: TeamAggregates) -> bool:
        """Write derived standings; the caller must own an open transaction."""
        if not self.session.in_transaction():
            raise RuntimeError("set_team_aggregates requires an active transaction")

        team = self.session.get(Team, team_id)
        if team is None:
            return False

        team.points = aggregates.points
        team.wins = aggregates.wins
        team.draws = aggregates.draws
        team.losses = aggregates.losses
        team.goals_for = aggregates.goals_for
        team.goals_against = aggregates.goals_against
        return True

    def stored_aggregates(self, team_id: str) -> TeamAggregates:
        team = self._team(team_id)
        return TeamAggregates(
            points=team.points,
            wins=team.wins,
            draws=team.draws,
            losses=team.losses,
            goals_for=team.goals_for,
            goals_against=team.goals_against,
        )

    def goal_counts_for_match(self, match_id: str) -> GoalCounts:
        match = self.session.get(Match, match_id)
        if match is None:
            raise NotFoundError("Match not found", match_id=match_id)

        stmt = (
            select(MatchEvent.team_id, func.count(MatchEvent.id))
            .where(MatchEvent.match_id == match.id)
            .where(MatchEvent.org_id == match.org_id)
            .where(MatchEvent.event_type == EventType.GOAL)
            .group_by(MatchEvent.team_id)
        )
        counts = dict(self.session.execute(stmt).all())
        return GoalCounts(
            home=counts.get(match.home_team_id, 0),
            away=counts.get(match.away_team_id, 0),
        )

    def has_goal_events(self, match_id: str) -> bool:
        stmt = (
            select(MatchEvent.id)
            .where(MatchEvent.match_id == match_id)
            .where(MatchEvent.event_type == EventType.GOAL)
            .limit(1)
        )
        return self.session.execute(stmt).first() is not None

    def team_ids_for_tenant(self, org_id: str) -> list[str]:
        stmt = select(Team.id).where(Team.org_id == org_id).order_by(Team.name)
        return list(self.session.execute(stmt).scalars())


__all__ = ["GoalCounts", "MatchRepository", "unwrap_session"]
