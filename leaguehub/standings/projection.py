"""Event ledger writes and the goal-count projection onto match scores."""
from __future__ import annotations

from sqlalchemy import select

from leaguehub.models import EventType, Match, MatchEvent, Player
from leaguehub.standings.errors import ConflictError, ValidationError
from leaguehub.standings.orchestrator import StandingsOrchestrator
from leaguehub.standings.repository import GoalCounts

MIN_MINUTE = 0
MAX_MINUTE = 120


def parse_event_type(value) -> EventType:
    if isinstance(value, EventType):
        return value
    try:
        return EventType(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(e.value for e in EventType)
        raise ValidationError(f"Invalid event type. Allowed: {allowed}", value=value) from None


def parse_minute(value) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError("Minute must be a whole number", value=value)
    try:
        minute = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Minute must be a whole number", value=value) from None
    if not MIN_MINUTE <= minute <= MAX_MINUTE:
        raise ValidationError(f"Minute must be between {MIN_MINUTE} and {MAX_MINUTE}", value=minute)
    return minute


class EventScoreProjection:
    """Keeps a match's score equal to its goal-event counts."""

    def __init__(self, orchestrator: StandingsOrchestrator):
        self.orchestrator = orchestrator
        self.session = orchestrator.session
        self.repository = orchestrator.repository

    def add_event(
        self,
        match: Match,
        player: Player,
        event_type,
        minute,
        details: str | None = None,
    ) -> MatchEvent:
        kind = parse_event_type(event_type)
        minute = parse_minute(minute)

        if player.org_id != match.org_id:
            raise ValidationError("Player does not belong to this match's organization")
        if player.team_id not in (match.home_team_id, match.away_team_id):
            raise ValidationError("Player does not belong to either team in this match", player_id=player.id)

        with self.orchestrator.transaction():
            if kind is EventType.RED_CARD and self._has_red_card(match.id, player.id):
                self.orchestrator.logger.warning(
                    f"Rejected second red card for player {player.id} in match {match.id}"
                )
                raise ConflictError("Player already has a red card in this match", player_id=player.id)

            event = MatchEvent(
                org_id=match.org_id,
                match_id=match.id,
                team_id=player.team_id,
                player_id=player.id,
                event_type=kind,
                minute=minute,
                details=details or None,
            )
            self.session.add(event)
            self.session.flush()

            if kind is EventType.GOAL:
                self.reproject(match)
        return event

    def remove_event(self, event: MatchEvent) -> None:
        match = event.match
        was_goal = event.event_type is EventType.GOAL

        with self.orchestrator.transaction():
            self.session.delete(event)
            self.session.flush()
            if was_goal:
                self.reproject(match)

    def reproject(self, match: Match) -> GoalCounts:
        """Rewrite the score from goal counts, then recompute both teams."""
        counts = self.repository.goal_counts_for_match(match.id)
        self.orchestrator.apply_score(match, counts.home, counts.away)
        self.orchestrator.recompute_match_teams(match)
        return counts

    def _has_red_card(self, match_id: str, player_id: str) -> bool:
        stmt = (
            select(MatchEvent.id)
            .where(MatchEvent.match_id == match_id)
            .where(MatchEvent.player_id == player_id)
            .where(MatchEvent.event_type == EventType.RED_CARD)
            .limit(1)
        )
        return self.session.execute(stmt).first() is not None


__all__ = [
    "MIN_MINUTE",
    "MAX_MINUTE",
    "EventScoreProjection",
    "parse_event_type",
    "parse_minute",
]
