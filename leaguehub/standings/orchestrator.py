"""Decide which teams need recomputation and persist the results atomically.

Every mutation that can change a team's standings goes through
:class:`StandingsOrchestrator`. The structural change is applied and flushed
first, then each affected team is recomputed from the post-mutation match set,
and everything is committed together. Any exception rolls the whole unit back.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from leaguehub.models import Match, MatchEvent, Player, Team
from leaguehub.standings.calculator import TeamAggregates, calculate_aggregates
from leaguehub.standings.errors import ConflictError, ConsistencyError, ValidationError
from leaguehub.standings.repository import MatchRepository, unwrap_session

SCORE_SOURCE_EVENTS = 'events'
SCORE_SOURCE_EITHER = 'either'


def validate_score(value, label: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"{label} must be a whole number", value=value)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a whole number", value=value) from None
    if number < 0:
        raise ValidationError(f"{label} cannot be negative", value=value)
    return number


class StandingsOrchestrator:
    """Run mutations and the standings recomputation they trigger as one unit."""

    def __init__(
        self,
        session: Session,
        repository: MatchRepository | None = None,
        score_source: str = SCORE_SOURCE_EVENTS,
        logger: logging.Logger | None = None,
    ):
        if score_source not in (SCORE_SOURCE_EVENTS, SCORE_SOURCE_EITHER):
            raise ValueError(f"Unknown score source: {score_source}")
        self.session = unwrap_session(session)
        self.repository = repository or MatchRepository(self.session)
        self.score_source = score_source
        # Services pass current_app.logger; the module logger serves callers outside Flask.
        self.logger = logger or logging.getLogger(__name__)
        self._depth = 0

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Commit on success, roll back on any error. Re-entrant."""
        if self._depth:
            self._depth += 1
            try:
                yield self.session
            finally:
                self._depth -= 1
            return

        if not self.session.in_transaction():
            self.session.begin()
        self._depth = 1
        try:
            yield self.session
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        finally:
            self._depth = 0

    # ------------------------------------------------------------------
    # Recomputation
    # ------------------------------------------------------------------

    def recompute(self, team_ids: Iterable[str | None]) -> dict[str, TeamAggregates]:
        """Rebuild and store aggregates for each team; call inside a transaction."""
        self.session.flush()
        results: dict[str, TeamAggregates] = {}
        for team_id in sorted({t for t in team_ids if t}):
            outcomes = self.repository.completed_matches_for_team(team_id)
            aggregates = calculate_aggregates(team_id, outcomes)
            if not self.repository.set_team_aggregates(team_id, aggregates):
                raise RuntimeError(f"Failed to store standings for team {team_id}")
            results[team_id] = aggregates
        if results:
            self.logger.info(f"Standings recomputed for {len(results)} team(s)")
        return results

    def recompute_match_teams(self, match: Match) -> dict[str, TeamAggregates]:
        return self.recompute([match.home_team_id, match.away_team_id])

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def record_score(self, match: Match, home_score, away_score) -> dict[str, TeamAggregates]:
        """Direct score edit (the non-event path)."""
        home = validate_score(home_score, "Home score")
        away = validate_score(away_score, "Away score")

        with self.transaction():
            if (
                self.score_source == SCORE_SOURCE_EVENTS
                and self.repository.has_goal_events(match.id)
            ):
                raise ConflictError(
                    "Score is derived from goal events for this match; edit the events instead",
                    match_id=match.id,
                )
            self.apply_score(match, home, away)
            return self.recompute_match_teams(match)

    def apply_score(self, match: Match, home: int | None, away: int | None) -> None:
        previous = (match.home_score, match.away_score)
        match.home_score = home
        match.away_score = away
        self.logger.info(
            f"Match {match.id} score {previous[0]}-{previous[1]} -> {home}-{away}"
        )

    def complete_match(self, match: Match, home_score, away_score) -> dict[str, TeamAggregates]:
        """Finalize a scheduled match; a completed one must be corrected instead."""
        if match.is_completed:
            raise ConflictError("Match has already been completed", match_id=match.id)
        if home_score is None or away_score is None:
            raise ValidationError("Both scores are required to complete a match")
        return self.record_score(match, home_score, away_score)

    def match_created(self, match: Match) -> dict[str, TeamAggregates]:
        with self.transaction():
            self.session.add(match)
            if not match.is_completed:
                self.session.flush()
                return {}
            return self.recompute_match_teams(match)

    def fixture_changed(self, match: Match, previous_team_ids: Iterable[str]) -> dict[str, TeamAggregates]:
        with self.transaction():
            affected = set(previous_team_ids) | {match.home_team_id, match.away_team_id}
            return self.recompute(affected)

    def delete_match(self, match: Match) -> dict[str, TeamAggregates]:
        """Remove a match and its events, then recompute both teams."""
        with self.transaction():
            affected = {match.home_team_id, match.away_team_id}
            self._delete_matches([match])
            return self.recompute(affected)

    def delete_matches(self, matches: list[Match]) -> dict[str, TeamAggregates]:
        with self.transaction():
            affected: set[str] = set()
            for match in matches:
                affected.update((match.home_team_id, match.away_team_id))
            self._delete_matches(matches)
            return self.recompute(affected)

    def delete_team(self, team: Team) -> dict[str, TeamAggregates]:
        """Remove a team with its matches, events and players; recompute former opponents."""
        with self.transaction():
            opponents = self.repository.opponents_in_completed_matches(team.id)
            opponents.discard(team.id)

            matches = list(
                self.session.execute(
                    select(Match).where(
                        or_(Match.home_team_id == team.id, Match.away_team_id == team.id)
                    )
                ).scalars()
            )
            self._delete_matches(matches)

            # Events the team's players logged elsewhere point at rows about to vanish.
            player_ids = select(Player.id).where(Player.team_id == team.id)
            for event in self.session.execute(
                select(MatchEvent).where(
                    or_(MatchEvent.team_id == team.id, MatchEvent.player_id.in_(player_ids))
                )
            ).scalars():
                self.session.delete(event)

            for player in list(team.players):
                self.session.delete(player)
            self.session.delete(team)
            self.session.flush()

            self.logger.info(
                f"Team {team.id} deleted with {len(matches)} match(es); "
                f"recomputing {len(opponents)} opponent(s)"
            )
            return self.recompute(opponents)

    def _delete_matches(self, matches: list[Match]) -> None:
        for match in matches:
            for event in self.session.execute(
                select(MatchEvent).where(MatchEvent.match_id == match.id)
            ).scalars():
                self.session.delete(event)
            self.session.delete(match)
        self.session.flush()

    # ------------------------------------------------------------------
    # Tenant-wide maintenance
    # ------------------------------------------------------------------

    def recalculate_tenant(self, org_id: str) -> dict[str, TeamAggregates]:
        """Recompute every team of a tenant, one transaction per team."""
        results: dict[str, TeamAggregates] = {}
        for team_id in self.repository.team_ids_for_tenant(org_id):
            with self.transaction():
                results.update(self.recompute([team_id]))
        self.logger.info(f"Tenant {org_id}: standings recalculated for {len(results)} team(s)")
        return results

    def audit(self, team_ids: Iterable[str]) -> int:
        """Compare stored aggregates to a fresh computation; raise on any drift."""
        mismatches = {}
        checked = 0
        for team_id in sorted(set(team_ids)):
            expected = calculate_aggregates(team_id, self.repository.completed_matches_for_team(team_id))
            stored = self.repository.stored_aggregates(team_id)
            checked += 1
            if stored != expected:
                mismatches[team_id] = {'stored': stored.as_dict(), 'expected': expected.as_dict()}

        if mismatches:
            self.logger.critical(f"Standings drift detected for {len(mismatches)} team(s): {mismatches}")
            raise ConsistencyError(
                f"Stored standings differ from recomputation for {len(mismatches)} team(s)",
                mismatches=mismatches,
            )
        return checked

    def audit_tenant(self, org_id: str) -> int:
        return self.audit(self.repository.team_ids_for_tenant(org_id))


__all__ = [
    "SCORE_SOURCE_EVENTS",
    "SCORE_SOURCE_EITHER",
    "StandingsOrchestrator",
    "validate_score",
]
