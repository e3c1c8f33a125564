"""Error taxonomy shared by the standings engine and the services around it."""

from __future__ import annotations


class LeagueError(Exception):
    """Base class for every rejected league operation."""

    status_code = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        payload = {'error': self.message, 'kind': type(self).__name__}
        if self.context:
            payload['context'] = self.context
        return payload


class ValidationError(LeagueError):
    """Malformed input: negative score, self-referential match, bad event data."""

    status_code = 400


class ConflictError(LeagueError):
    """An invariant would be violated, e.g. a second red card for a player."""

    status_code = 409


class NotFoundError(LeagueError):
    """Referenced entity does not exist in the caller's tenant."""

    status_code = 404


class ConsistencyError(LeagueError):
    """Stored aggregates differ from a fresh recomputation; indicates a defect."""

    status_code = 500


__all__ = [
    "LeagueError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "ConsistencyError",
]
