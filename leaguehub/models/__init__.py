from leaguehub.models.models import (
    AuditLog,
    EventType,
    Group,
    Match,
    MatchEvent,
    MatchStatus,
    Organization,
    Player,
    Team,
    TimestampedBase,
    User,
    UserRole,
)

__all__ = [
    "AuditLog",
    "EventType",
    "Group",
    "Match",
    "MatchEvent",
    "MatchStatus",
    "Organization",
    "Player",
    "Team",
    "TimestampedBase",
    "User",
    "UserRole",
]
