from sessionpool.domain.sessions.gate import GateManager
from sessionpool.domain.sessions.instant import InstantMatcher
from sessionpool.domain.sessions.models import (
    CloseGateResult,
    GroupRecord,
    ParticipantStatus,
    Session,
    SessionStatus,
    SweepResult,
)
from sessionpool.domain.sessions.repository import InMemorySessionRepository, SessionRepository

__all__ = [
    "CloseGateResult",
    "GateManager",
    "GroupRecord",
    "InMemorySessionRepository",
    "InstantMatcher",
    "ParticipantStatus",
    "Session",
    "SessionRepository",
    "SessionStatus",
    "SweepResult",
]
