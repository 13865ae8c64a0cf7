"""Domain models for gated co-working sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from sessionpool.domain.matching.models import GroupType, MatchResult


class SessionStatus(str, Enum):
    UPCOMING = "upcoming"
    GATE_OPEN = "gate_open"
    MATCHING = "matching"
    ACTIVE = "active"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _SESSION_ORDER[self]

    def can_transition_to(self, target: "SessionStatus") -> bool:
        return target in ALLOWED_TRANSITIONS[self]


_SESSION_ORDER: Dict[SessionStatus, int] = {
    SessionStatus.UPCOMING: 0,
    SessionStatus.GATE_OPEN: 1,
    SessionStatus.MATCHING: 2,
    SessionStatus.ACTIVE: 3,
    SessionStatus.COMPLETED: 4,
}

# Every edge moves forward in _SESSION_ORDER. An empty gate skips from
# matching straight to completed; a forced close may skip gate_open.
ALLOWED_TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.UPCOMING: frozenset({SessionStatus.GATE_OPEN, SessionStatus.MATCHING}),
    SessionStatus.GATE_OPEN: frozenset({SessionStatus.MATCHING}),
    SessionStatus.MATCHING: frozenset({SessionStatus.ACTIVE, SessionStatus.COMPLETED}),
    SessionStatus.ACTIVE: frozenset({SessionStatus.COMPLETED}),
    SessionStatus.COMPLETED: frozenset(),
}


def sources_for(target: SessionStatus) -> Tuple[SessionStatus, ...]:
    """Statuses from which ``target`` may be reached, in lifecycle order."""
    return tuple(
        status for status in SessionStatus if target in ALLOWED_TRANSITIONS[status]
    )


class ParticipantStatus(str, Enum):
    WAITING = "waiting"
    MATCHED = "matched"
    IN_ROOM = "in_room"
    COMPLETED = "completed"


CREDITED_STATUSES: Tuple[ParticipantStatus, ...] = (
    ParticipantStatus.MATCHED,
    ParticipantStatus.IN_ROOM,
    ParticipantStatus.COMPLETED,
)


@dataclass(slots=True)
class Session:
    id: str
    name: str
    session_type: str
    starts_at: datetime
    gate_duration_minutes: int
    duration_minutes: int
    status: SessionStatus
    created_at: Optional[datetime] = None

    @property
    def gate_closes_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.gate_duration_minutes)

    @property
    def ends_at(self) -> datetime:
        return self.gate_closes_at + timedelta(minutes=self.duration_minutes)

    def gate_due(self, now: datetime) -> bool:
        return now >= self.gate_closes_at

    def expired(self, now: datetime) -> bool:
        return now >= self.ends_at


@dataclass(slots=True)
class SessionParticipant:
    session_id: str
    user_id: str
    status: ParticipantStatus
    joined_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class WaitingParticipant:
    """A waiting participant joined with the streak fields of their profile."""

    user_id: str
    display_handle: Optional[str]
    streak: int


@dataclass(slots=True)
class GroupRecord:
    id: str
    session_id: str
    room_name: str
    group_type: GroupType
    session_type: str
    avg_streak: int
    member_ids: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class InstantQueueEntry:
    user_id: str
    session_type: str
    joined_at: datetime
    display_handle: Optional[str] = None
    streak: int = 0


@dataclass(frozen=True, slots=True)
class GroupFailure:
    """One group that could not be fully created during a close."""

    index: int
    stage: str
    user_ids: Tuple[str, ...]
    error: str


@dataclass(slots=True)
class CloseGateResult:
    session_id: str
    match: MatchResult = field(default_factory=MatchResult)
    groups: List[GroupRecord] = field(default_factory=list)
    failures: List[GroupFailure] = field(default_factory=list)
    skipped: bool = False

    @property
    def partial(self) -> bool:
        return bool(self.failures)


@dataclass(slots=True)
class SweepResult:
    """Outcome of one periodic sweep; failures are collected, never raised."""

    processed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures
