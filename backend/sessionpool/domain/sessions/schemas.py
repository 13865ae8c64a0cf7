"""Pydantic schemas for the session pool API."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from sessionpool.domain.sessions.models import CloseGateResult, SweepResult


class JoinSessionResponse(BaseModel):
    session_id: str
    user_id: str
    status: str
    joined_at: Optional[datetime] = None


class QueueJoinRequest(BaseModel):
    session_type: Optional[str] = Field(default=None, max_length=40)


class QueueEntryResponse(BaseModel):
    user_id: str
    session_type: str
    joined_at: datetime


class QueueLeaveResponse(BaseModel):
    removed: bool


class RoomTokenRequest(BaseModel):
    room_name: str = Field(..., min_length=1, max_length=128)


class RoomTokenResponse(BaseModel):
    token: str
    room_name: str
    identity: str
    server_url: Optional[str] = None


class GroupFailureSummary(BaseModel):
    index: int
    stage: str
    user_ids: List[str]
    error: str


class CloseGateResponse(BaseModel):
    session_id: str
    groups: int = 0
    lobby_users: int = 0
    matched_users: int = 0
    failures: List[GroupFailureSummary] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: CloseGateResult) -> "CloseGateResponse":
        return cls(
            session_id=result.session_id,
            groups=len(result.groups),
            lobby_users=len(result.match.lobby_users),
            matched_users=result.match.matched_count,
            failures=[
                GroupFailureSummary(
                    index=failure.index,
                    stage=failure.stage,
                    user_ids=list(failure.user_ids),
                    error=failure.error,
                )
                for failure in result.failures
            ],
        )


class SweepResponse(BaseModel):
    processed: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    failures: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_result(cls, result: SweepResult) -> "SweepResponse":
        return cls(
            processed=list(result.processed),
            skipped=list(result.skipped),
            failures=dict(result.failures),
        )


class GateCloseCronResponse(BaseModel):
    closed: SweepResponse
    completed: SweepResponse
    streaks_credited: int = 0
    streak_failures: int = 0


class InstantMatchResponse(BaseModel):
    matched: int


class StreakResetResponse(BaseModel):
    reset: int
