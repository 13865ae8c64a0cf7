"""Storage contract for sessions, participants, groups and the instant queue."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from sessionpool.domain.sessions.models import (
    CREDITED_STATUSES,
    GroupRecord,
    InstantQueueEntry,
    ParticipantStatus,
    Session,
    SessionParticipant,
    SessionStatus,
    WaitingParticipant,
)
from sessionpool.domain.streaks.ledger import InMemoryProfileRepository


class SessionRepository(Protocol):
    async def get_session(self, session_id: str) -> Session | None:
        ...

    async def insert_session(self, session: Session) -> Session:
        ...

    async def transition_status(
        self,
        session_id: str,
        expected: Sequence[SessionStatus],
        target: SessionStatus,
    ) -> bool:
        """Compare-and-swap the session status; ``False`` when no row matched."""
        ...

    async def list_sessions(
        self,
        status: SessionStatus,
        *,
        starts_before: datetime | None = None,
    ) -> List[Session]:
        ...

    async def upsert_participant(
        self,
        session_id: str,
        user_id: str,
        status: ParticipantStatus,
    ) -> SessionParticipant:
        ...

    async def list_participants(self, session_id: str) -> List[SessionParticipant]:
        ...

    async def list_waiting(self, session_id: str) -> List[WaitingParticipant]:
        ...

    async def set_participant_status(
        self,
        session_id: str,
        user_ids: Sequence[str],
        status: ParticipantStatus,
    ) -> int:
        ...

    async def complete_participants(self, session_id: str) -> int:
        ...

    async def list_credited_user_ids(self, session_id: str) -> List[str]:
        ...

    async def insert_group(self, group: GroupRecord) -> GroupRecord:
        """Write a group and its member rows atomically."""
        ...

    async def find_group_by_room(self, room_name: str) -> GroupRecord | None:
        ...

    async def enqueue(self, user_id: str, session_type: str) -> InstantQueueEntry:
        ...

    async def dequeue(self, user_ids: Sequence[str]) -> int:
        ...

    async def list_queue(self) -> List[InstantQueueEntry]:
        ...


class InMemorySessionRepository(SessionRepository):
    """Reference repository used in tests and developer environments."""

    def __init__(self, profiles: Optional[InMemoryProfileRepository] = None) -> None:
        self._lock = asyncio.Lock()
        self.profiles = profiles or InMemoryProfileRepository()
        self.sessions: Dict[str, Session] = {}
        self.participants: Dict[Tuple[str, str], SessionParticipant] = {}
        self.groups: Dict[str, GroupRecord] = {}
        self.queue: Dict[str, InstantQueueEntry] = {}

    async def get_session(self, session_id: str) -> Session | None:
        session = self.sessions.get(session_id)
        return replace(session) if session else None

    async def insert_session(self, session: Session) -> Session:
        async with self._lock:
            stored = replace(session, created_at=session.created_at or datetime.now(timezone.utc))
            self.sessions[stored.id] = stored
            return replace(stored)

    async def transition_status(
        self,
        session_id: str,
        expected: Sequence[SessionStatus],
        target: SessionStatus,
    ) -> bool:
        async with self._lock:
            session = self.sessions.get(session_id)
            if session is None or session.status not in expected:
                return False
            session.status = target
            return True

    async def list_sessions(
        self,
        status: SessionStatus,
        *,
        starts_before: datetime | None = None,
    ) -> List[Session]:
        result = [
            replace(session)
            for session in self.sessions.values()
            if session.status == status and (starts_before is None or session.starts_at <= starts_before)
        ]
        return sorted(result, key=lambda session: session.starts_at)

    async def upsert_participant(
        self,
        session_id: str,
        user_id: str,
        status: ParticipantStatus,
    ) -> SessionParticipant:
        async with self._lock:
            key = (session_id, user_id)
            existing = self.participants.get(key)
            joined_at = existing.joined_at if existing else datetime.now(timezone.utc)
            participant = SessionParticipant(session_id, user_id, status, joined_at)
            self.participants[key] = participant
            return replace(participant)

    async def list_participants(self, session_id: str) -> List[SessionParticipant]:
        return [replace(p) for (sid, _), p in self.participants.items() if sid == session_id]

    async def list_waiting(self, session_id: str) -> List[WaitingParticipant]:
        waiting: List[WaitingParticipant] = []
        for participant in await self.list_participants(session_id):
            if participant.status is not ParticipantStatus.WAITING:
                continue
            profile = await self.profiles.get_profile(participant.user_id)
            waiting.append(
                WaitingParticipant(
                    user_id=participant.user_id,
                    display_handle=profile.display_handle if profile else None,
                    streak=profile.streak if profile else 0,
                )
            )
        return waiting

    async def set_participant_status(
        self,
        session_id: str,
        user_ids: Sequence[str],
        status: ParticipantStatus,
    ) -> int:
        async with self._lock:
            updated = 0
            for user_id in user_ids:
                participant = self.participants.get((session_id, user_id))
                if participant is not None:
                    participant.status = status
                    updated += 1
            return updated

    async def complete_participants(self, session_id: str) -> int:
        async with self._lock:
            updated = 0
            for (sid, _), participant in self.participants.items():
                if sid == session_id:
                    participant.status = ParticipantStatus.COMPLETED
                    updated += 1
            return updated

    async def list_credited_user_ids(self, session_id: str) -> List[str]:
        return [
            p.user_id
            for p in await self.list_participants(session_id)
            if p.status in CREDITED_STATUSES
        ]

    async def insert_group(self, group: GroupRecord) -> GroupRecord:
        async with self._lock:
            stored = replace(
                group,
                member_ids=list(group.member_ids),
                created_at=group.created_at or datetime.now(timezone.utc),
            )
            self.groups[stored.id] = stored
            return replace(stored, member_ids=list(stored.member_ids))

    async def find_group_by_room(self, room_name: str) -> GroupRecord | None:
        for group in self.groups.values():
            if group.room_name == room_name:
                return replace(group, member_ids=list(group.member_ids))
        return None

    def groups_for_session(self, session_id: str) -> List[GroupRecord]:
        return [group for group in self.groups.values() if group.session_id == session_id]

    async def enqueue(self, user_id: str, session_type: str) -> InstantQueueEntry:
        async with self._lock:
            existing = self.queue.get(user_id)
            joined_at = existing.joined_at if existing else datetime.now(timezone.utc)
            entry = InstantQueueEntry(user_id=user_id, session_type=session_type, joined_at=joined_at)
            self.queue[user_id] = entry
            return entry

    async def dequeue(self, user_ids: Sequence[str]) -> int:
        async with self._lock:
            removed = 0
            for user_id in user_ids:
                if self.queue.pop(user_id, None) is not None:
                    removed += 1
            return removed

    async def list_queue(self) -> List[InstantQueueEntry]:
        entries: List[InstantQueueEntry] = []
        for entry in sorted(self.queue.values(), key=lambda item: item.joined_at):
            profile = await self.profiles.get_profile(entry.user_id)
            entries.append(
                replace(
                    entry,
                    display_handle=profile.display_handle if profile else None,
                    streak=profile.streak if profile else 0,
                )
            )
        return entries
