"""Always-open instant queue swept on a short interval."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import ulid

from sessionpool.domain.errors import ValidationError
from sessionpool.domain.matching import Participant, run_matching
from sessionpool.domain.rooms.provider import RoomProvider
from sessionpool.domain.sessions import outbox
from sessionpool.domain.sessions.gate import INSTANT_ROOM_PREFIX, GroupBuilder
from sessionpool.domain.sessions.models import GroupFailure, InstantQueueEntry, Session, SessionStatus
from sessionpool.domain.sessions.repository import SessionRepository
from sessionpool.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class InstantMatcher:
    def __init__(
        self,
        repository: SessionRepository,
        rooms: RoomProvider,
        *,
        session_type: str = "instant",
        session_name: str = "Instant Match",
        duration_minutes: int = 30,
        default_queue_type: str = "immerse",
    ) -> None:
        self._repository = repository
        self._builder = GroupBuilder(repository, rooms)
        self._session_type = session_type
        self._session_name = session_name
        self._duration_minutes = duration_minutes
        self._default_queue_type = default_queue_type

    async def enqueue(self, user_id: str, session_type: str | None = None) -> InstantQueueEntry:
        tag = (session_type or self._default_queue_type).strip()
        if not tag:
            raise ValidationError("session_type_missing")
        entry = await self._repository.enqueue(user_id, tag)
        await outbox.append_queue_event("queue.joined", user_id, session_type=tag)
        return entry

    async def dequeue(self, user_id: str) -> bool:
        removed = await self._repository.dequeue([user_id])
        if removed:
            await outbox.append_queue_event("queue.left", user_id)
        return bool(removed)

    async def sweep_instant_queue(self, now: datetime | None = None) -> int:
        """Match everyone queued into one ad-hoc active session; returns users matched.

        All entries bucket under the instant tag; the type a user queued with is
        echoed on the entry and its queue events but never splits the pool. Users
        left over stay queued for the next sweep, there is no lobby here.
        """
        entries = await self._repository.list_queue()
        if len(entries) < 2:
            return 0

        participants = [
            Participant(
                user_id=entry.user_id,
                display_handle=entry.display_handle,
                streak=entry.streak,
                session_type=self._session_type,
            )
            for entry in entries
        ]
        match = run_matching(participants)
        if not match.groups:
            return 0

        session = await self._repository.insert_session(
            Session(
                id=str(ulid.new()),
                name=self._session_name,
                session_type=self._session_type,
                starts_at=now or datetime.now(timezone.utc),
                gate_duration_minutes=0,
                duration_minutes=self._duration_minutes,
                status=SessionStatus.ACTIVE,
            )
        )

        matched = 0
        for index, group in enumerate(match.groups):
            outcome = await self._builder.build(
                session,
                index,
                group,
                prefix=INSTANT_ROOM_PREFIX,
                capacity=group.size,
                register=True,
            )
            if isinstance(outcome, GroupFailure):
                if outcome.stage != "status":
                    continue
            await self._repository.dequeue(group.user_ids())
            matched += group.size

        obs_metrics.inc_instant_matched(matched)
        logger.info(
            "instant_sweep",
            extra={"session_id": session.id, "queued": len(entries), "matched": matched},
        )
        return matched
