"""Gate lifecycle: opens waiting windows, closes them into groups and retires finished sessions."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import ulid

from sessionpool.domain.errors import DownstreamFailure, NotFound, SessionPoolError, ValidationError
from sessionpool.domain.matching import Group, GroupType, Participant, run_matching
from sessionpool.domain.rooms.provider import RoomProvider, RoomToken
from sessionpool.domain.sessions import outbox
from sessionpool.domain.sessions.models import (
    CloseGateResult,
    GroupFailure,
    GroupRecord,
    ParticipantStatus,
    Session,
    SessionParticipant,
    SessionStatus,
    SweepResult,
    sources_for,
)
from sessionpool.domain.sessions.repository import SessionRepository
from sessionpool.domain.streaks.ledger import ProfileRepository
from sessionpool.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

SESSION_ROOM_PREFIX = "session"
LOBBY_ROOM_PREFIX = "lobby"
INSTANT_ROOM_PREFIX = "instant"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def make_room_name(prefix: str, session_id: str) -> str:
    return f"{prefix}-{session_id}-{secrets.token_hex(4)}"


def _lobby_group(member: Participant) -> Group:
    return Group(
        members=(member,),
        type=GroupType.LOBBY,
        session_type=member.session_type,
        avg_streak=member.streak,
    )


class GroupBuilder:
    """Creates the room, group rows and member statuses for one matched group.

    Each call is isolated: a failure is returned as a ``GroupFailure`` and never
    raised, so sibling groups in the same close are still attempted.
    """

    def __init__(self, repository: SessionRepository, rooms: RoomProvider) -> None:
        self._repository = repository
        self._rooms = rooms

    async def build(
        self,
        session: Session,
        index: int,
        group: Group,
        *,
        prefix: str,
        capacity: int,
        register: bool = False,
    ) -> GroupRecord | GroupFailure:
        user_ids = group.user_ids()
        room_name = make_room_name(prefix, session.id)
        try:
            await self._rooms.create_room(room_name, session.duration_minutes, capacity)
        except Exception as exc:
            return self._fail(session, index, "room", user_ids, exc)

        record = GroupRecord(
            id=str(ulid.new()),
            session_id=session.id,
            room_name=room_name,
            group_type=group.type,
            session_type=group.session_type,
            avg_streak=group.avg_streak,
            member_ids=user_ids,
        )
        try:
            stored = await self._repository.insert_group(record)
        except Exception as exc:
            await self._discard_room(room_name)
            return self._fail(session, index, "persist", user_ids, exc)

        await outbox.append_group_event(
            "group.created",
            session_id=session.id,
            group_id=stored.id,
            room_name=room_name,
            user_ids=user_ids,
        )
        obs_metrics.inc_group_created(group.type.value)

        try:
            if register:
                for user_id in user_ids:
                    await self._repository.upsert_participant(session.id, user_id, ParticipantStatus.MATCHED)
            else:
                await self._repository.set_participant_status(session.id, user_ids, ParticipantStatus.MATCHED)
        except Exception as exc:
            return self._fail(session, index, "status", user_ids, exc)
        return stored

    async def _discard_room(self, room_name: str) -> None:
        try:
            await self._rooms.delete_room(room_name)
        except Exception:
            logger.warning("room_cleanup_failed", extra={"room_name": room_name}, exc_info=True)

    def _fail(
        self,
        session: Session,
        index: int,
        stage: str,
        user_ids: List[str],
        exc: Exception,
    ) -> GroupFailure:
        logger.warning(
            "group_create_failed",
            extra={"session_id": session.id, "group_index": index, "stage": stage},
            exc_info=exc,
        )
        obs_metrics.inc_group_failure(stage)
        return GroupFailure(index=index, stage=stage, user_ids=tuple(user_ids), error=str(exc) or type(exc).__name__)


class GateManager:
    """Drives ``Session.status`` through upcoming, gate_open, matching, active and completed.

    Every transition is a compare-and-swap against the expected prior status, so
    overlapping sweeps race safely: the loser's update matches no row and is
    counted as a skip.
    """

    def __init__(
        self,
        repository: SessionRepository,
        rooms: RoomProvider,
        *,
        profiles: Optional[ProfileRepository] = None,
        lobby_capacity: int = 3,
    ) -> None:
        self._repository = repository
        self._rooms = rooms
        self._profiles = profiles
        self._lobby_capacity = lobby_capacity
        self._builder = GroupBuilder(repository, rooms)

    async def _transition(
        self,
        session_id: str,
        target: SessionStatus,
        expected: Sequence[SessionStatus] | None = None,
    ) -> bool:
        expected = tuple(expected) if expected is not None else sources_for(target)
        moved = await self._repository.transition_status(session_id, expected, target)
        if moved:
            await outbox.append_session_event("session.status", session_id, status=target.value)
        else:
            obs_metrics.inc_transition_conflict(target.value)
            logger.info(
                "session_transition_skipped",
                extra={"session_id": session_id, "target": target.value},
            )
        return moved

    async def _require_session(self, session_id: str) -> Session:
        session = await self._repository.get_session(session_id)
        if session is None:
            raise NotFound("session_not_found", message=f"Session {session_id} not found")
        return session

    async def open_gate(self, session_id: str) -> bool:
        """Move an upcoming session to gate_open. Returns ``False`` when it was not upcoming."""
        opened = await self._transition(session_id, SessionStatus.GATE_OPEN, (SessionStatus.UPCOMING,))
        if opened:
            obs_metrics.inc_gate_opened()
            logger.info("gate_opened", extra={"session_id": session_id})
        return opened

    async def open_due_gates(self, now: datetime | None = None) -> SweepResult:
        now = now or _now()
        result = SweepResult()
        for session in await self._repository.list_sessions(SessionStatus.UPCOMING, starts_before=now):
            try:
                if await self.open_gate(session.id):
                    result.processed.append(session.id)
                else:
                    result.skipped.append(session.id)
            except Exception as exc:
                self._record_sweep_failure("gate_open", result, session.id, exc)
        return result

    async def close_gate(self, session_id: str) -> CloseGateResult:
        """Match the waiting list of one session into groups and rooms.

        Raises ``NotFound`` for an unknown session and ``ValidationError`` when the
        session has no type, both before any status change. A store failure after
        the session entered ``matching`` leaves it there and raises
        ``DownstreamFailure("stranded_matching")``; no sweep picks it up again.
        """
        session = await self._require_session(session_id)
        if not session.session_type:
            raise ValidationError("session_type_missing")

        result = CloseGateResult(session_id=session_id)
        if not await self._transition(session_id, SessionStatus.MATCHING):
            result.skipped = True
            obs_metrics.inc_gate_closed("skipped")
            return result

        try:
            await self._match_waiting(session, result)
        except Exception as exc:
            logger.error("gate_stranded_matching", extra={"session_id": session_id}, exc_info=True)
            obs_metrics.inc_gate_closed("stranded")
            raise DownstreamFailure(
                "stranded_matching",
                message=f"Session {session_id} left in matching: {type(exc).__name__}",
            ) from exc
        return result

    async def _match_waiting(self, session: Session, result: CloseGateResult) -> None:
        waiting = await self._repository.list_waiting(session.id)
        if not waiting:
            await self._transition(session.id, SessionStatus.COMPLETED, (SessionStatus.MATCHING,))
            obs_metrics.inc_gate_closed("empty")
            logger.info("gate_closed_empty", extra={"session_id": session.id})
            return

        participants = [
            Participant(
                user_id=entry.user_id,
                display_handle=entry.display_handle,
                streak=entry.streak,
                session_type=session.session_type,
            )
            for entry in waiting
        ]
        result.match = run_matching(participants)

        for index, group in enumerate(result.match.groups):
            outcome = await self._builder.build(
                session, index, group, prefix=SESSION_ROOM_PREFIX, capacity=group.size
            )
            self._collect(result, outcome)

        offset = len(result.match.groups)
        for position, member in enumerate(result.match.lobby_users):
            outcome = await self._builder.build(
                session,
                offset + position,
                _lobby_group(member),
                prefix=LOBBY_ROOM_PREFIX,
                capacity=self._lobby_capacity,
            )
            self._collect(result, outcome)

        await self._transition(session.id, SessionStatus.ACTIVE, (SessionStatus.MATCHING,))
        obs_metrics.inc_gate_closed("partial" if result.partial else "matched")
        logger.info(
            "gate_closed",
            extra={
                "session_id": session.id,
                "groups": len(result.groups),
                "lobby": len(result.match.lobby_users),
                "failures": len(result.failures),
            },
        )

    @staticmethod
    def _collect(result: CloseGateResult, outcome: GroupRecord | GroupFailure) -> None:
        if isinstance(outcome, GroupFailure):
            result.failures.append(outcome)
        else:
            result.groups.append(outcome)

    async def close_due_gates(self, now: datetime | None = None) -> SweepResult:
        now = now or _now()
        result = SweepResult()
        for session in await self._repository.list_sessions(SessionStatus.GATE_OPEN):
            if not session.gate_due(now):
                continue
            try:
                closed = await self.close_gate(session.id)
            except Exception as exc:
                self._record_sweep_failure("gate_close", result, session.id, exc)
                continue
            if closed.skipped:
                result.skipped.append(session.id)
                continue
            result.processed.append(session.id)
            if closed.partial:
                result.failures[session.id] = f"partial:{len(closed.failures)}"
        return result

    async def complete_expired_sessions(self, now: datetime | None = None) -> SweepResult:
        """Retire active sessions past their window; ``processed`` feeds the streak ledger."""
        now = now or _now()
        result = SweepResult()
        for session in await self._repository.list_sessions(SessionStatus.ACTIVE):
            if not session.expired(now):
                continue
            try:
                # participants first: a failure leaves the session active for the next sweep
                await self._repository.complete_participants(session.id)
                if not await self._transition(session.id, SessionStatus.COMPLETED, (SessionStatus.ACTIVE,)):
                    result.skipped.append(session.id)
                    continue
            except Exception as exc:
                self._record_sweep_failure("session_complete", result, session.id, exc)
                continue
            result.processed.append(session.id)
        if result.processed:
            obs_metrics.inc_session_completed(len(result.processed))
        return result

    async def join_session(self, session_id: str, user_id: str) -> SessionParticipant:
        session = await self._require_session(session_id)
        if session.status is not SessionStatus.GATE_OPEN:
            raise ValidationError("gate_not_open", message="Session gate is not open")
        participant = await self._repository.upsert_participant(session_id, user_id, ParticipantStatus.WAITING)
        logger.info("session_joined", extra={"session_id": session_id, "participant": user_id})
        return participant

    async def issue_room_token(self, user_id: str, room_name: str) -> RoomToken:
        group = await self._repository.find_group_by_room(room_name)
        if group is None:
            raise NotFound("room_not_found")
        if user_id not in group.member_ids:
            raise SessionPoolError("not_group_member", status_code=403, message="Not a member of this group")
        identity = user_id
        if self._profiles is not None:
            profile = await self._profiles.get_profile(user_id)
            if profile is not None:
                identity = profile.identity
        try:
            return await self._rooms.issue_token(user_id, room_name, identity)
        except Exception as exc:
            logger.warning("room_token_failed", extra={"room_name": room_name}, exc_info=True)
            raise DownstreamFailure("room_token_failed") from exc

    @staticmethod
    def _record_sweep_failure(sweep: str, result: SweepResult, session_id: str, exc: Exception) -> None:
        logger.error(
            "sweep_session_failed",
            extra={"sweep": sweep, "session_id": session_id},
            exc_info=exc,
        )
        obs_metrics.inc_sweep_failure(sweep)
        code = exc.code if isinstance(exc, SessionPoolError) else type(exc).__name__
        result.failures[session_id] = code
