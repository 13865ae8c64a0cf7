"""PostgreSQL-backed session, group and instant queue storage."""

from __future__ import annotations

from datetime import datetime
from typing import List, Sequence

import asyncpg

from sessionpool.domain.matching.models import GroupType
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
from sessionpool.domain.sessions.repository import SessionRepository
from sessionpool.infra.postgres import affected_rows

_SESSION_COLUMNS = (
    "id, name, session_type, starts_at, gate_duration_minutes, duration_minutes, status, created_at"
)


class PostgresSessionRepository(SessionRepository):
    """Session lifecycle storage; status changes are compare-and-swap updates."""

    def __init__(
        self,
        pool: asyncpg.Pool,
        *,
        default_gate_duration_minutes: int = 5,
        default_duration_minutes: int = 30,
    ) -> None:
        self._pool = pool
        self._default_gate = default_gate_duration_minutes
        self._default_duration = default_duration_minutes

    def _row_to_session(self, row: asyncpg.Record) -> Session:
        gate = row["gate_duration_minutes"]
        duration = row["duration_minutes"]
        return Session(
            id=str(row["id"]),
            name=str(row["name"]),
            session_type=str(row["session_type"] or ""),
            starts_at=row["starts_at"],
            gate_duration_minutes=self._default_gate if gate is None else int(gate),
            duration_minutes=self._default_duration if duration is None else int(duration),
            status=SessionStatus(str(row["status"])),
            created_at=row["created_at"],
        )

    async def get_session(self, session_id: str) -> Session | None:
        row = await self._pool.fetchrow(
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE id = $1",
            session_id,
        )
        if row is None:
            return None
        return self._row_to_session(row)

    async def insert_session(self, session: Session) -> Session:
        row = await self._pool.fetchrow(
            f"""
            INSERT INTO sessions (id, name, session_type, starts_at, gate_duration_minutes, duration_minutes, status)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING {_SESSION_COLUMNS}
            """,
            session.id,
            session.name,
            session.session_type,
            session.starts_at,
            session.gate_duration_minutes,
            session.duration_minutes,
            session.status.value,
        )
        if row is None:  # pragma: no cover - RETURNING always yields a row
            raise RuntimeError("Failed to insert session")
        return self._row_to_session(row)

    async def transition_status(
        self,
        session_id: str,
        expected: Sequence[SessionStatus],
        target: SessionStatus,
    ) -> bool:
        status = await self._pool.execute(
            "UPDATE sessions SET status = $3 WHERE id = $1 AND status = ANY($2::text[])",
            session_id,
            [item.value for item in expected],
            target.value,
        )
        return affected_rows(status) > 0

    async def list_sessions(
        self,
        status: SessionStatus,
        *,
        starts_before: datetime | None = None,
    ) -> List[Session]:
        if starts_before is None:
            rows = await self._pool.fetch(
                f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE status = $1 ORDER BY starts_at ASC",
                status.value,
            )
        else:
            rows = await self._pool.fetch(
                f"""
                SELECT {_SESSION_COLUMNS} FROM sessions
                WHERE status = $1 AND starts_at <= $2
                ORDER BY starts_at ASC
                """,
                status.value,
                starts_before,
            )
        return [self._row_to_session(row) for row in rows]

    async def upsert_participant(
        self,
        session_id: str,
        user_id: str,
        status: ParticipantStatus,
    ) -> SessionParticipant:
        row = await self._pool.fetchrow(
            """
            INSERT INTO session_participants (session_id, user_id, status)
            VALUES ($1, $2, $3)
            ON CONFLICT (session_id, user_id) DO UPDATE SET status = EXCLUDED.status
            RETURNING session_id, user_id, status, joined_at
            """,
            session_id,
            user_id,
            status.value,
        )
        if row is None:  # pragma: no cover
            raise RuntimeError("Failed to upsert session participant")
        return SessionParticipant(
            session_id=str(row["session_id"]),
            user_id=str(row["user_id"]),
            status=ParticipantStatus(str(row["status"])),
            joined_at=row["joined_at"],
        )

    async def list_participants(self, session_id: str) -> List[SessionParticipant]:
        rows = await self._pool.fetch(
            """
            SELECT session_id, user_id, status, joined_at
            FROM session_participants
            WHERE session_id = $1
            ORDER BY joined_at ASC
            """,
            session_id,
        )
        return [
            SessionParticipant(
                session_id=str(row["session_id"]),
                user_id=str(row["user_id"]),
                status=ParticipantStatus(str(row["status"])),
                joined_at=row["joined_at"],
            )
            for row in rows
        ]

    async def list_waiting(self, session_id: str) -> List[WaitingParticipant]:
        rows = await self._pool.fetch(
            """
            SELECT sp.user_id, p.display_handle, COALESCE(p.streak, 0) AS streak
            FROM session_participants sp
            LEFT JOIN profiles p ON p.id = sp.user_id
            WHERE sp.session_id = $1 AND sp.status = 'waiting'
            ORDER BY sp.joined_at ASC
            """,
            session_id,
        )
        return [
            WaitingParticipant(
                user_id=str(row["user_id"]),
                display_handle=row["display_handle"],
                streak=int(row["streak"]),
            )
            for row in rows
        ]

    async def set_participant_status(
        self,
        session_id: str,
        user_ids: Sequence[str],
        status: ParticipantStatus,
    ) -> int:
        if not user_ids:
            return 0
        result = await self._pool.execute(
            """
            UPDATE session_participants SET status = $3
            WHERE session_id = $1 AND user_id = ANY($2::text[])
            """,
            session_id,
            list(user_ids),
            status.value,
        )
        return affected_rows(result)

    async def complete_participants(self, session_id: str) -> int:
        result = await self._pool.execute(
            "UPDATE session_participants SET status = 'completed' WHERE session_id = $1",
            session_id,
        )
        return affected_rows(result)

    async def list_credited_user_ids(self, session_id: str) -> List[str]:
        rows = await self._pool.fetch(
            """
            SELECT user_id FROM session_participants
            WHERE session_id = $1 AND status = ANY($2::text[])
            ORDER BY joined_at ASC
            """,
            session_id,
            [status.value for status in CREDITED_STATUSES],
        )
        return [str(row["user_id"]) for row in rows]

    async def insert_group(self, group: GroupRecord) -> GroupRecord:
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """
                    INSERT INTO groups (id, session_id, room_name, group_type, session_type, avg_streak)
                    VALUES ($1, $2, $3, $4, $5, $6)
                    RETURNING created_at
                    """,
                    group.id,
                    group.session_id,
                    group.room_name,
                    group.group_type.value,
                    group.session_type,
                    group.avg_streak,
                )
                await conn.executemany(
                    "INSERT INTO group_members (group_id, user_id, position) VALUES ($1, $2, $3)",
                    [(group.id, user_id, position) for position, user_id in enumerate(group.member_ids)],
                )
        return GroupRecord(
            id=group.id,
            session_id=group.session_id,
            room_name=group.room_name,
            group_type=group.group_type,
            session_type=group.session_type,
            avg_streak=group.avg_streak,
            member_ids=list(group.member_ids),
            created_at=row["created_at"] if row is not None else None,
        )

    async def find_group_by_room(self, room_name: str) -> GroupRecord | None:
        row = await self._pool.fetchrow(
            """
            SELECT g.id, g.session_id, g.room_name, g.group_type, g.session_type, g.avg_streak, g.created_at,
                   COALESCE(
                       ARRAY_AGG(gm.user_id ORDER BY gm.position) FILTER (WHERE gm.user_id IS NOT NULL),
                       '{}'
                   ) AS member_ids
            FROM groups g
            LEFT JOIN group_members gm ON gm.group_id = g.id
            WHERE g.room_name = $1
            GROUP BY g.id
            """,
            room_name,
        )
        if row is None:
            return None
        return GroupRecord(
            id=str(row["id"]),
            session_id=str(row["session_id"]),
            room_name=str(row["room_name"]),
            group_type=GroupType(str(row["group_type"])),
            session_type=str(row["session_type"]),
            avg_streak=int(row["avg_streak"]),
            member_ids=[str(item) for item in row["member_ids"]],
            created_at=row["created_at"],
        )

    async def enqueue(self, user_id: str, session_type: str) -> InstantQueueEntry:
        row = await self._pool.fetchrow(
            """
            INSERT INTO instant_queue (user_id, session_type)
            VALUES ($1, $2)
            ON CONFLICT (user_id) DO UPDATE SET session_type = EXCLUDED.session_type
            RETURNING user_id, session_type, joined_at
            """,
            user_id,
            session_type,
        )
        if row is None:  # pragma: no cover
            raise RuntimeError("Failed to enqueue user")
        return InstantQueueEntry(
            user_id=str(row["user_id"]),
            session_type=str(row["session_type"]),
            joined_at=row["joined_at"],
        )

    async def dequeue(self, user_ids: Sequence[str]) -> int:
        if not user_ids:
            return 0
        result = await self._pool.execute(
            "DELETE FROM instant_queue WHERE user_id = ANY($1::text[])",
            list(user_ids),
        )
        return affected_rows(result)

    async def list_queue(self) -> List[InstantQueueEntry]:
        rows = await self._pool.fetch(
            """
            SELECT q.user_id, q.session_type, q.joined_at, p.display_handle, COALESCE(p.streak, 0) AS streak
            FROM instant_queue q
            LEFT JOIN profiles p ON p.id = q.user_id
            ORDER BY q.joined_at ASC
            """
        )
        return [
            InstantQueueEntry(
                user_id=str(row["user_id"]),
                session_type=str(row["session_type"]),
                joined_at=row["joined_at"],
                display_handle=row["display_handle"],
                streak=int(row["streak"]),
            )
            for row in rows
        ]
