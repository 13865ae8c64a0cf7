"""PostgreSQL-backed profile streak storage."""

from __future__ import annotations

from datetime import date
from typing import Dict, Sequence

import asyncpg

from sessionpool.domain.streaks.ledger import ProfileRepository
from sessionpool.domain.streaks.models import Profile
from sessionpool.infra.postgres import affected_rows

_PROFILE_COLUMNS = "id, display_handle, streak, last_participation_date"


def _row_to_profile(row: asyncpg.Record) -> Profile:
    return Profile(
        user_id=str(row["id"]),
        display_handle=row["display_handle"],
        streak=int(row["streak"] or 0),
        last_participation_date=row["last_participation_date"],
    )


class PostgresProfileRepository(ProfileRepository):
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get_profile(self, user_id: str) -> Profile | None:
        row = await self._pool.fetchrow(
            f"SELECT {_PROFILE_COLUMNS} FROM profiles WHERE id = $1",
            user_id,
        )
        if row is None:
            return None
        return _row_to_profile(row)

    async def get_profiles(self, user_ids: Sequence[str]) -> Dict[str, Profile]:
        if not user_ids:
            return {}
        rows = await self._pool.fetch(
            f"SELECT {_PROFILE_COLUMNS} FROM profiles WHERE id = ANY($1::text[])",
            list(user_ids),
        )
        return {str(row["id"]): _row_to_profile(row) for row in rows}

    async def save_streak(self, user_id: str, streak: int, last_participation_date: date) -> None:
        await self._pool.execute(
            "UPDATE profiles SET streak = $2, last_participation_date = $3 WHERE id = $1",
            user_id,
            streak,
            last_participation_date,
        )

    async def reset_stale_streaks(self, before: date) -> int:
        status = await self._pool.execute(
            """
            UPDATE profiles
            SET streak = 0
            WHERE streak > 0 AND last_participation_date < $1
            """,
            before,
        )
        return affected_rows(status)
