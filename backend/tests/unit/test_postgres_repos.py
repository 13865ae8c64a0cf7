from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest

from sessionpool.domain.matching import GroupType
from sessionpool.domain.sessions.models import GroupRecord, ParticipantStatus, SessionStatus
from sessionpool.infra.postgres import affected_rows
from sessionpool.infra.profiles_repo import PostgresProfileRepository
from sessionpool.infra.sessions_repo import PostgresSessionRepository


class _Transaction:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeConnection:
    def __init__(self) -> None:
        self.fetchrow = AsyncMock(return_value={"created_at": datetime(2026, 3, 10, tzinfo=timezone.utc)})
        self.executemany = AsyncMock()

    def transaction(self):
        return _Transaction()


class _Acquire:
    def __init__(self, conn: FakeConnection) -> None:
        self._conn = conn

    async def __aenter__(self):
        return self._conn

    async def __aexit__(self, *exc):
        return False


class FakePool:
    def __init__(self) -> None:
        self.conn = FakeConnection()
        self.execute = AsyncMock(return_value="UPDATE 1")
        self.fetch = AsyncMock(return_value=[])
        self.fetchrow = AsyncMock(return_value=None)

    def acquire(self):
        return _Acquire(self.conn)


def test_affected_rows_parses_command_tag():
    assert affected_rows("UPDATE 3") == 3
    assert affected_rows("DELETE 0") == 0
    assert affected_rows("garbage") == 0


@pytest.mark.asyncio
async def test_transition_status_is_conditional_update():
    pool = FakePool()
    repo = PostgresSessionRepository(pool)

    moved = await repo.transition_status("s1", (SessionStatus.UPCOMING, SessionStatus.GATE_OPEN), SessionStatus.MATCHING)

    assert moved is True
    sql, session_id, expected, target = pool.execute.await_args.args
    assert "status = ANY($2::text[])" in sql
    assert session_id == "s1"
    assert expected == ["upcoming", "gate_open"]
    assert target == "matching"


@pytest.mark.asyncio
async def test_transition_status_reports_lost_race():
    pool = FakePool()
    pool.execute.return_value = "UPDATE 0"
    repo = PostgresSessionRepository(pool)
    assert await repo.transition_status("s1", (SessionStatus.ACTIVE,), SessionStatus.COMPLETED) is False


@pytest.mark.asyncio
async def test_session_rows_fall_back_to_default_windows():
    pool = FakePool()
    pool.fetchrow.return_value = {
        "id": "s1",
        "name": "Evening",
        "session_type": "focus",
        "starts_at": datetime(2026, 3, 10, 18, tzinfo=timezone.utc),
        "gate_duration_minutes": None,
        "duration_minutes": None,
        "status": "gate_open",
        "created_at": None,
    }
    repo = PostgresSessionRepository(pool, default_gate_duration_minutes=5, default_duration_minutes=30)

    session = await repo.get_session("s1")

    assert session is not None
    assert session.gate_duration_minutes == 5
    assert session.duration_minutes == 30
    assert session.status is SessionStatus.GATE_OPEN


@pytest.mark.asyncio
async def test_insert_group_writes_members_in_one_transaction():
    pool = FakePool()
    repo = PostgresSessionRepository(pool)
    group = GroupRecord(
        id="g1",
        session_id="s1",
        room_name="session-s1-abcd1234",
        group_type=GroupType.MATCHED,
        session_type="focus",
        avg_streak=2,
        member_ids=["a", "b"],
    )

    stored = await repo.insert_group(group)

    assert stored.created_at is not None
    rows = pool.conn.executemany.await_args.args[1]
    assert rows == [("g1", "a", 0), ("g1", "b", 1)]


@pytest.mark.asyncio
async def test_set_participant_status_skips_empty_batch():
    pool = FakePool()
    repo = PostgresSessionRepository(pool)
    assert await repo.set_participant_status("s1", [], ParticipantStatus.MATCHED) == 0
    pool.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_reset_stale_streaks_returns_row_count():
    pool = FakePool()
    pool.execute.return_value = "UPDATE 4"
    repo = PostgresProfileRepository(pool)

    assert await repo.reset_stale_streaks(date(2026, 3, 9)) == 4
    sql, before = pool.execute.await_args.args
    assert "streak > 0" in sql
    assert before == date(2026, 3, 9)


@pytest.mark.asyncio
async def test_get_profile_resolves_null_streak():
    pool = FakePool()
    pool.fetchrow.return_value = {
        "id": "u1",
        "display_handle": None,
        "streak": None,
        "last_participation_date": None,
    }
    profile = await PostgresProfileRepository(pool).get_profile("u1")
    assert profile is not None
    assert profile.streak == 0
    assert profile.identity == "u1"
