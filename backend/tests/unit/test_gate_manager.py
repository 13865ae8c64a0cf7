from datetime import datetime, timedelta, timezone

import pytest

from sessionpool.domain.errors import NotFound, SessionPoolError, ValidationError
from sessionpool.domain.matching import GroupType
from sessionpool.domain.rooms import InMemoryRoomProvider
from sessionpool.domain.sessions import GateManager, InMemorySessionRepository, Session, SessionStatus
from sessionpool.domain.sessions.models import ParticipantStatus
from sessionpool.domain.sessions.outbox import GROUP_EVENT_STREAM, SESSION_EVENT_STREAM
from sessionpool.domain.streaks import Profile

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def _session(session_id: str = "s1", status: SessionStatus = SessionStatus.UPCOMING, **overrides) -> Session:
    fields = dict(
        id=session_id,
        name="Morning focus",
        session_type="focus",
        starts_at=NOW,
        gate_duration_minutes=5,
        duration_minutes=30,
        status=status,
    )
    fields.update(overrides)
    return Session(**fields)


async def _setup(*sessions: Session, rooms: InMemoryRoomProvider | None = None, repo=None):
    repo = repo or InMemorySessionRepository()
    for session in sessions:
        await repo.insert_session(session)
    rooms = rooms or InMemoryRoomProvider()
    manager = GateManager(repo, rooms, profiles=repo.profiles)
    return manager, repo, rooms


async def _add_waiting(repo: InMemorySessionRepository, session_id: str, streaks: dict[str, int]) -> None:
    for user_id, streak in streaks.items():
        repo.profiles.add(Profile(user_id=user_id, display_handle=f"@{user_id}", streak=streak))
        await repo.upsert_participant(session_id, user_id, ParticipantStatus.WAITING)


@pytest.mark.asyncio
async def test_open_gate_moves_upcoming_to_gate_open(fake_redis):
    manager, repo, _ = await _setup(_session())
    assert await manager.open_gate("s1") is True
    assert repo.sessions["s1"].status is SessionStatus.GATE_OPEN
    events = await fake_redis.xrange(SESSION_EVENT_STREAM)
    assert events[-1][1]["status"] == "gate_open"


@pytest.mark.asyncio
async def test_open_gate_is_noop_when_not_upcoming():
    manager, repo, _ = await _setup(_session(status=SessionStatus.ACTIVE))
    assert await manager.open_gate("s1") is False
    assert repo.sessions["s1"].status is SessionStatus.ACTIVE


@pytest.mark.asyncio
async def test_open_due_gates_only_opens_started_sessions():
    manager, repo, _ = await _setup(
        _session("due"),
        _session("later", starts_at=NOW + timedelta(hours=1)),
        _session("open", status=SessionStatus.GATE_OPEN),
    )
    result = await manager.open_due_gates(NOW)
    assert result.processed == ["due"]
    assert result.ok
    assert repo.sessions["later"].status is SessionStatus.UPCOMING


@pytest.mark.asyncio
async def test_close_gate_without_waiting_completes_session():
    manager, repo, rooms = await _setup(_session(status=SessionStatus.GATE_OPEN))
    result = await manager.close_gate("s1")
    assert result.match.is_empty()
    assert result.groups == []
    assert not result.skipped
    assert repo.sessions["s1"].status is SessionStatus.COMPLETED
    assert rooms.rooms == {}


@pytest.mark.asyncio
async def test_close_gate_unknown_session_raises_not_found():
    manager, _, _ = await _setup()
    with pytest.raises(NotFound):
        await manager.close_gate("missing")


@pytest.mark.asyncio
async def test_close_gate_rejects_session_without_type():
    manager, repo, _ = await _setup(_session(status=SessionStatus.GATE_OPEN, session_type=""))
    with pytest.raises(ValidationError):
        await manager.close_gate("s1")
    assert repo.sessions["s1"].status is SessionStatus.GATE_OPEN


@pytest.mark.asyncio
async def test_close_gate_creates_groups_rooms_and_activates(fake_redis):
    manager, repo, rooms = await _setup(_session(status=SessionStatus.GATE_OPEN))
    await _add_waiting(repo, "s1", {"a": 5, "b": 4, "c": 3, "d": 2, "e": 1})

    result = await manager.close_gate("s1")

    assert [len(g.member_ids) for g in result.groups] == [3, 2]
    assert result.groups[0].member_ids == ["a", "b", "c"]
    assert all(g.group_type is GroupType.MATCHED for g in result.groups)
    assert all(g.room_name.startswith("session-s1-") for g in result.groups)
    assert [rooms.rooms[g.room_name].capacity for g in result.groups] == [3, 2]
    assert all(rooms.rooms[g.room_name].duration_minutes == 30 for g in result.groups)
    assert repo.sessions["s1"].status is SessionStatus.ACTIVE
    statuses = {p.user_id: p.status for p in await repo.list_participants("s1")}
    assert set(statuses.values()) == {ParticipantStatus.MATCHED}
    assert len(await fake_redis.xrange(GROUP_EVENT_STREAM)) == 2


@pytest.mark.asyncio
async def test_close_gate_single_waiting_user_gets_lobby_room():
    manager, repo, rooms = await _setup(_session(status=SessionStatus.GATE_OPEN))
    await _add_waiting(repo, "s1", {"solo": 2})

    result = await manager.close_gate("s1")

    assert len(result.groups) == 1
    lobby = result.groups[0]
    assert lobby.group_type is GroupType.LOBBY
    assert lobby.member_ids == ["solo"]
    assert lobby.room_name.startswith("lobby-s1-")
    assert rooms.rooms[lobby.room_name].capacity == 3
    participant = (await repo.list_participants("s1"))[0]
    assert participant.status is ParticipantStatus.MATCHED
    assert repo.sessions["s1"].status is SessionStatus.ACTIVE


@pytest.mark.asyncio
async def test_close_gate_twice_is_skipped():
    manager, repo, rooms = await _setup(_session(status=SessionStatus.GATE_OPEN))
    await _add_waiting(repo, "s1", {"a": 1, "b": 1})
    await manager.close_gate("s1")

    second = await manager.close_gate("s1")

    assert second.skipped is True
    assert len(rooms.rooms) == 1
    assert len(repo.groups) == 1


@pytest.mark.asyncio
async def test_room_failure_is_isolated_per_group():
    rooms = InMemoryRoomProvider(fail_rooms={"lobby-"})
    manager, repo, _ = await _setup(_session(status=SessionStatus.GATE_OPEN), rooms=rooms)
    await _add_waiting(repo, "s1", {"a": 3})
    await repo.insert_session(_session("s2", status=SessionStatus.GATE_OPEN))
    await _add_waiting(repo, "s2", {"b": 1, "c": 1})

    solo = await manager.close_gate("s1")
    assert solo.partial
    assert solo.failures[0].stage == "room"
    assert solo.failures[0].user_ids == ("a",)
    assert repo.sessions["s1"].status is SessionStatus.ACTIVE
    assert (await repo.list_participants("s1"))[0].status is ParticipantStatus.WAITING

    pair = await manager.close_gate("s2")
    assert not pair.partial
    assert len(pair.groups) == 1


class FlakyGroupRepository(InMemorySessionRepository):
    def __init__(self) -> None:
        super().__init__()
        self.insert_calls = 0

    async def insert_group(self, group):
        self.insert_calls += 1
        if self.insert_calls == 1:
            raise RuntimeError("write failed")
        return await super().insert_group(group)


@pytest.mark.asyncio
async def test_persist_failure_deletes_room_and_continues():
    repo = FlakyGroupRepository()
    manager, repo, rooms = await _setup(_session(status=SessionStatus.GATE_OPEN), repo=repo)
    await _add_waiting(repo, "s1", {"a": 4, "b": 4, "c": 1, "d": 1})

    result = await manager.close_gate("s1")

    assert [f.stage for f in result.failures] == ["persist"]
    assert result.failures[0].user_ids == ("a", "b")
    assert len(result.groups) == 1
    assert result.groups[0].member_ids == ["c", "d"]
    assert len(rooms.deleted) == 1
    assert rooms.deleted[0] not in rooms.rooms
    statuses = {p.user_id: p.status for p in await repo.list_participants("s1")}
    assert statuses["a"] is ParticipantStatus.WAITING
    assert statuses["c"] is ParticipantStatus.MATCHED


@pytest.mark.asyncio
async def test_close_due_gates_reports_failures_without_aborting():
    manager, repo, _ = await _setup(
        _session("due", status=SessionStatus.GATE_OPEN),
        _session("early", status=SessionStatus.GATE_OPEN, starts_at=NOW + timedelta(minutes=3)),
        _session("broken", status=SessionStatus.GATE_OPEN, session_type=""),
    )
    await _add_waiting(repo, "due", {"a": 1, "b": 2})

    result = await manager.close_due_gates(NOW + timedelta(minutes=5))

    assert result.processed == ["due"]
    assert result.failures == {"broken": "session_type_missing"}
    assert repo.sessions["early"].status is SessionStatus.GATE_OPEN
    assert repo.sessions["due"].status is SessionStatus.ACTIVE


@pytest.mark.asyncio
async def test_complete_expired_sessions_marks_participants():
    manager, repo, _ = await _setup(
        _session("old", status=SessionStatus.ACTIVE),
        _session("fresh", status=SessionStatus.ACTIVE, starts_at=NOW + timedelta(minutes=30)),
    )
    await repo.upsert_participant("old", "a", ParticipantStatus.MATCHED)
    await repo.upsert_participant("old", "b", ParticipantStatus.WAITING)

    result = await manager.complete_expired_sessions(NOW + timedelta(minutes=35))

    assert result.processed == ["old"]
    assert repo.sessions["old"].status is SessionStatus.COMPLETED
    assert repo.sessions["fresh"].status is SessionStatus.ACTIVE
    assert {p.status for p in await repo.list_participants("old")} == {ParticipantStatus.COMPLETED}


@pytest.mark.asyncio
async def test_join_session_requires_open_gate():
    manager, repo, _ = await _setup(_session("open", status=SessionStatus.GATE_OPEN), _session("soon"))
    participant = await manager.join_session("open", "u1")
    assert participant.status is ParticipantStatus.WAITING
    with pytest.raises(ValidationError):
        await manager.join_session("soon", "u1")
    with pytest.raises(NotFound):
        await manager.join_session("missing", "u1")


@pytest.mark.asyncio
async def test_issue_room_token_checks_membership():
    manager, repo, _ = await _setup(_session(status=SessionStatus.GATE_OPEN))
    await _add_waiting(repo, "s1", {"a": 1, "b": 1})
    result = await manager.close_gate("s1")
    room_name = result.groups[0].room_name

    token = await manager.issue_room_token("a", room_name)
    assert token.identity == "@a"
    assert token.room_name == room_name

    with pytest.raises(SessionPoolError) as excinfo:
        await manager.issue_room_token("stranger", room_name)
    assert excinfo.value.status_code == 403
    with pytest.raises(NotFound):
        await manager.issue_room_token("a", "session-nope")


class FailOnceCompletionRepository(InMemorySessionRepository):
    def __init__(self) -> None:
        super().__init__()
        self.complete_calls = 0

    async def complete_participants(self, session_id):
        self.complete_calls += 1
        if self.complete_calls == 1:
            raise RuntimeError("write failed")
        return await super().complete_participants(session_id)


@pytest.mark.asyncio
async def test_failed_participant_completion_keeps_session_active_for_retry():
    manager, repo, _ = await _setup(_session("old", status=SessionStatus.ACTIVE), repo=FailOnceCompletionRepository())
    await repo.upsert_participant("old", "a", ParticipantStatus.MATCHED)
    later = NOW + timedelta(minutes=35)

    first = await manager.complete_expired_sessions(later)
    assert first.processed == []
    assert first.failures == {"old": "RuntimeError"}
    assert repo.sessions["old"].status is SessionStatus.ACTIVE

    second = await manager.complete_expired_sessions(later)
    assert second.processed == ["old"]
    assert repo.sessions["old"].status is SessionStatus.COMPLETED
    assert {p.status for p in await repo.list_participants("old")} == {ParticipantStatus.COMPLETED}


class BrokenWaitingListRepository(InMemorySessionRepository):
    async def list_waiting(self, session_id):
        raise RuntimeError("read failed")


@pytest.mark.asyncio
async def test_store_failure_after_matching_started_is_reported_as_stranded():
    manager, repo, _ = await _setup(
        _session("stuck", status=SessionStatus.GATE_OPEN),
        repo=BrokenWaitingListRepository(),
    )

    result = await manager.close_due_gates(NOW + timedelta(minutes=5))

    assert result.processed == []
    assert result.failures == {"stuck": "stranded_matching"}
    assert repo.sessions["stuck"].status is SessionStatus.MATCHING
