from datetime import datetime, timezone

import pytest

from sessionpool.domain.errors import ValidationError
from sessionpool.domain.matching import GroupType
from sessionpool.domain.rooms import InMemoryRoomProvider
from sessionpool.domain.sessions import InMemorySessionRepository, InstantMatcher, SessionStatus
from sessionpool.domain.sessions.models import ParticipantStatus
from sessionpool.domain.sessions.outbox import QUEUE_EVENT_STREAM
from sessionpool.domain.streaks import Profile

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _matcher(rooms: InMemoryRoomProvider | None = None):
    repo = InMemorySessionRepository()
    rooms = rooms or InMemoryRoomProvider()
    return InstantMatcher(repo, rooms), repo, rooms


async def _queue(matcher: InstantMatcher, repo: InMemorySessionRepository, users: dict[str, int]) -> None:
    for user_id, streak in users.items():
        repo.profiles.add(Profile(user_id=user_id, display_handle=user_id, streak=streak))
        await matcher.enqueue(user_id, "deep" if streak % 2 else "light")


@pytest.mark.asyncio
async def test_enqueue_defaults_session_type(fake_redis):
    matcher, repo, _ = _matcher()
    entry = await matcher.enqueue("u1")
    assert entry.session_type == "immerse"
    assert "u1" in repo.queue
    events = await fake_redis.xrange(QUEUE_EVENT_STREAM)
    assert events[-1][1]["event"] == "queue.joined"


@pytest.mark.asyncio
async def test_enqueue_rejects_blank_type():
    matcher, _, _ = _matcher()
    with pytest.raises(ValidationError):
        await matcher.enqueue("u1", "   ")


@pytest.mark.asyncio
async def test_dequeue_reports_removal():
    matcher, _, _ = _matcher()
    await matcher.enqueue("u1")
    assert await matcher.dequeue("u1") is True
    assert await matcher.dequeue("u1") is False


@pytest.mark.asyncio
async def test_sweep_with_fewer_than_two_users_does_nothing():
    matcher, repo, _ = _matcher()
    await _queue(matcher, repo, {"solo": 1})
    assert await matcher.sweep_instant_queue(NOW) == 0
    assert repo.sessions == {}
    assert "solo" in repo.queue


@pytest.mark.asyncio
async def test_sweep_buckets_everyone_together_and_creates_active_session():
    matcher, repo, rooms = _matcher()
    await _queue(matcher, repo, {"a": 1, "b": 2, "c": 3, "d": 4, "e": 5})

    matched = await matcher.sweep_instant_queue(NOW)

    assert matched == 5
    assert repo.queue == {}
    [session] = repo.sessions.values()
    assert session.status is SessionStatus.ACTIVE
    assert session.gate_duration_minutes == 0
    assert session.session_type == "instant"
    groups = repo.groups_for_session(session.id)
    assert [len(g.member_ids) for g in groups] == [3, 2]
    assert all(g.group_type is GroupType.MATCHED for g in groups)
    assert all(g.room_name.startswith(f"instant-{session.id}-") for g in groups)
    assert len(rooms.rooms) == 2
    statuses = {p.status for p in await repo.list_participants(session.id)}
    assert statuses == {ParticipantStatus.MATCHED}


@pytest.mark.asyncio
async def test_failed_room_keeps_users_queued():
    matcher, repo, rooms = _matcher(InMemoryRoomProvider(fail_rooms={"instant-"}))
    await _queue(matcher, repo, {"a": 1, "b": 1})

    assert await matcher.sweep_instant_queue(NOW) == 0
    assert set(repo.queue) == {"a", "b"}
