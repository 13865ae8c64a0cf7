from datetime import datetime, timedelta, timezone

from sessionpool.domain.sessions.models import (
    ALLOWED_TRANSITIONS,
    Session,
    SessionStatus,
    sources_for,
)


def test_every_status_has_a_transition_entry():
    assert set(ALLOWED_TRANSITIONS) == set(SessionStatus)


def test_transitions_never_regress():
    for source, targets in ALLOWED_TRANSITIONS.items():
        for target in targets:
            assert target.rank > source.rank


def test_completed_is_terminal():
    assert not any(SessionStatus.COMPLETED.can_transition_to(status) for status in SessionStatus)


def test_sources_for_matching():
    assert sources_for(SessionStatus.MATCHING) == (SessionStatus.UPCOMING, SessionStatus.GATE_OPEN)
    assert sources_for(SessionStatus.ACTIVE) == (SessionStatus.MATCHING,)


def test_session_windows():
    starts = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
    session = Session(
        id="s1",
        name="Morning",
        session_type="focus",
        starts_at=starts,
        gate_duration_minutes=5,
        duration_minutes=30,
        status=SessionStatus.GATE_OPEN,
    )
    assert session.gate_closes_at == starts + timedelta(minutes=5)
    assert session.ends_at == starts + timedelta(minutes=35)
    assert not session.gate_due(starts + timedelta(minutes=4))
    assert session.gate_due(starts + timedelta(minutes=5))
    assert session.expired(starts + timedelta(minutes=35))
