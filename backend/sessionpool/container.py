"""Service container wiring repositories, the room provider and lifecycle services."""

from __future__ import annotations

import logging
from typing import Optional

import asyncpg

from sessionpool.domain.rooms.provider import InMemoryRoomProvider, RoomProvider
from sessionpool.domain.sessions.gate import GateManager
from sessionpool.domain.sessions.instant import InstantMatcher
from sessionpool.domain.sessions.repository import InMemorySessionRepository, SessionRepository
from sessionpool.domain.streaks.ledger import InMemoryProfileRepository, ProfileRepository, StreakLedger
from sessionpool.infra.livekit import LiveKitRoomProvider
from sessionpool.infra.profiles_repo import PostgresProfileRepository
from sessionpool.infra.sessions_repo import PostgresSessionRepository
from sessionpool.settings import settings

logger = logging.getLogger(__name__)

_profiles: ProfileRepository = InMemoryProfileRepository()
_sessions: SessionRepository = InMemorySessionRepository(_profiles)
_rooms: RoomProvider = InMemoryRoomProvider()
_gate_manager: GateManager
_instant_matcher: InstantMatcher
_streak_ledger: StreakLedger


def build_room_provider() -> RoomProvider:
    """LiveKit when credentials are configured, otherwise a local in-memory provider."""
    if not settings.livekit_configured():
        logger.warning("livekit_not_configured", extra={"provider": "memory"})
        return InMemoryRoomProvider()
    return LiveKitRoomProvider(
        url=settings.livekit_url or "",
        api_key=settings.livekit_api_key or "",
        api_secret=settings.livekit_api_secret or "",
        empty_timeout_seconds=settings.livekit_empty_timeout_seconds,
        token_ttl_minutes=settings.livekit_token_ttl_minutes,
        request_timeout=settings.livekit_request_timeout,
    )


def configure(
    *,
    sessions: Optional[SessionRepository] = None,
    profiles: Optional[ProfileRepository] = None,
    rooms: Optional[RoomProvider] = None,
) -> None:
    global _sessions, _profiles, _rooms, _gate_manager, _instant_matcher, _streak_ledger
    if profiles is not None:
        _profiles = profiles
    if sessions is not None:
        _sessions = sessions
    if rooms is not None:
        _rooms = rooms
    _gate_manager = GateManager(
        _sessions,
        _rooms,
        profiles=_profiles,
        lobby_capacity=settings.lobby_room_capacity,
    )
    _instant_matcher = InstantMatcher(
        _sessions,
        _rooms,
        session_type=settings.instant_session_type,
        session_name=settings.instant_session_name,
        duration_minutes=settings.instant_duration_minutes,
        default_queue_type=settings.default_join_session_type,
    )
    _streak_ledger = StreakLedger(_profiles, _sessions)


def configure_postgres(pool: asyncpg.Pool, *, rooms: Optional[RoomProvider] = None) -> None:
    profiles = PostgresProfileRepository(pool)
    sessions = PostgresSessionRepository(
        pool,
        default_gate_duration_minutes=settings.default_gate_duration_minutes,
        default_duration_minutes=settings.default_duration_minutes,
    )
    configure(sessions=sessions, profiles=profiles, rooms=rooms or build_room_provider())


def reset_memory() -> InMemorySessionRepository:
    """Swap in fresh in-memory repositories and provider; returns the session repository."""
    profiles = InMemoryProfileRepository()
    sessions = InMemorySessionRepository(profiles)
    configure(sessions=sessions, profiles=profiles, rooms=InMemoryRoomProvider())
    return sessions


def get_session_repository() -> SessionRepository:
    return _sessions


def get_profile_repository() -> ProfileRepository:
    return _profiles


def get_room_provider() -> RoomProvider:
    return _rooms


def get_gate_manager() -> GateManager:
    return _gate_manager


def get_instant_matcher() -> InstantMatcher:
    return _instant_matcher


def get_streak_ledger() -> StreakLedger:
    return _streak_ledger


configure()
