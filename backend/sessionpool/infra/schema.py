"""Idempotent DDL for the session pool tables."""

from __future__ import annotations

import logging

import asyncpg

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        display_handle TEXT,
        streak INTEGER NOT NULL DEFAULT 0 CHECK (streak >= 0),
        last_participation_date DATE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        session_type TEXT NOT NULL,
        starts_at TIMESTAMPTZ NOT NULL,
        gate_duration_minutes INTEGER,
        duration_minutes INTEGER,
        status TEXT NOT NULL DEFAULT 'upcoming'
            CHECK (status IN ('upcoming', 'gate_open', 'matching', 'active', 'completed')),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_sessions_status_starts ON sessions (status, starts_at)",
    """
    CREATE TABLE IF NOT EXISTS session_participants (
        session_id TEXT NOT NULL REFERENCES sessions (id) ON DELETE CASCADE,
        user_id TEXT NOT NULL REFERENCES profiles (id) ON DELETE CASCADE,
        status TEXT NOT NULL DEFAULT 'waiting'
            CHECK (status IN ('waiting', 'matched', 'in_room', 'completed')),
        joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        PRIMARY KEY (session_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS groups (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL REFERENCES sessions (id) ON DELETE CASCADE,
        room_name TEXT NOT NULL UNIQUE,
        group_type TEXT NOT NULL CHECK (group_type IN ('matched', 'universal', 'lobby')),
        session_type TEXT NOT NULL,
        avg_streak INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS group_members (
        group_id TEXT NOT NULL REFERENCES groups (id) ON DELETE CASCADE,
        user_id TEXT NOT NULL REFERENCES profiles (id) ON DELETE CASCADE,
        position SMALLINT NOT NULL,
        PRIMARY KEY (group_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS instant_queue (
        user_id TEXT PRIMARY KEY REFERENCES profiles (id) ON DELETE CASCADE,
        session_type TEXT NOT NULL,
        joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
)


async def ensure_schema(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        async with conn.transaction():
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
    logger.info("schema_ready", extra={"tables": 6})
