"""Liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Tuple

from sessionpool.infra import postgres
from sessionpool.infra.redis import redis_client
from sessionpool.obs import metrics
from sessionpool.settings import settings

logger = logging.getLogger(__name__)

_REQUIRED_TABLES = ("sessions", "session_participants", "groups", "group_members", "profiles", "instant_queue")


async def _timed(name: str, probe: Callable[[], Awaitable[Any]], timeout: float) -> Tuple[Dict[str, Any], float | None]:
    started = perf_counter()
    try:
        detail = await asyncio.wait_for(probe(), timeout=timeout)
    except Exception as exc:
        logger.warning("readiness_probe_failed", extra={"probe": name}, exc_info=True)
        return {"ok": False, "error": str(exc) or type(exc).__name__}, None
    latency = perf_counter() - started
    state: Dict[str, Any] = {"ok": True, "latency_ms": round(latency * 1000, 2)}
    if isinstance(detail, dict):
        state.update(detail)
    return state, latency


async def _ping_redis() -> None:
    await redis_client.ping()


async def _check_postgres() -> Dict[str, Any]:
    pool = await postgres.get_pool()
    async with pool.acquire() as conn:
        present = await conn.fetchval(
            "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ANY($1::text[])",
            list(_REQUIRED_TABLES),
        )
    if int(present or 0) < len(_REQUIRED_TABLES):
        raise RuntimeError("schema_incomplete")
    return {"tables": int(present)}


async def liveness() -> Dict[str, Any]:
    return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
    redis_state, redis_latency = await _timed("redis", _ping_redis, 0.2)
    metrics.mark_redis(redis_state["ok"], latency_seconds=redis_latency)
    postgres_state, pg_latency = await _timed("postgres", _check_postgres, 0.5)
    metrics.mark_postgres(postgres_state["ok"], latency_seconds=pg_latency)

    # An unconfigured media backend degrades to local rooms; it never fails readiness.
    rooms_state = {"ok": True, "provider": "livekit" if settings.livekit_configured() else "memory"}
    ok = bool(redis_state["ok"] and postgres_state["ok"])
    payload = {
        "status": "ok" if ok else "degraded",
        "checks": {"redis": redis_state, "postgres": postgres_state, "rooms": rooms_state},
    }
    return (200 if ok else 503), payload
