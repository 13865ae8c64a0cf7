"""Outbox helpers for session lifecycle events.

The realtime layer tails these streams to push status changes to clients.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from sessionpool.infra.redis import redis_client

logger = logging.getLogger(__name__)

SESSION_EVENT_STREAM = "x:sessions.events"
GROUP_EVENT_STREAM = "x:groups.events"
QUEUE_EVENT_STREAM = "x:queue.events"

_STREAM_MAXLEN = 10_000


async def _append(stream: str, fields: dict[str, Any]) -> None:
    try:
        await redis_client.xadd(stream, fields, maxlen=_STREAM_MAXLEN, approximate=True)
    except Exception:
        # the status column stays the source of truth; a lost event only delays a push
        logger.warning("outbox_append_failed", extra={"stream": stream, "event": fields.get("event")}, exc_info=True)


async def append_session_event(
    event: str,
    session_id: str,
    *,
    status: str | None = None,
    meta: Mapping[str, Any] | None = None,
) -> None:
    fields: dict[str, Any] = {
        "event": event,
        "session_id": session_id,
    }
    if status:
        fields["status"] = status
    if meta:
        for key, value in meta.items():
            fields[f"meta_{key}"] = str(value)
    await _append(SESSION_EVENT_STREAM, fields)


async def append_group_event(
    event: str,
    *,
    session_id: str,
    group_id: str,
    room_name: str,
    user_ids: Sequence[str],
) -> None:
    fields: dict[str, Any] = {
        "event": event,
        "session_id": session_id,
        "group_id": group_id,
        "room_name": room_name,
        "user_ids": ",".join(user_ids),
    }
    await _append(GROUP_EVENT_STREAM, fields)


async def append_queue_event(event: str, user_id: str, *, session_type: str | None = None) -> None:
    fields: dict[str, Any] = {"event": event, "user_id": user_id}
    if session_type:
        fields["session_type"] = session_type
    await _append(QUEUE_EVENT_STREAM, fields)
