"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from sessionpool import container
from sessionpool.api import cron, ops, queue, rooms, sessions
from sessionpool.api.errors import install_error_handlers
from sessionpool.infra import postgres
from sessionpool.infra.livekit import LiveKitRoomProvider
from sessionpool.infra.redis import close_redis
from sessionpool.infra.schema import ensure_schema
from sessionpool.obs import init as obs_init

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	pool = await postgres.init_pool()
	await ensure_schema(pool)
	provider = container.build_room_provider()
	container.configure_postgres(pool, rooms=provider)
	logger.info("startup_complete", extra={"rooms": type(container.get_room_provider()).__name__})
	try:
		yield
	finally:
		if isinstance(provider, LiveKitRoomProvider):
			await provider.aclose()
		await postgres.close_pool()
		await close_redis()


app = FastAPI(title="Session Pool", lifespan=lifespan)

install_error_handlers(app)
obs_init(app)

app.include_router(sessions.router, tags=["sessions"])
app.include_router(queue.router, tags=["queue"])
app.include_router(rooms.router, tags=["rooms"])
app.include_router(cron.router, tags=["cron"])
app.include_router(ops.router, tags=["ops"])
