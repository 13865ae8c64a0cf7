import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from sessionpool import container
from sessionpool.infra import postgres
from sessionpool.main import app
from sessionpool.settings import settings

CRON_SECRET = "test-cron-secret"


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from sessionpool.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	original_secret = settings.cron_secret
	settings.cron_secret = CRON_SECRET
	try:
		yield
	finally:
		settings.cron_secret = original_secret


@pytest.fixture
def memory_store():
	"""Fresh in-memory repositories wired into the container."""
	return container.reset_memory()


@pytest.fixture
def cron_headers():
	return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest_asyncio.fixture
async def api_client(memory_store):
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
