from sessionpool import container
from sessionpool.domain.rooms import InMemoryRoomProvider
from sessionpool.domain.sessions import InMemorySessionRepository
from sessionpool.infra.livekit import LiveKitRoomProvider
from sessionpool.settings import settings


def test_reset_memory_rewires_services():
    repo = container.reset_memory()
    assert isinstance(repo, InMemorySessionRepository)
    assert container.get_session_repository() is repo
    assert container.get_profile_repository() is repo.profiles
    assert isinstance(container.get_room_provider(), InMemoryRoomProvider)


def test_room_provider_falls_back_without_credentials(monkeypatch):
    monkeypatch.setattr(settings, "livekit_url", None)
    assert isinstance(container.build_room_provider(), InMemoryRoomProvider)


def test_room_provider_uses_livekit_when_configured(monkeypatch):
    monkeypatch.setattr(settings, "livekit_url", "wss://lk.example.test")
    monkeypatch.setattr(settings, "livekit_api_key", "key")
    monkeypatch.setattr(settings, "livekit_api_secret", "secret")
    provider = container.build_room_provider()
    assert isinstance(provider, LiveKitRoomProvider)
    assert provider.url == "wss://lk.example.test"
