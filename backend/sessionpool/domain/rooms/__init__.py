"""Room provider contract and local implementation."""

from sessionpool.domain.rooms.provider import InMemoryRoomProvider, RoomHandle, RoomProvider, RoomToken

__all__ = ["InMemoryRoomProvider", "RoomHandle", "RoomProvider", "RoomToken"]
