"""Room provider contract: conferencing rooms backing matched groups."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol


@dataclass(frozen=True, slots=True)
class RoomHandle:
    name: str
    capacity: int
    duration_minutes: int
    sid: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class RoomToken:
    token: str
    room_name: str
    identity: str


class RoomProvider(Protocol):
    async def create_room(self, name: str, duration_minutes: int, capacity: int) -> RoomHandle:
        ...

    async def issue_token(self, user_id: str, room_name: str, identity: str) -> RoomToken:
        ...

    async def delete_room(self, name: str) -> None:
        ...


@dataclass
class InMemoryRoomProvider(RoomProvider):
    """Records rooms locally; used in tests and when no media backend is configured."""

    rooms: Dict[str, RoomHandle] = field(default_factory=dict)
    deleted: List[str] = field(default_factory=list)
    fail_rooms: set[str] = field(default_factory=set)

    async def create_room(self, name: str, duration_minutes: int, capacity: int) -> RoomHandle:
        if any(name.startswith(prefix) for prefix in self.fail_rooms):
            raise RuntimeError(f"room creation refused for {name}")
        handle = RoomHandle(
            name=name,
            capacity=capacity,
            duration_minutes=duration_minutes,
            sid=f"RM_{len(self.rooms) + 1}",
            created_at=datetime.now(timezone.utc),
        )
        self.rooms[name] = handle
        return handle

    async def issue_token(self, user_id: str, room_name: str, identity: str) -> RoomToken:
        return RoomToken(token=f"local:{room_name}:{user_id}", room_name=room_name, identity=identity)

    async def delete_room(self, name: str) -> None:
        self.rooms.pop(name, None)
        self.deleted.append(name)
