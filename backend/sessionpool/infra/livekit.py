"""LiveKit-backed room provider built on the ``livekit-api`` server SDK."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from livekit import api

from sessionpool.domain.rooms.provider import RoomHandle, RoomProvider, RoomToken


def http_base_url(url: str) -> str:
	"""Map a ``ws(s)://`` signalling URL to its ``http(s)://`` API base."""
	if url.startswith("wss://"):
		url = "https://" + url[len("wss://"):]
	elif url.startswith("ws://"):
		url = "http://" + url[len("ws://"):]
	return url.rstrip("/")


@dataclass
class LiveKitRoomProvider(RoomProvider):
	url: str
	api_key: str
	api_secret: str
	empty_timeout_seconds: int = 300
	token_ttl_minutes: int = 120
	request_timeout: float = 5.0
	client: Optional[Any] = None

	def _api(self) -> Any:
		# The SDK opens its aiohttp session on construction, so build it inside the loop.
		if self.client is None:
			self.client = api.LiveKitAPI(http_base_url(self.url), self.api_key, self.api_secret)
		return self.client

	async def create_room(self, name: str, duration_minutes: int, capacity: int) -> RoomHandle:
		request = api.CreateRoomRequest(
			name=name,
			empty_timeout=self.empty_timeout_seconds,
			max_participants=capacity,
			metadata=json.dumps({"durationMinutes": duration_minutes}),
		)
		room = await asyncio.wait_for(self._api().room.create_room(request), timeout=self.request_timeout)
		created = getattr(room, "creation_time", 0)
		return RoomHandle(
			name=room.name or name,
			capacity=int(room.max_participants or capacity),
			duration_minutes=duration_minutes,
			sid=room.sid or None,
			created_at=datetime.fromtimestamp(int(created), tz=timezone.utc) if created else None,
		)

	async def issue_token(self, user_id: str, room_name: str, identity: str) -> RoomToken:
		token = (
			api.AccessToken(self.api_key, self.api_secret)
			.with_identity(identity)
			.with_name(identity)
			.with_metadata(json.dumps({"userId": user_id}))
			.with_ttl(timedelta(minutes=self.token_ttl_minutes))
			.with_grants(
				api.VideoGrants(
					room_join=True,
					room=room_name,
					can_publish=True,
					can_subscribe=True,
				)
			)
			.to_jwt()
		)
		return RoomToken(token=token, room_name=room_name, identity=identity)

	async def delete_room(self, name: str) -> None:
		await asyncio.wait_for(
			self._api().room.delete_room(api.DeleteRoomRequest(room=name)),
			timeout=self.request_timeout,
		)

	async def aclose(self) -> None:
		if self.client is not None:
			await self.client.aclose()
			self.client = None
