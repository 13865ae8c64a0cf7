"""Join credentials for group rooms."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from sessionpool import container
from sessionpool.domain.sessions import schemas
from sessionpool.infra.auth import AuthenticatedUser, get_current_user
from sessionpool.settings import settings

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.post("/token", response_model=schemas.RoomTokenResponse)
async def issue_room_token(
	payload: schemas.RoomTokenRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.RoomTokenResponse:
	token = await container.get_gate_manager().issue_room_token(auth_user.id, payload.room_name)
	return schemas.RoomTokenResponse(
		token=token.token,
		room_name=token.room_name,
		identity=token.identity,
		server_url=settings.livekit_url,
	)
