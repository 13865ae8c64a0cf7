"""Instant queue membership for the calling user."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status

from sessionpool import container
from sessionpool.domain.sessions import schemas
from sessionpool.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/queue", tags=["queue"])


@router.post("", response_model=schemas.QueueEntryResponse, status_code=status.HTTP_201_CREATED)
async def join_queue(
	payload: Optional[schemas.QueueJoinRequest] = None,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.QueueEntryResponse:
	session_type = payload.session_type if payload else None
	entry = await container.get_instant_matcher().enqueue(auth_user.id, session_type)
	return schemas.QueueEntryResponse(
		user_id=entry.user_id,
		session_type=entry.session_type,
		joined_at=entry.joined_at,
	)


@router.delete("", response_model=schemas.QueueLeaveResponse)
async def leave_queue(auth_user: AuthenticatedUser = Depends(get_current_user)) -> schemas.QueueLeaveResponse:
	removed = await container.get_instant_matcher().dequeue(auth_user.id)
	return schemas.QueueLeaveResponse(removed=removed)
