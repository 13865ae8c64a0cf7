"""Session waiting-list and manual close endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from sessionpool import container
from sessionpool.domain.errors import ConflictSkipped
from sessionpool.domain.sessions import schemas
from sessionpool.infra.auth import AuthenticatedUser, get_current_user, require_cron_secret

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("/{session_id}/join", response_model=schemas.JoinSessionResponse)
async def join_session(
	session_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.JoinSessionResponse:
	participant = await container.get_gate_manager().join_session(session_id, auth_user.id)
	return schemas.JoinSessionResponse(
		session_id=participant.session_id,
		user_id=participant.user_id,
		status=participant.status.value,
		joined_at=participant.joined_at,
	)


@router.post(
	"/{session_id}/close",
	response_model=schemas.CloseGateResponse,
	dependencies=[Depends(require_cron_secret)],
)
async def close_session_gate(session_id: str) -> schemas.CloseGateResponse:
	result = await container.get_gate_manager().close_gate(session_id)
	if result.skipped:
		raise ConflictSkipped("gate_already_closed", message=f"Session {session_id} is past its gate")
	return schemas.CloseGateResponse.from_result(result)
