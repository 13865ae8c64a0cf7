"""Request identity helpers for FastAPI endpoints.

End-user identity arrives from the fronting gateway as ``X-User-Id``. Scheduler
calls present the shared cron secret as a bearer token.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sessionpool.obs.logging import bind_context
from sessionpool.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	handle: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_handle: Optional[str] = Header(default=None, alias="X-User-Handle"),
) -> AuthenticatedUser:
	user_id = (x_user_id or "").strip()
	if not user_id:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")
	bind_context(user_id=user_id)
	handle = (x_user_handle or "").strip() or None
	return AuthenticatedUser(id=user_id, handle=handle)


async def require_cron_secret(
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> None:
	"""Reject scheduler calls that do not carry ``Bearer <cron_secret>``.

	An empty configured secret rejects everything.
	"""
	expected = settings.cron_secret
	presented = credentials.credentials if credentials and credentials.scheme.lower() == "bearer" else ""
	if not expected or not secrets.compare_digest(presented.encode(), expected.encode()):
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")
