"""Exception handlers that render every error as ``{"detail": ..., "request_id": ...}``."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sessionpool.domain.errors import SessionPoolError
from sessionpool.obs.logging import current_request_id


def _error_response(
	request: Request,
	status_code: int,
	detail: Any,
	*,
	headers: Optional[dict] = None,
	**extra: Any,
) -> JSONResponse:
	request_id = getattr(request.state, "request_id", None) or current_request_id()
	content = {"detail": detail, "request_id": request_id, **extra}
	return JSONResponse(status_code=status_code, content=content, headers=headers)


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(SessionPoolError)
	async def domain_error_handler(request: Request, exc: SessionPoolError):  # type: ignore[override]
		return _error_response(request, exc.status_code, exc.code)

	@app.exception_handler(StarletteHTTPException)
	async def http_error_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		return _error_response(request, exc.status_code, exc.detail, headers=getattr(exc, "headers", None))

	@app.exception_handler(RequestValidationError)
	async def validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		return _error_response(request, 422, "validation_error", errors=jsonable_errors(exc))


def jsonable_errors(exc: RequestValidationError) -> list:
	# ctx may carry exception instances that json cannot encode
	return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]
