"""Error kinds raised by the session pool domain."""

from __future__ import annotations


class SessionPoolError(RuntimeError):
    status_code = 400

    def __init__(self, code: str, *, status_code: int | None = None, message: str | None = None) -> None:
        super().__init__(message or code)
        self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.detail = message or code


class NotFound(SessionPoolError):
    """A referenced session, profile or group does not exist."""

    status_code = 404


class ConflictSkipped(SessionPoolError):
    """A conditional update observed an unexpected prior state."""

    status_code = 409


class DownstreamFailure(SessionPoolError):
    """The room provider or the store failed for one unit of work."""

    status_code = 502


class ValidationError(SessionPoolError):
    status_code = 400
