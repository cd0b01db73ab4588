"""Standardized error payloads and the engine's business error taxonomy."""
from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status


def error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    *,
    kind: str | None = None,
) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if kind:
        payload["error"]["kind"] = kind
    if details:
        payload["error"]["details"] = details
    return payload


class EngineError(HTTPException):
    """Business rule violation raised by the matching/settlement services.

    Subclasses fix the error ``kind`` and HTTP status so routers can let the
    exception bubble up to the shared ``HTTPException`` handler untouched.
    """

    kind = "ENGINE_ERROR"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(
            status_code=self.http_status,
            detail=error_response(code, message, details, kind=self.kind),
        )

    def __str__(self) -> str:
        return f"{self.kind}[{self.code}]: {self.message}"


class ValidationError(EngineError):
    """Missing or malformed input."""

    kind = "VALIDATION_ERROR"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: str, message: str, *, fields: list[str] | None = None) -> None:
        super().__init__(code, message, {"fields": fields} if fields else None)
        self.fields = fields or []


class PreconditionFailed(EngineError):
    """A business rule forbids the action in the current state."""

    kind = "PRECONDITION_FAILED"
    http_status = status.HTTP_412_PRECONDITION_FAILED


class Conflict(EngineError):
    """Invariant violation: duplicate submission or a concurrent writer won."""

    kind = "CONFLICT"
    http_status = status.HTTP_409_CONFLICT


class NotFound(EngineError):
    kind = "NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND


class Unauthorized(EngineError):
    """Caller is not a party to the obligation they tried to act on."""

    kind = "UNAUTHORIZED"
    http_status = status.HTTP_403_FORBIDDEN


__all__ = [
    "error_response",
    "EngineError",
    "ValidationError",
    "PreconditionFailed",
    "Conflict",
    "NotFound",
    "Unauthorized",
]
