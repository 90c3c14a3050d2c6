"""Error types shared by the web layer and the services.

Every ApiError carries the HTTP status it maps to; the application's exception
handlers render it as an ErrorResponse.
"""
from __future__ import annotations

from typing import Optional


class ApiError(Exception):
    """Base error with an HTTP status and a client-safe message."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class DecodeError(ApiError):
    """Request body or query string could not be decoded."""

    status_code = 400

    def __init__(self, message: str, fields: Optional[dict[str, str]] = None) -> None:
        super().__init__(message)
        self.fields = fields or {}


class RouteKeyError(ApiError):
    """A path parameter was missing or malformed."""

    status_code = 400

    def __init__(self, key: str) -> None:
        super().__init__(f"invalid route key: {key}")
        self.key = key


class UnauthorizedError(ApiError):
    status_code = 401


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    status_code = 409


class ForbiddenError(ApiError):
    status_code = 403
