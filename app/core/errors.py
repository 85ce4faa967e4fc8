from __future__ import annotations

from fastapi import HTTPException, status


class AppError(HTTPException):
    """
    Business error raised from services.

    Subclasses HTTPException so FastAPI renders it as ``{"detail": reason}``
    without a custom handler, while callers and tests can still catch the
    specific kind.
    """

    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, reason: str):
        super().__init__(status_code=self.status_code_default, detail=reason)
        self.reason = reason


class BadRequest(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST


class InvalidState(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST


class Forbidden(AppError):
    status_code_default = status.HTTP_403_FORBIDDEN


class NotFound(AppError):
    status_code_default = status.HTTP_404_NOT_FOUND


class Conflict(AppError):
    status_code_default = status.HTTP_409_CONFLICT
