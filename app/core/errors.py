"""
Application error taxonomy.

Services raise these instead of HTTPException so they can be used outside a
request. The handler registered in app.main renders them as
{"error": ..., "hint": ...} with the matching status code.
"""
from typing import Optional
from fastapi import status


class AppError(Exception):
    """Base class for errors that are reported to the caller."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.hint:
            body["hint"] = self.hint
        return body


class NotFoundError(AppError):
    """Unknown page, custom mode, preset or subject."""
    status_code = status.HTTP_404_NOT_FOUND


class ValidationError(AppError):
    """Request is well-formed but not allowed by the catalog or grant rules."""
    status_code = status.HTTP_400_BAD_REQUEST


class AuthorizationConflictError(AppError):
    """Revoke blocked by another grant the subject holds."""
    status_code = status.HTTP_409_CONFLICT


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        message: str,
        hint: Optional[str] = None,
        required_permission: Optional[str] = None,
    ):
        super().__init__(message, hint)
        self.required_permission = required_permission

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.required_permission:
            body["requiredPermission"] = self.required_permission
        return body
