"""Booking error taxonomy

Services raise these directly (they are HTTPExceptions) so routers stay thin.
Every error carries a structured detail: {"error": kind, "message": ..., **metadata}.
"""

from typing import Any, Optional

from fastapi import HTTPException


class ClinicError(HTTPException):
    kind = "error"
    default_status = 400

    def __init__(self, message: str, status_code: Optional[int] = None, **metadata: Any):
        self.message = message
        self.metadata = metadata
        detail = {"error": self.kind, "message": message, **metadata}
        super().__init__(status_code=status_code or self.default_status, detail=detail)

    def __str__(self) -> str:
        return self.message


class ValidationError(ClinicError):
    """Bad input (date, slot, hours, HMO). Nothing was mutated."""

    kind = "validation_error"
    default_status = 422

    def __init__(self, message: str, field: Optional[str] = None, **metadata: Any):
        self.field = field
        super().__init__(message, field=field, **metadata)


class CapacityError(ClinicError):
    kind = "capacity_error"
    default_status = 422

    def __init__(self, message: str, full_at: str, **metadata: Any):
        self.full_at = full_at
        super().__init__(message, full_at=full_at, **metadata)


class AuthorizationError(ClinicError):
    kind = "authorization_error"
    default_status = 403

    def __init__(
        self,
        message: str,
        block_type: Optional[str] = None,
        block_reason: Optional[str] = None,
        **metadata: Any,
    ):
        self.block_type = block_type
        self.block_reason = block_reason
        super().__init__(message, block_type=block_type, block_reason=block_reason, **metadata)


class StateConflictError(ClinicError):
    kind = "state_conflict"
    default_status = 409


class NotFoundError(ClinicError):
    kind = "not_found"
    default_status = 404
