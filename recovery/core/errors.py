"""
Exception hierarchy for the recovery service.

Rule: every error carries a machine-readable `code` string so callers
can branch on it without parsing English messages.

Storage errors (SaveFailed, FetchFailed, DataIntegrity, MigrationFailed)
are raised inside the persistence layer and caught at the reconciliation
boundary, where they are logged and returned inside a PersistResult.
Only the HTTP layer turns them into responses.
"""
from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class RecoveryError(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class SaveFailedError(RecoveryError):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "SAVE_FAILED"

    def __init__(self, operation: str, reason: str):
        super().__init__(
            message=f"Could not persist '{operation}': {reason}",
            details={"operation": operation, "reason": reason},
        )


class FetchFailedError(RecoveryError):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "FETCH_FAILED"

    def __init__(self, operation: str, reason: str):
        super().__init__(
            message=f"Could not read storage during '{operation}': {reason}",
            details={"operation": operation, "reason": reason},
        )


class DataIntegrityError(RecoveryError):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "DATA_INTEGRITY_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, details=details)


class MigrationFailedError(RecoveryError):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "MIGRATION_FAILED"

    def __init__(self, from_version: int, to_version: int, reason: str):
        super().__init__(
            message=f"Schema migration {from_version} -> {to_version} failed: {reason}",
            details={
                "from_version": from_version,
                "to_version": to_version,
                "reason": reason,
            },
        )


class RecordMissingError(RecoveryError):
    http_status = status.HTTP_404_NOT_FOUND
    code = "RECORD_MISSING"

    def __init__(self, operation: str):
        super().__init__(
            message=f"No tracking record exists; '{operation}' was applied in memory only.",
            details={"operation": operation},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def recovery_exception_handler(request: Request, exc: RecoveryError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
