"""
===============================================================================
MODULE: Typed errors for warden
===============================================================================

Goal
----
Give callers errors that distinguish "not found", "ambiguous", "backend
unavailable" and "internal contract violation" without inspecting
backend-specific detail. Every error carries:
- a stable error_code
- an error_id for log correlation
- a human message (never secrets)

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Component:
  WardenError + subclasses

Responsibilities:
  - Standardize driver/store errors per operation class (get/create/update/
    delete/connect)
  - Keep the wrapped backend exception reachable (original_error / __cause__)

Collaborators:
  - infrastructure/drivers/*: raise these errors
  - application/*: let them propagate to the embedding application
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class ErrorResponse:
    """Minimal error shape for embedding applications that need to serialize errors."""

    error_code: str
    message: str
    error_id: str

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "error_id": self.error_id,
        }


class WardenError(Exception):
    """
    Base for every error raised by warden.

    Attributes:
        message: human readable message
        error_id: correlation id (also logged)
        original_error: wrapped backend exception, when there is one
    """

    error_code: str = "WARDEN_ERROR"

    def __init__(
        self,
        message: str,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error_code=self.error_code, message=self.message, error_id=self.error_id
        )


# =============================================================================
# Backend / contract errors
# =============================================================================


class DriverError(WardenError):
    """Storage backend failure (connection, query, timeout, pool)."""

    error_code: str = "DRIVER_ERROR"


class InternalError(WardenError):
    """The backend returned something the contract does not allow."""

    error_code: str = "INTERNAL_ERROR"


class HashError(WardenError):
    """Password hashing failed."""

    error_code: str = "HASH_ERROR"


class MigrationError(WardenError):
    """Migration files or the migration batch are invalid."""

    error_code: str = "MIGRATION_ERROR"


# =============================================================================
# Connection lifecycle
# =============================================================================


class ConnectionStateError(WardenError):
    """Base for lifecycle misuse (connect/disconnect out of order)."""

    error_code: str = "CONNECTION_STATE_ERROR"


class AlreadyConnectedError(ConnectionStateError):
    """connect() was called on a driver that is already connected."""

    error_code: str = "ALREADY_CONNECTED"


class NotConnectedError(ConnectionStateError):
    """disconnect() or a data operation was called without a live connection."""

    error_code: str = "NOT_CONNECTED"


# =============================================================================
# Arity errors (operations that must affect exactly one row)
# =============================================================================


class RecordCountError(WardenError):
    """
    An operation that should touch exactly one record touched a different number.

    `operation` names the driver operation; `count` is the observed row count
    when the backend reports one (None when it is unknown, e.g. limit-capped).
    """

    error_code: str = "RECORD_COUNT_ERROR"

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        count: int | None = None,
        error_id: str | None = None,
    ):
        self.operation = operation
        self.count = count
        super().__init__(message, error_id=error_id)


class NotFoundError(RecordCountError):
    """Zero records matched."""

    error_code: str = "NOT_FOUND"


class AmbiguousMatchError(RecordCountError):
    """More than one record matched."""

    error_code: str = "AMBIGUOUS_MATCH"


class TooFewRecordsError(NotFoundError):
    error_code: str = "TOO_FEW_RECORDS"


class TooManyRecordsError(AmbiguousMatchError):
    error_code: str = "TOO_MANY_RECORDS"


class CreatedTooFewRecordsError(RecordCountError):
    """INSERT ... RETURNING produced no row (or the referenced parent is missing)."""

    error_code: str = "CREATED_TOO_FEW_RECORDS"


class CreatedTooManyRecordsError(RecordCountError):
    error_code: str = "CREATED_TOO_MANY_RECORDS"


class UpdatedTooFewRecordsError(NotFoundError):
    error_code: str = "UPDATED_TOO_FEW_RECORDS"


class UpdatedTooManyRecordsError(AmbiguousMatchError):
    error_code: str = "UPDATED_TOO_MANY_RECORDS"


class DeletedTooFewRecordsError(NotFoundError):
    error_code: str = "DELETED_TOO_FEW_RECORDS"


class DeletedTooManyRecordsError(AmbiguousMatchError):
    error_code: str = "DELETED_TOO_MANY_RECORDS"


def check_single(
    count: int,
    *,
    operation: str,
    too_few: type[RecordCountError],
    too_many: type[RecordCountError],
) -> None:
    """Raise the matching arity error unless exactly one record was affected."""
    if count == 1:
        return
    if count < 1:
        raise too_few(f"{operation}: no matching record", operation=operation, count=count)
    raise too_many(
        f"{operation}: expected 1 record, got {count}",
        operation=operation,
        count=count,
    )
