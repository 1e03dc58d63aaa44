from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    LOOKUP_FAILED = "LOOKUP_FAILED"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    STORAGE_FAILURE = "STORAGE_FAILURE"


HTTP_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.LOOKUP_FAILED: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.STORAGE_FAILURE: 500,
}


class BookingError(Exception):
    """Base error with a kind and a user-safe message."""

    kind: ErrorKind = ErrorKind.STORAGE_FAILURE

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind.value, "message": self.message, "details": self.details}

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class ValidationError(BookingError):
    kind = ErrorKind.VALIDATION


class LookupFailedError(BookingError):
    kind = ErrorKind.LOOKUP_FAILED


class UnauthorizedError(BookingError):
    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class NotFoundError(BookingError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, booking_id: int) -> None:
        super().__init__("Booking not found", {"booking_id": booking_id})
        self.booking_id = booking_id


class ConflictError(BookingError):
    """A hall is already taken for part of the requested window."""

    kind = ErrorKind.CONFLICT


class StorageError(BookingError):
    kind = ErrorKind.STORAGE_FAILURE
