from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional


class ValidationKind(str, Enum):
    INVALID_SPOT_COUNT = "INVALID_SPOT_COUNT"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    PRIVATE_TOUR_ALREADY_BOOKED = "PRIVATE_TOUR_ALREADY_BOOKED"
    PRIVATE_TOUR_PARTIAL_BUYOUT_NOT_ALLOWED = "PRIVATE_TOUR_PARTIAL_BUYOUT_NOT_ALLOWED"
    BOOKING_DEADLINE_PASSED = "BOOKING_DEADLINE_PASSED"
    TOUR_NOT_BOOKABLE = "TOUR_NOT_BOOKABLE"
    INVALID_ADD_ON_QUANTITY = "INVALID_ADD_ON_QUANTITY"
    ADD_ON_QUANTITY_EXCEEDS_MAXIMUM = "ADD_ON_QUANTITY_EXCEEDS_MAXIMUM"
    DUPLICATE_ADD_ON_ON_BOOKING = "DUPLICATE_ADD_ON_ON_BOOKING"
    ADD_ON_UNAVAILABLE = "ADD_ON_UNAVAILABLE"


@dataclass(frozen=True)
class ValidationIssue:
    kind: ValidationKind
    message: str
    field: Optional[str] = None

    def to_dict(self) -> dict[str, str]:
        payload = {"kind": self.kind.value, "message": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


@dataclass
class AppError(Exception):
    code: str
    message: str
    status_code: int
    field: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


class BadRequestError(AppError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(code="BAD_REQUEST", message=message, status_code=400, field=field)


class PermissionDeniedError(AppError):
    def __init__(self, message: str = "not allowed"):
        super().__init__(code="PERMISSION_DENIED", message=message, status_code=403)


class NotFoundError(AppError):
    def __init__(self, message: str):
        super().__init__(code="NOT_FOUND", message=message, status_code=404)


class ConflictError(AppError):
    def __init__(self, message: str):
        super().__init__(code="CONFLICT", message=message, status_code=409)


class AlreadyCancelledError(AppError):
    def __init__(self, message: str = "booking is already cancelled"):
        super().__init__(code="ALREADY_CANCELLED", message=message, status_code=409)


class ConcurrencyConflictError(AppError):
    """The tour changed between snapshot and commit; retry against a fresh snapshot."""

    def __init__(self, message: str = "tour was modified concurrently, retry"):
        super().__init__(code="CONCURRENCY_CONFLICT", message=message, status_code=409)


class BookingRejectedError(AppError):
    """Every admission rule the booking failed, collected rather than short-circuited."""

    def __init__(self, issues: List[ValidationIssue]):
        super().__init__(
            code="BOOKING_REJECTED",
            message="; ".join(issue.message for issue in issues) or "booking rejected",
            status_code=422,
        )
        self.issues = list(issues)

    @property
    def kinds(self) -> list[ValidationKind]:
        return [issue.kind for issue in self.issues]

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["errors"] = [issue.to_dict() for issue in self.issues]
        return payload
