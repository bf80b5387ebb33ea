"""Scheduling error types and their HTTP rendering."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from typing import Any, Dict, List, Optional, Sequence

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class SchedulingError(Exception):
    """Base class for every structured rejection raised by the scheduling core."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "scheduling_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class ValidationError(SchedulingError):
    code = "validation_error"


class PermissionDeniedError(SchedulingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "permission_denied"


class NotFoundError(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["entity"] = self.entity
        payload["id"] = str(self.entity_id)
        return payload


@dataclass(frozen=True)
class ConflictingBooking:
    """Plain copy of a blocking booking, safe to render after the session is gone."""

    id: str
    title: str
    start_time: time
    end_time: time
    status: str

    @classmethod
    def capture(cls, booking: Any) -> "ConflictingBooking":
        return cls(
            id=booking.id,
            title=booking.title,
            start_time=booking.start_time,
            end_time=booking.end_time,
            status=_status_value(booking.status),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "start_time": self.start_time.isoformat(timespec="minutes"),
            "end_time": self.end_time.isoformat(timespec="minutes"),
            "status": self.status,
        }


@dataclass
class OccurrenceConflict:
    """One requested occurrence together with the blocking bookings it overlaps.

    Build it with ``capture`` while the overlapping rows are still attached:
    the transaction is rolled back before the error reaches a handler.
    """

    booking_date: date
    start_time: time
    end_time: time
    bookings: List[ConflictingBooking] = field(default_factory=list)

    @classmethod
    def capture(
        cls, booking_date: date, start_time: time, end_time: time, rows: Sequence[Any]
    ) -> "OccurrenceConflict":
        return cls(booking_date, start_time, end_time, [ConflictingBooking.capture(row) for row in rows])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.booking_date.isoformat(),
            "start_time": self.start_time.isoformat(timespec="minutes"),
            "end_time": self.end_time.isoformat(timespec="minutes"),
            "bookings": [booking.to_dict() for booking in self.bookings],
        }


class ConflictError(SchedulingError):
    status_code = status.HTTP_409_CONFLICT
    code = "booking_conflict"

    def __init__(self, conflicts: List[OccurrenceConflict], message: Optional[str] = None) -> None:
        if message is None:
            if len(conflicts) == 1:
                message = "Room already booked for that slot"
            else:
                message = f"Room already booked for {len(conflicts)} of the requested occurrences"
        super().__init__(message)
        self.conflicts = conflicts

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["conflicts"] = [conflict.to_dict() for conflict in self.conflicts]
        return payload


class InvalidStateTransitionError(SchedulingError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state_transition"

    def __init__(self, current_status: Any, action: Any) -> None:
        current = _status_value(current_status)
        attempted = _status_value(action)
        super().__init__(f"Cannot {attempted} a booking that is {current}")
        self.current_status = current
        self.action = attempted

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["current_status"] = self.current_status
        payload["action"] = self.action
        return payload


class TransactionError(SchedulingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "transaction_failed"
    retryable = True

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["retryable"] = self.retryable
        return payload


def _status_value(value: Any) -> str:
    return getattr(value, "value", value)


def scheduling_error_handler(_: Request, exc: SchedulingError) -> JSONResponse:
    headers = {"Retry-After": "1"} if isinstance(exc, TransactionError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def install_error_handlers(app: FastAPI) -> None:
    """Render every SchedulingError raised inside a route as a structured JSON response."""

    app.add_exception_handler(SchedulingError, scheduling_error_handler)
