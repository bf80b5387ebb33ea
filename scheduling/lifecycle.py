"""Booking state machine.

The legal moves are listed in ``TRANSITIONS``; each ``(status, action)`` pair
maps to the function that performs it. Anything not in the table, including
terminal states and repeats such as approving an approved booking, raises
``InvalidStateTransitionError`` before the record is touched.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple

from common.errors import InvalidStateTransitionError, ValidationError
from common.models import BookingStatus, MeetingRoom, RoomBooking

REASON_MAX_LENGTH = 500

TERMINAL_STATUSES: FrozenSet[BookingStatus] = frozenset({BookingStatus.REJECTED, BookingStatus.CANCELLED})

# Schedule and descriptive fields; status and audit columns only move through transitions.
EDITABLE_FIELDS: FrozenSet[str] = frozenset(
    {"room_id", "booking_date", "start_time", "end_time", "title", "purpose", "description", "is_private"}
)


class BookingAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    EDIT = "edit"


@dataclass(frozen=True)
class TransitionContext:
    actor_id: str
    at: datetime
    reason: Optional[str] = None
    notes: Optional[str] = None
    changes: Mapping[str, Any] = field(default_factory=dict)


def initial_status(room: MeetingRoom) -> BookingStatus:
    return BookingStatus.PENDING if room.requires_approval else BookingStatus.APPROVED


def _clean_text(value: Optional[str], field: str, required: bool) -> Optional[str]:
    cleaned = value.strip() if value is not None else None
    if not cleaned:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if len(cleaned) > REASON_MAX_LENGTH:
        raise ValidationError(f"{field} must be at most {REASON_MAX_LENGTH} characters")
    return cleaned


def _approve_pending(booking: RoomBooking, ctx: TransitionContext) -> None:
    notes = _clean_text(ctx.notes, "Approval notes", required=False)
    booking.status = BookingStatus.APPROVED
    booking.approved_by = ctx.actor_id
    booking.approved_at = ctx.at
    booking.approval_notes = notes


def _reject_pending(booking: RoomBooking, ctx: TransitionContext) -> None:
    reason = _clean_text(ctx.reason, "Rejection reason", required=True)
    booking.status = BookingStatus.REJECTED
    booking.approved_by = ctx.actor_id
    booking.approved_at = ctx.at
    booking.rejection_reason = reason


def _cancel(booking: RoomBooking, ctx: TransitionContext) -> None:
    reason = _clean_text(ctx.reason, "Cancellation reason", required=False)
    booking.status = BookingStatus.CANCELLED
    booking.cancelled_by = ctx.actor_id
    booking.cancelled_at = ctx.at
    booking.cancellation_reason = reason


def _cancel_pending(booking: RoomBooking, ctx: TransitionContext) -> None:
    _cancel(booking, ctx)


def _cancel_approved(booking: RoomBooking, ctx: TransitionContext) -> None:
    _cancel(booking, ctx)


def _edit_pending(booking: RoomBooking, ctx: TransitionContext) -> None:
    unknown = set(ctx.changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot edit {', '.join(sorted(unknown))}")
    for name, value in ctx.changes.items():
        setattr(booking, name, value)


Transition = Callable[[RoomBooking, TransitionContext], None]

TRANSITIONS: Dict[Tuple[BookingStatus, BookingAction], Tuple[BookingStatus, Transition]] = {
    (BookingStatus.PENDING, BookingAction.APPROVE): (BookingStatus.APPROVED, _approve_pending),
    (BookingStatus.PENDING, BookingAction.REJECT): (BookingStatus.REJECTED, _reject_pending),
    (BookingStatus.PENDING, BookingAction.CANCEL): (BookingStatus.CANCELLED, _cancel_pending),
    (BookingStatus.PENDING, BookingAction.EDIT): (BookingStatus.PENDING, _edit_pending),
    (BookingStatus.APPROVED, BookingAction.CANCEL): (BookingStatus.CANCELLED, _cancel_approved),
}


def next_status(current: BookingStatus, action: BookingAction) -> BookingStatus:
    try:
        return TRANSITIONS[(current, action)][0]
    except KeyError:
        raise InvalidStateTransitionError(current, action) from None


def ensure_transition(booking: RoomBooking, action: BookingAction) -> None:
    next_status(booking.status, action)


def apply_transition(booking: RoomBooking, action: BookingAction, ctx: TransitionContext) -> BookingStatus:
    """Move ``booking`` along ``action`` and return its new status."""

    try:
        target, transition = TRANSITIONS[(booking.status, action)]
    except KeyError:
        raise InvalidStateTransitionError(booking.status, action) from None
    transition(booking, ctx)
    return target
