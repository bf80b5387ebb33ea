"""Overlap detection between a candidate slot and a room's blocking bookings."""
from __future__ import annotations

from datetime import date, time
from typing import List, Optional

from sqlalchemy.orm import Query, Session

from common.models import BookingStatus, RoomBooking

# Statuses that hold a slot. Availability reporting relies on the same set.
BLOCKING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.APPROVED})


def overlaps(start: time, end: time, other_start: time, other_end: time) -> bool:
    """Half-open interval test: back-to-back slots do not overlap."""
    return start < other_end and end > other_start


def covers(start: time, end: time, instant: time) -> bool:
    return start <= instant < end


def _blocking_overlap_query(
    db: Session,
    room_id: str,
    booking_date: date,
    start: time,
    end: time,
    exclude_booking_id: Optional[str] = None,
) -> Query:
    query = db.query(RoomBooking).filter(
        RoomBooking.room_id == room_id,
        RoomBooking.booking_date == booking_date,
        RoomBooking.status.in_(sorted(BLOCKING_STATUSES)),
        RoomBooking.deleted_at.is_(None),
        RoomBooking.start_time < end,
        RoomBooking.end_time > start,
    )
    if exclude_booking_id is not None:
        query = query.filter(RoomBooking.id != exclude_booking_id)
    return query


def has_conflict(
    db: Session,
    room_id: str,
    booking_date: date,
    start: time,
    end: time,
    exclude_booking_id: Optional[str] = None,
) -> bool:
    query = _blocking_overlap_query(db, room_id, booking_date, start, end, exclude_booking_id)
    return bool(db.query(query.exists()).scalar())


def list_conflicts(
    db: Session,
    room_id: str,
    booking_date: date,
    start: time,
    end: time,
    exclude_booking_id: Optional[str] = None,
) -> List[RoomBooking]:
    """Every blocking booking overlapping the slot, earliest first."""
    query = _blocking_overlap_query(db, room_id, booking_date, start, end, exclude_booking_id)
    return query.order_by(RoomBooking.start_time).all()
