"""Per-room availability snapshots for a day, a slot or the current instant."""
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from common.errors import NotFoundError, ValidationError
from common.models import BookingStatus, FloorPlan, MeetingRoom, RoomBooking, RoomStatus
from common.schemas import (
    AvailabilityCheck,
    AvailabilityReport,
    AvailabilityStatus,
    BookingSummary,
    RoomAvailability,
)

from .clock import local_now
from .conflicts import BLOCKING_STATUSES, covers, has_conflict, list_conflicts, overlaps


def _room_status(room: MeetingRoom, relevant: List[RoomBooking]) -> AvailabilityStatus:
    if room.status == RoomStatus.MAINTENANCE:
        return AvailabilityStatus.MAINTENANCE
    if any(booking.status == BookingStatus.APPROVED for booking in relevant):
        return AvailabilityStatus.BOOKED
    if relevant:
        return AvailabilityStatus.PENDING
    return AvailabilityStatus.AVAILABLE


def get_availability(
    db: Session,
    on_date: date,
    floor_id: Optional[str] = None,
    start: Optional[time] = None,
    end: Optional[time] = None,
    now: Optional[datetime] = None,
) -> AvailabilityReport:
    """Report every bookable room (optionally on one floor) for ``on_date``.

    With ``start``/``end`` a room is judged against that slot; otherwise
    against the current time of day. Maintenance wins over bookings, an
    approved booking wins over a pending one.
    """

    if (start is None) != (end is None):
        raise ValidationError("start_time and end_time must be given together")
    if start is not None and start >= end:
        raise ValidationError("start_time must be before end_time")
    instant = (now or local_now()).time().replace(microsecond=0)

    if floor_id is not None and db.get(FloorPlan, floor_id) is None:
        raise NotFoundError("Floor", floor_id)

    query = (
        db.query(MeetingRoom)
        .join(FloorPlan)
        .filter(MeetingRoom.status != RoomStatus.INACTIVE, FloorPlan.is_active.is_(True))
    )
    if floor_id is not None:
        query = query.filter(MeetingRoom.floor_id == floor_id)
    rooms = query.order_by(FloorPlan.floor_number, MeetingRoom.name).all()

    by_room: Dict[str, List[RoomBooking]] = defaultdict(list)
    if rooms:
        day_bookings = (
            db.query(RoomBooking)
            .filter(
                RoomBooking.room_id.in_([room.id for room in rooms]),
                RoomBooking.booking_date == on_date,
                RoomBooking.status.in_(sorted(BLOCKING_STATUSES)),
                RoomBooking.deleted_at.is_(None),
            )
            .order_by(RoomBooking.start_time)
            .all()
        )
        for booking in day_bookings:
            by_room[booking.room_id].append(booking)

    entries = []
    for room in rooms:
        bookings = by_room[room.id]
        if start is not None:
            relevant = [b for b in bookings if overlaps(start, end, b.start_time, b.end_time)]
        else:
            relevant = [b for b in bookings if covers(b.start_time, b.end_time, instant)]
        relevant.sort(key=lambda b: b.status != BookingStatus.APPROVED)
        entries.append(
            RoomAvailability(
                room_id=room.id,
                room_name=room.name,
                capacity=room.capacity,
                room_type=room.room_type,
                requires_approval=room.requires_approval,
                floor_id=room.floor_id,
                floor_number=room.floor.floor_number,
                floor_name=room.floor.name,
                status=_room_status(room, relevant),
                current_booking=BookingSummary.model_validate(relevant[0]) if relevant else None,
                bookings=[BookingSummary.model_validate(b) for b in bookings],
            )
        )

    return AvailabilityReport(
        booking_date=on_date,
        floor_id=floor_id,
        start_time=start if start is not None else instant,
        end_time=end,
        rooms=entries,
    )


def _validate_slot(db: Session, room_id: str, start: time, end: time) -> None:
    if start >= end:
        raise ValidationError("start_time must be before end_time")
    if db.get(MeetingRoom, room_id) is None:
        raise NotFoundError("Room", room_id)


def is_available(
    db: Session,
    room_id: str,
    on_date: date,
    start: time,
    end: time,
    exclude_booking_id: Optional[str] = None,
) -> bool:
    """Would ``[start, end)`` on ``on_date`` be accepted for this room right now?"""

    _validate_slot(db, room_id, start, end)
    return not has_conflict(db, room_id, on_date, start, end, exclude_booking_id)


def check_availability(
    db: Session,
    room_id: str,
    on_date: date,
    start: time,
    end: time,
    exclude_booking_id: Optional[str] = None,
) -> AvailabilityCheck:
    """``is_available`` plus the bookings standing in the way."""

    _validate_slot(db, room_id, start, end)
    conflicts = list_conflicts(db, room_id, on_date, start, end, exclude_booking_id)
    return AvailabilityCheck(
        room_id=room_id,
        booking_date=on_date,
        start_time=start,
        end_time=end,
        available=not conflicts,
        conflicts=[BookingSummary.model_validate(b) for b in conflicts],
    )
