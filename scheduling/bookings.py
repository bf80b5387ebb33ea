"""Booking creation and lifecycle operations.

Every mutation runs inside ``common.database.transaction``: the room row is
locked, conflicts are checked and the write happens in the same unit, so two
requests for the same slot can never both commit.
"""
from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from common.config import get_settings
from common.database import transaction
from common.dependencies import ELEVATED_ROLES
from common.errors import (
    ConflictError,
    NotFoundError,
    OccurrenceConflict,
    PermissionDeniedError,
    ValidationError,
)
from common.events import publish_booking_event
from common.logging_middleware import log_audit_event
from common.models import (
    BookingParticipant,
    BookingStatus,
    MeetingRoom,
    ParticipantResponse,
    RoleEnum,
    RoomBooking,
)
from common.schemas import Actor, BookingCreate, BookingUpdate

from .clock import Clock, local_now
from .conflicts import list_conflicts
from .lifecycle import (
    TERMINAL_STATUSES,
    BookingAction,
    TransitionContext,
    apply_transition,
    ensure_transition,
    initial_status,
)
from .recurrence import expand

logger = logging.getLogger(__name__)

AUDIT_SERVICE = "bookings"
READ_ALL_ROLES = ELEVATED_ROLES | {RoleEnum.AUDITOR}


def _unique(ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(ids))


class BookingService:
    def __init__(self, db: Session, clock: Optional[Clock] = None) -> None:
        self.db = db
        self.clock: Clock = clock or local_now

    # Helpers

    def _lock_room(self, room_id: str) -> MeetingRoom:
        room = self.db.query(MeetingRoom).filter(MeetingRoom.id == room_id).with_for_update().first()
        if room is None:
            raise NotFoundError("Room", room_id)
        return room

    def _lock_booking(self, booking_id: str) -> RoomBooking:
        booking = (
            self.db.query(RoomBooking)
            .filter(RoomBooking.id == booking_id, RoomBooking.deleted_at.is_(None))
            .with_for_update()
            .first()
        )
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    @staticmethod
    def _ensure_bookable(room: MeetingRoom) -> None:
        if not room.floor.is_active:
            raise ValidationError("Room is on an inactive floor and cannot accept bookings")
        if not room.is_bookable:
            raise ValidationError(f"Room is {room.status.value} and cannot accept bookings")

    def _ensure_future(self, booking_date: date, start_time: time) -> None:
        if datetime.combine(booking_date, start_time) < self.clock():
            raise ValidationError("Booking must start in the future")

    @staticmethod
    def _can_decide(actor: Actor, room: MeetingRoom) -> bool:
        return actor.role in ELEVATED_ROLES or room.floor.manager_id == actor.actor_id

    @staticmethod
    def _can_manage(actor: Actor, booking: RoomBooking) -> bool:
        return booking.requester_id == actor.actor_id or actor.role in ELEVATED_ROLES

    # Reads

    def get_booking(self, booking_id: str, actor: Actor) -> RoomBooking:
        booking = self.db.get(RoomBooking, booking_id)
        if booking is None or booking.deleted_at is not None:
            raise NotFoundError("Booking", booking_id)
        if (
            actor.role not in READ_ALL_ROLES
            and booking.requester_id != actor.actor_id
            and actor.actor_id not in booking.participant_ids
        ):
            raise PermissionDeniedError("Access denied")
        return booking

    def list_bookings(
        self,
        actor: Actor,
        room_id: Optional[str] = None,
        requester_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        include_all: bool = False,
    ) -> List[RoomBooking]:
        query = self.db.query(RoomBooking).filter(RoomBooking.deleted_at.is_(None))
        if not include_all or actor.role not in READ_ALL_ROLES:
            query = query.filter(RoomBooking.requester_id == actor.actor_id)
        elif requester_id:
            query = query.filter(RoomBooking.requester_id == requester_id)
        if room_id:
            query = query.filter(RoomBooking.room_id == room_id)
        if status:
            query = query.filter(RoomBooking.status == status)
        if date_from:
            query = query.filter(RoomBooking.booking_date >= date_from)
        if date_to:
            query = query.filter(RoomBooking.booking_date <= date_to)
        return query.order_by(RoomBooking.booking_date, RoomBooking.start_time).all()

    def list_pending(self, actor: Actor) -> List[RoomBooking]:
        query = (
            self.db.query(RoomBooking)
            .join(MeetingRoom)
            .filter(RoomBooking.status == BookingStatus.PENDING, RoomBooking.deleted_at.is_(None))
            .order_by(RoomBooking.booking_date, RoomBooking.start_time)
        )
        bookings = query.all()
        if actor.role in ELEVATED_ROLES:
            return bookings
        return [booking for booking in bookings if booking.room.floor.manager_id == actor.actor_id]

    # Mutations

    def create_booking(self, data: BookingCreate, actor: Actor) -> List[RoomBooking]:
        """Create one booking, or every occurrence of a recurring request.

        The batch is all-or-nothing: if any occurrence overlaps a blocking
        booking, nothing is written and the ``ConflictError`` lists each
        failing occurrence.
        """

        cap = get_settings().max_recurring_occurrences
        # One past the cap tells a truncated series apart from one that is exactly cap long.
        occurrences = expand(data.recurring_pattern, data.booking_date, data.start_time, data.end_time, cap + 1)
        if not occurrences:
            raise ValidationError("Recurring pattern produces no occurrences")
        if len(occurrences) > cap:
            occurrences = occurrences[:cap]
            logger.warning("Recurring booking for room %s truncated to %s occurrences", data.room_id, cap)
        self._ensure_future(occurrences[0].booking_date, occurrences[0].start_time)

        participant_ids = _unique(data.participant_ids)
        with transaction(self.db):
            room = self._lock_room(data.room_id)
            self._ensure_bookable(room)

            failures = []
            for occurrence in occurrences:
                conflicts = list_conflicts(
                    self.db, room.id, occurrence.booking_date, occurrence.start_time, occurrence.end_time
                )
                if conflicts:
                    failures.append(OccurrenceConflict.capture(*occurrence, conflicts))
            if failures:
                raise ConflictError(failures)

            status = initial_status(room)
            series_id = str(uuid.uuid4()) if data.recurring_pattern is not None else None
            bookings = [
                RoomBooking(
                    room_id=room.id,
                    requester_id=actor.actor_id,
                    series_id=series_id,
                    booking_date=occurrence.booking_date,
                    start_time=occurrence.start_time,
                    end_time=occurrence.end_time,
                    title=data.title,
                    purpose=data.purpose,
                    description=data.description,
                    is_private=data.is_private,
                    status=status,
                    participants=[BookingParticipant(user_id=user_id) for user_id in participant_ids],
                )
                for occurrence in occurrences
            ]
            self.db.add_all(bookings)
            self.db.flush()
            notify = room.floor.manager_id if status == BookingStatus.PENDING else None

        booking_ids = [booking.id for booking in bookings]
        logger.info("Created %s booking(s) for room %s as %s", len(bookings), room.id, status.value)
        log_audit_event(
            AUDIT_SERVICE,
            "booking_created",
            actor.actor_id,
            room_id=room.id,
            booking_ids=",".join(booking_ids),
            status=status.value,
            series_id=series_id,
        )
        publish_booking_event(
            "booking_created",
            booking_ids=booking_ids,
            room_id=room.id,
            requester_id=actor.actor_id,
            status=status.value,
            series_id=series_id,
            notify=notify,
        )
        return bookings

    def update_booking(self, booking_id: str, data: BookingUpdate, actor: Actor) -> RoomBooking:
        """Edit a pending booking. A schedule change is re-checked against the target room."""

        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key == "description"
        }
        participant_ids = changes.pop("participant_ids", None)

        with transaction(self.db):
            booking = self._lock_booking(booking_id)
            if not self._can_manage(actor, booking):
                raise PermissionDeniedError("Only the requester or an administrator can edit this booking")
            ensure_transition(booking, BookingAction.EDIT)

            room_id = changes.get("room_id", booking.room_id)
            booking_date = changes.get("booking_date", booking.booking_date)
            start_time = changes.get("start_time", booking.start_time)
            end_time = changes.get("end_time", booking.end_time)
            if start_time >= end_time:
                raise ValidationError("start_time must be before end_time")

            rescheduled = (room_id, booking_date, start_time, end_time) != (
                booking.room_id,
                booking.booking_date,
                booking.start_time,
                booking.end_time,
            )
            if rescheduled:
                self._ensure_future(booking_date, start_time)
                locked = {rid: self._lock_room(rid) for rid in sorted({booking.room_id, room_id})}
                self._ensure_bookable(locked[room_id])
                conflicts = list_conflicts(
                    self.db, room_id, booking_date, start_time, end_time, exclude_booking_id=booking.id
                )
                if conflicts:
                    raise ConflictError([OccurrenceConflict.capture(booking_date, start_time, end_time, conflicts)])

            apply_transition(
                booking, BookingAction.EDIT, TransitionContext(actor.actor_id, self.clock(), changes=changes)
            )
            if participant_ids is not None:
                self._replace_participants(booking, _unique(participant_ids))

        log_audit_event(
            AUDIT_SERVICE,
            "booking_updated",
            actor.actor_id,
            booking_id=booking.id,
            fields=",".join(sorted(changes) + (["participant_ids"] if participant_ids is not None else [])),
        )
        return booking

    def _replace_participants(self, booking: RoomBooking, user_ids: List[str]) -> None:
        keep = set(user_ids)
        existing = {participant.user_id for participant in booking.participants}
        booking.participants = [p for p in booking.participants if p.user_id in keep] + [
            BookingParticipant(user_id=user_id) for user_id in user_ids if user_id not in existing
        ]

    def approve_booking(self, booking_id: str, actor: Actor, notes: Optional[str] = None) -> RoomBooking:
        with transaction(self.db):
            booking = self._lock_booking(booking_id)
            room = self._lock_room(booking.room_id)
            if not self._can_decide(actor, room):
                raise PermissionDeniedError("Only an approver for this room can approve bookings")
            ensure_transition(booking, BookingAction.APPROVE)
            # The blocking set may have changed since the request was filed.
            conflicts = list_conflicts(
                self.db,
                booking.room_id,
                booking.booking_date,
                booking.start_time,
                booking.end_time,
                exclude_booking_id=booking.id,
            )
            if conflicts:
                raise ConflictError(
                    [OccurrenceConflict.capture(booking.booking_date, booking.start_time, booking.end_time, conflicts)]
                )
            apply_transition(
                booking, BookingAction.APPROVE, TransitionContext(actor.actor_id, self.clock(), notes=notes)
            )

        self._announce("booking_approved", booking, actor)
        return booking

    def reject_booking(self, booking_id: str, actor: Actor, reason: str) -> RoomBooking:
        with transaction(self.db):
            booking = self._lock_booking(booking_id)
            room = self._lock_room(booking.room_id)
            if not self._can_decide(actor, room):
                raise PermissionDeniedError("Only an approver for this room can reject bookings")
            apply_transition(
                booking, BookingAction.REJECT, TransitionContext(actor.actor_id, self.clock(), reason=reason)
            )

        self._announce("booking_rejected", booking, actor, reason=booking.rejection_reason)
        return booking

    def cancel_booking(self, booking_id: str, actor: Actor, reason: Optional[str] = None) -> RoomBooking:
        with transaction(self.db):
            booking = self._lock_booking(booking_id)
            if not self._can_manage(actor, booking):
                raise PermissionDeniedError("Only the requester or an administrator can cancel this booking")
            apply_transition(
                booking, BookingAction.CANCEL, TransitionContext(actor.actor_id, self.clock(), reason=reason)
            )

        self._announce("booking_cancelled", booking, actor, reason=booking.cancellation_reason)
        return booking

    def delete_booking(self, booking_id: str, actor: Actor) -> None:
        """Soft-delete a booking in any state; it disappears from reads and frees its slot."""

        with transaction(self.db):
            booking = self._lock_booking(booking_id)
            if not self._can_manage(actor, booking):
                raise PermissionDeniedError("Only the requester or an administrator can delete this booking")
            booking.deleted_at = self.clock()
            booking.deleted_by = actor.actor_id

        logger.info("Booking %s deleted by %s", booking.id, actor.actor_id)
        log_audit_event(
            AUDIT_SERVICE,
            "booking_deleted",
            actor.actor_id,
            booking_id=booking.id,
            room_id=booking.room_id,
            status=booking.status.value,
        )
        publish_booking_event(
            "booking_deleted",
            booking_id=booking.id,
            room_id=booking.room_id,
            requester_id=booking.requester_id,
            status=booking.status.value,
            notify=booking.requester_id if booking.requester_id != actor.actor_id else None,
        )

    def _announce(self, event: str, booking: RoomBooking, actor: Actor, **extra: Optional[str]) -> None:
        logger.info("Booking %s is now %s", booking.id, booking.status.value)
        log_audit_event(AUDIT_SERVICE, event, actor.actor_id, booking_id=booking.id, room_id=booking.room_id, **extra)
        publish_booking_event(
            event,
            booking_id=booking.id,
            room_id=booking.room_id,
            requester_id=booking.requester_id,
            status=booking.status.value,
            notify=booking.requester_id,
            **extra,
        )

    # Participants

    def add_participant(self, booking_id: str, user_id: str, actor: Actor) -> RoomBooking:
        with transaction(self.db):
            booking = self._lock_booking(booking_id)
            if not self._can_manage(actor, booking):
                raise PermissionDeniedError("Only the requester or an administrator can invite participants")
            if booking.status in TERMINAL_STATUSES:
                raise ValidationError(f"Cannot invite participants to a {booking.status.value} booking")
            existing = next((p for p in booking.participants if p.user_id == user_id), None)
            if existing is not None:
                existing.invited_at = self.clock()
            else:
                booking.participants.append(BookingParticipant(user_id=user_id, invited_at=self.clock()))
        log_audit_event(AUDIT_SERVICE, "participant_added", actor.actor_id, booking_id=booking_id, user_id=user_id)
        return booking

    def remove_participant(self, booking_id: str, user_id: str, actor: Actor) -> RoomBooking:
        with transaction(self.db):
            booking = self._lock_booking(booking_id)
            if not self._can_manage(actor, booking) and actor.actor_id != user_id:
                raise PermissionDeniedError("Access denied")
            participant = next((p for p in booking.participants if p.user_id == user_id), None)
            if participant is None:
                raise NotFoundError("Participant", user_id)
            booking.participants.remove(participant)
        log_audit_event(AUDIT_SERVICE, "participant_removed", actor.actor_id, booking_id=booking_id, user_id=user_id)
        return booking

    def respond_to_invitation(
        self, booking_id: str, actor: Actor, response: ParticipantResponse
    ) -> BookingParticipant:
        with transaction(self.db):
            booking = self._lock_booking(booking_id)
            participant = next((p for p in booking.participants if p.user_id == actor.actor_id), None)
            if participant is None:
                raise NotFoundError("Participant", actor.actor_id)
            participant.response_status = response
            participant.responded_at = self.clock()
        return participant
