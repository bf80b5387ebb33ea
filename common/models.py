"""SQLAlchemy models shared across all services."""
from __future__ import annotations

import uuid
from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class RoleEnum(str, Enum):
    ADMIN = "admin"
    REGULAR = "regular"
    FACILITY_MANAGER = "facility_manager"
    AUDITOR = "auditor"


class RoomType(str, Enum):
    STANDARD = "standard"
    VIP = "vip"
    TRAINING = "training"
    CONFERENCE = "conference"


class RoomStatus(str, Enum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    INACTIVE = "inactive"


class BookingStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class BookingPurpose(str, Enum):
    PROJECT_REVIEW = "project_review"
    BRAINSTORM = "brainstorm"
    TRAINING = "training"
    ONE_ON_ONE = "one_on_one"
    INTERVIEW = "interview"
    OTHER = "other"


class ParticipantResponse(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class FloorPlan(Base):
    __tablename__ = "floor_plans"
    __table_args__ = (CheckConstraint("floor_number > 0", name="chk_floor_number_positive"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    floor_number: Mapped[int] = mapped_column(Integer, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    layout_image: Mapped[Optional[str]] = mapped_column(Text, default=None)
    width: Mapped[int] = mapped_column(Integer, default=800)
    height: Mapped[int] = mapped_column(Integer, default=600)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    manager_id: Mapped[Optional[str]] = mapped_column(String(36), default=None, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    rooms: Mapped[List["MeetingRoom"]] = relationship(back_populates="floor")

    @property
    def total_rooms(self) -> int:
        return sum(1 for room in self.rooms if room.status != RoomStatus.INACTIVE)


class MeetingRoom(Base):
    __tablename__ = "meeting_rooms"
    __table_args__ = (CheckConstraint("capacity > 0", name="chk_room_capacity_positive"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    floor_id: Mapped[str] = mapped_column(ForeignKey("floor_plans.id"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    capacity: Mapped[int] = mapped_column(Integer, index=True)
    room_type: Mapped[RoomType] = mapped_column(SqlEnum(RoomType), default=RoomType.STANDARD, index=True)
    equipment: Mapped[list[str]] = mapped_column(JSON, default=list)
    images: Mapped[list[str]] = mapped_column(JSON, default=list)
    status: Mapped[RoomStatus] = mapped_column(SqlEnum(RoomStatus), default=RoomStatus.ACTIVE, index=True)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    position_x: Mapped[int] = mapped_column(Integer, default=0)
    position_y: Mapped[int] = mapped_column(Integer, default=0)
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    floor: Mapped[FloorPlan] = relationship(back_populates="rooms")
    bookings: Mapped[List["RoomBooking"]] = relationship(back_populates="room")

    @property
    def floor_number(self) -> int:
        return self.floor.floor_number

    @property
    def floor_name(self) -> str:
        return self.floor.name

    @property
    def is_bookable(self) -> bool:
        return self.status == RoomStatus.ACTIVE and self.floor.is_active


class RoomBooking(Base):
    __tablename__ = "room_bookings"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="chk_booking_time"),
        Index("idx_booking_room_date", "room_id", "booking_date", "start_time", "end_time"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    room_id: Mapped[str] = mapped_column(ForeignKey("meeting_rooms.id", ondelete="CASCADE"), index=True)
    requester_id: Mapped[str] = mapped_column(String(36), index=True)
    series_id: Mapped[Optional[str]] = mapped_column(String(36), default=None, index=True)

    booking_date: Mapped[date] = mapped_column(Date, index=True)
    start_time: Mapped[time] = mapped_column(Time)
    end_time: Mapped[time] = mapped_column(Time)

    title: Mapped[str] = mapped_column(String(255))
    purpose: Mapped[BookingPurpose] = mapped_column(SqlEnum(BookingPurpose), default=BookingPurpose.OTHER)
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    is_private: Mapped[bool] = mapped_column(Boolean, default=False)

    status: Mapped[BookingStatus] = mapped_column(SqlEnum(BookingStatus), default=BookingStatus.PENDING, index=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String(36), default=None)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    approval_notes: Mapped[Optional[str]] = mapped_column(Text, default=None)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, default=None)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(36), default=None)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, default=None)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None, index=True)
    deleted_by: Mapped[Optional[str]] = mapped_column(String(36), default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    room: Mapped[MeetingRoom] = relationship(back_populates="bookings")
    participants: Mapped[List["BookingParticipant"]] = relationship(
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingParticipant.invited_at",
    )

    @property
    def participant_ids(self) -> list[str]:
        return [participant.user_id for participant in self.participants]


class BookingParticipant(Base):
    __tablename__ = "booking_participants"
    __table_args__ = (UniqueConstraint("booking_id", "user_id", name="unique_booking_participant"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    booking_id: Mapped[str] = mapped_column(ForeignKey("room_bookings.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    invited_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    response_status: Mapped[ParticipantResponse] = mapped_column(
        SqlEnum(ParticipantResponse), default=ParticipantResponse.PENDING
    )
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    booking: Mapped[RoomBooking] = relationship(back_populates="participants")
