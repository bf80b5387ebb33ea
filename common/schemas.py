"""Pydantic schemas shared across the microservices."""
from __future__ import annotations

import uuid
from datetime import date, datetime, time
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, Field, StringConstraints, model_validator

from .models import (
    BookingPurpose,
    BookingStatus,
    ParticipantResponse,
    RoleEnum,
    RoomStatus,
    RoomType,
)


def _canonical_uuid(value: str) -> str:
    return str(uuid.UUID(value))


IdStr = Annotated[str, AfterValidator(_canonical_uuid)]
Reason = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=500)]
OptionalNote = Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]]


class Actor(BaseModel):
    """Identity of the caller, as asserted by the external identity provider."""

    actor_id: IdStr
    role: RoleEnum = RoleEnum.REGULAR


class FloorBase(BaseModel):
    floor_number: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=255)
    layout_image: Optional[str] = None
    width: int = Field(800, gt=0)
    height: int = Field(600, gt=0)
    is_active: bool = True
    manager_id: Optional[IdStr] = None


class FloorCreate(FloorBase):
    pass


class FloorUpdate(BaseModel):
    floor_number: Optional[int] = Field(None, gt=0)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    layout_image: Optional[str] = None
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)
    is_active: Optional[bool] = None
    manager_id: Optional[IdStr] = None


class FloorRead(FloorBase):
    id: str
    total_rooms: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RoomBase(BaseModel):
    floor_id: IdStr
    name: str = Field(..., min_length=1, max_length=100)
    capacity: int = Field(..., gt=0)
    room_type: RoomType = RoomType.STANDARD
    equipment: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    status: RoomStatus = RoomStatus.ACTIVE
    requires_approval: bool = False
    position_x: int = 0
    position_y: int = 0
    description: Optional[str] = None


class RoomCreate(RoomBase):
    pass


class RoomUpdate(BaseModel):
    floor_id: Optional[IdStr] = None
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    capacity: Optional[int] = Field(None, gt=0)
    room_type: Optional[RoomType] = None
    equipment: Optional[List[str]] = None
    images: Optional[List[str]] = None
    status: Optional[RoomStatus] = None
    requires_approval: Optional[bool] = None
    position_x: Optional[int] = None
    position_y: Optional[int] = None
    description: Optional[str] = None


class RoomRead(RoomBase):
    id: str
    floor_number: Optional[int] = None
    floor_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Weekday(str, Enum):
    MON = "MON"
    TUE = "TUE"
    WED = "WED"
    THU = "THU"
    FRI = "FRI"
    SAT = "SAT"
    SUN = "SUN"

    @property
    def weekday_number(self) -> int:
        """Position in the week, Monday being 0 (matches ``date.weekday()``)."""
        return list(Weekday).index(self)


class RecurringPattern(BaseModel):
    frequency: Frequency
    interval: int = Field(1, ge=1)
    days_of_week: Optional[List[Weekday]] = None
    end_date: date

    @model_validator(mode="after")
    def _weekdays_only_for_weekly(self) -> "RecurringPattern":
        if self.days_of_week and self.frequency != Frequency.WEEKLY:
            raise ValueError("days_of_week is only valid for weekly patterns")
        if self.days_of_week is not None and not self.days_of_week:
            raise ValueError("days_of_week must not be empty")
        return self


class BookingCreate(BaseModel):
    room_id: IdStr
    booking_date: date
    start_time: time
    end_time: time
    title: str = Field(..., min_length=1, max_length=255)
    purpose: BookingPurpose = BookingPurpose.OTHER
    description: Optional[str] = Field(None, max_length=2000)
    is_private: bool = False
    participant_ids: List[IdStr] = Field(default_factory=list)
    recurring_pattern: Optional[RecurringPattern] = None

    @model_validator(mode="after")
    def _check_time_range(self) -> "BookingCreate":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class BookingUpdate(BaseModel):
    room_id: Optional[IdStr] = None
    booking_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    purpose: Optional[BookingPurpose] = None
    description: Optional[str] = Field(None, max_length=2000)
    is_private: Optional[bool] = None
    participant_ids: Optional[List[IdStr]] = None


class ApproveRequest(BaseModel):
    notes: OptionalNote = None


class RejectRequest(BaseModel):
    reason: Reason


class CancelRequest(BaseModel):
    reason: OptionalNote = None


class ParticipantAdd(BaseModel):
    user_id: IdStr


class ParticipantRespond(BaseModel):
    response: ParticipantResponse

    @model_validator(mode="after")
    def _no_reset_to_pending(self) -> "ParticipantRespond":
        if self.response == ParticipantResponse.PENDING:
            raise ValueError("response must be accepted or declined")
        return self


class ParticipantRead(BaseModel):
    user_id: str
    invited_at: datetime
    response_status: ParticipantResponse
    responded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookingRead(BaseModel):
    id: str
    room_id: str
    requester_id: str
    series_id: Optional[str] = None
    booking_date: date
    start_time: time
    end_time: time
    title: str
    purpose: BookingPurpose
    description: Optional[str] = None
    is_private: bool
    participant_ids: List[str] = Field(default_factory=list)
    status: BookingStatus
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    approval_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingSummary(BaseModel):
    id: str
    title: str
    start_time: time
    end_time: time
    status: BookingStatus
    requester_id: str

    model_config = {"from_attributes": True}


class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    PENDING = "pending"
    MAINTENANCE = "maintenance"


class RoomAvailability(BaseModel):
    room_id: str
    room_name: str
    capacity: int
    room_type: RoomType
    requires_approval: bool
    floor_id: str
    floor_number: int
    floor_name: str
    status: AvailabilityStatus
    current_booking: Optional[BookingSummary] = None
    bookings: List[BookingSummary] = Field(default_factory=list)


class AvailabilityReport(BaseModel):
    booking_date: date
    floor_id: Optional[str] = None
    start_time: time
    end_time: Optional[time] = None
    rooms: List[RoomAvailability]


class AvailabilityCheck(BaseModel):
    room_id: str
    booking_date: date
    start_time: time
    end_time: time
    available: bool
    conflicts: List[BookingSummary] = Field(default_factory=list)


class ServicePing(BaseModel):
    status: str
    detail: str
