"""Floor and room reference data."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from common.database import transaction
from common.errors import NotFoundError, ValidationError
from common.logging_middleware import log_audit_event
from common.models import FloorPlan, MeetingRoom, RoomStatus, RoomType
from common.schemas import Actor, FloorCreate, FloorUpdate, RoomCreate, RoomUpdate

logger = logging.getLogger(__name__)

AUDIT_SERVICE = "rooms"

_NULLABLE_FLOOR_FIELDS = frozenset({"layout_image", "manager_id"})
_NULLABLE_ROOM_FIELDS = frozenset({"description"})


def _changes(data, nullable: frozenset) -> dict:
    return {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key in nullable
    }


class TopologyService:
    """CRUD for floors and rooms. Floors are deactivated, never removed while they hold rooms."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # Floors

    def list_floors(self, include_inactive: bool = False) -> List[FloorPlan]:
        query = self.db.query(FloorPlan)
        if not include_inactive:
            query = query.filter(FloorPlan.is_active.is_(True))
        return query.order_by(FloorPlan.floor_number).all()

    def get_floor(self, floor_id: str) -> FloorPlan:
        floor = self.db.get(FloorPlan, floor_id)
        if floor is None:
            raise NotFoundError("Floor", floor_id)
        return floor

    def _ensure_floor_number_free(self, floor_number: int, floor_id: Optional[str] = None) -> None:
        query = self.db.query(FloorPlan).filter(FloorPlan.floor_number == floor_number)
        if floor_id is not None:
            query = query.filter(FloorPlan.id != floor_id)
        if query.first() is not None:
            raise ValidationError(f"Floor {floor_number} already exists")

    def create_floor(self, data: FloorCreate, actor: Actor) -> FloorPlan:
        with transaction(self.db):
            self._ensure_floor_number_free(data.floor_number)
            floor = FloorPlan(**data.model_dump())
            self.db.add(floor)
            self.db.flush()
        log_audit_event(AUDIT_SERVICE, "floor_created", actor.actor_id, floor_id=floor.id, floor_number=floor.floor_number)
        return floor

    def update_floor(self, floor_id: str, data: FloorUpdate, actor: Actor) -> FloorPlan:
        with transaction(self.db):
            floor = self.get_floor(floor_id)
            changes = _changes(data, _NULLABLE_FLOOR_FIELDS)
            if changes.get("floor_number") is not None:
                self._ensure_floor_number_free(changes["floor_number"], floor_id)
            for key, value in changes.items():
                setattr(floor, key, value)
        log_audit_event(AUDIT_SERVICE, "floor_updated", actor.actor_id, floor_id=floor_id, fields=",".join(sorted(changes)))
        return floor

    def delete_floor(self, floor_id: str, actor: Actor) -> None:
        with transaction(self.db):
            floor = self.get_floor(floor_id)
            room_count = self.db.query(MeetingRoom).filter(MeetingRoom.floor_id == floor_id).count()
            if room_count:
                raise ValidationError(
                    f"Floor still has {room_count} room(s); deactivate it instead of deleting"
                )
            self.db.delete(floor)
        log_audit_event(AUDIT_SERVICE, "floor_deleted", actor.actor_id, floor_id=floor_id)

    # Rooms

    def list_rooms(
        self,
        floor_id: Optional[str] = None,
        capacity: Optional[int] = None,
        room_type: Optional[RoomType] = None,
        equipment: Optional[Iterable[str]] = None,
        include_inactive: bool = False,
    ) -> List[MeetingRoom]:
        query = self.db.query(MeetingRoom).join(FloorPlan)
        if floor_id:
            query = query.filter(MeetingRoom.floor_id == floor_id)
        if not include_inactive:
            query = query.filter(MeetingRoom.status != RoomStatus.INACTIVE)
        if capacity:
            query = query.filter(MeetingRoom.capacity >= capacity)
        if room_type:
            query = query.filter(MeetingRoom.room_type == room_type)
        rooms = query.order_by(FloorPlan.floor_number, MeetingRoom.name).all()
        if equipment:
            wanted = set(equipment)
            rooms = [room for room in rooms if wanted.issubset(set(room.equipment or []))]
        return rooms

    def get_room(self, room_id: str) -> MeetingRoom:
        room = self.db.get(MeetingRoom, room_id)
        if room is None:
            raise NotFoundError("Room", room_id)
        return room

    def create_room(self, data: RoomCreate, actor: Actor) -> MeetingRoom:
        with transaction(self.db):
            self.get_floor(data.floor_id)
            room = MeetingRoom(**data.model_dump())
            self.db.add(room)
            self.db.flush()
        log_audit_event(AUDIT_SERVICE, "room_created", actor.actor_id, room_id=room.id, floor_id=room.floor_id)
        return room

    def update_room(self, room_id: str, data: RoomUpdate, actor: Actor) -> MeetingRoom:
        with transaction(self.db):
            room = self.get_room(room_id)
            changes = _changes(data, _NULLABLE_ROOM_FIELDS)
            if changes.get("floor_id") is not None:
                self.get_floor(changes["floor_id"])
            for key, value in changes.items():
                setattr(room, key, value)
        if "status" in changes:
            logger.info("Room %s status set to %s", room_id, room.status.value)
        log_audit_event(AUDIT_SERVICE, "room_updated", actor.actor_id, room_id=room_id, fields=",".join(sorted(changes)))
        return room

    def delete_room(self, room_id: str, actor: Actor) -> MeetingRoom:
        """Retire a room. Its booking history stays, so the row is kept as ``inactive``."""

        with transaction(self.db):
            room = self.get_room(room_id)
            room.status = RoomStatus.INACTIVE
        log_audit_event(AUDIT_SERVICE, "room_deleted", actor.actor_id, room_id=room_id)
        return room
