import os
import uuid
from datetime import datetime
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("RABBITMQ_ENABLED", "false")

from common.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from common.auth import create_actor_token  # noqa: E402
from common.database import Base, SessionLocal, engine  # noqa: E402
from common.models import FloorPlan, MeetingRoom, RoleEnum  # noqa: E402
from common.schemas import Actor  # noqa: E402
from services.bookings.app import app as bookings_app  # noqa: E402
from services.rooms.app import app as rooms_app  # noqa: E402
from services.rooms.app import topology_cache  # noqa: E402

# Frozen "now" for service-level tests; every booking date used there is later.
FIXED_NOW = datetime(2025, 1, 1, 8, 0)


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    topology_cache.invalidate()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def rooms_client() -> Generator[TestClient, None, None]:
    with TestClient(rooms_app) as client:
        yield client


@pytest.fixture()
def bookings_client() -> Generator[TestClient, None, None]:
    with TestClient(bookings_app) as client:
        yield client


def _new_actor(role: RoleEnum = RoleEnum.REGULAR) -> Actor:
    return Actor(actor_id=str(uuid.uuid4()), role=role)


@pytest.fixture()
def make_actor() -> Callable[..., Actor]:
    return _new_actor


@pytest.fixture()
def auth_header() -> Callable[[Actor], dict[str, str]]:
    def build(actor: Actor) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_actor_token(actor)}"}

    return build


@pytest.fixture()
def admin() -> Actor:
    return _new_actor(RoleEnum.ADMIN)


@pytest.fixture()
def employee() -> Actor:
    return _new_actor()


@pytest.fixture()
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture()
def room_factory(db_session) -> Callable[..., MeetingRoom]:
    """Insert rooms directly for service tests; the floor is created on first use."""

    floors: dict[int, FloorPlan] = {}

    def factory(
        name: str = "Board Room",
        floor_number: int = 1,
        manager_id: str | None = None,
        **fields,
    ) -> MeetingRoom:
        floor = floors.get(floor_number)
        if floor is None:
            floor = FloorPlan(floor_number=floor_number, name=f"Floor {floor_number}", manager_id=manager_id)
            db_session.add(floor)
            floors[floor_number] = floor
        fields.setdefault("capacity", 8)
        room = MeetingRoom(floor=floor, name=name, **fields)
        db_session.add(room)
        db_session.commit()
        return room

    return factory
