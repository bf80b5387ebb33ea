from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.orm import Session

from common.cache import ListingCache
from common.config import get_settings
from common.database import Base, dispose_engine, engine, get_db
from common.dependencies import allow_roles
from common.errors import install_error_handlers
from common.logging_middleware import add_audit_middleware
from common.models import RoleEnum, RoomType
from common.rate_limit import READ_LIMIT, TOPOLOGY_WRITE_LIMIT, apply_rate_limiter, limiter
from common.schemas import (
    Actor,
    FloorCreate,
    FloorRead,
    FloorUpdate,
    RoomCreate,
    RoomRead,
    RoomUpdate,
)
from scheduling.topology import TopologyService

settings = get_settings()
topology_cache = ListingCache(ttl=settings.room_cache_ttl)

manage_topology = allow_roles(RoleEnum.ADMIN, RoleEnum.FACILITY_MANAGER)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield
    dispose_engine()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Rooms Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "rooms")
    install_error_handlers(fastapi_app)
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


def get_topology_service(db: Session = Depends(get_db)) -> TopologyService:
    return TopologyService(db)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "rooms"}


# Floors


@app.get("/floors", response_model=List[FloorRead])
@limiter.limit(READ_LIMIT)
def list_floors(
    request: Request,
    include_inactive: bool = False,
    service: TopologyService = Depends(get_topology_service),
) -> List[FloorRead]:
    return topology_cache.load(
        ("floors", include_inactive),
        lambda: [FloorRead.model_validate(floor) for floor in service.list_floors(include_inactive)],
    )


@app.post("/floors", response_model=FloorRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(TOPOLOGY_WRITE_LIMIT)
def add_floor(
    request: Request,
    floor_in: FloorCreate,
    actor: Actor = Depends(manage_topology),
    service: TopologyService = Depends(get_topology_service),
):
    floor = service.create_floor(floor_in, actor)
    topology_cache.invalidate()
    return floor


@app.get("/floors/{floor_id}", response_model=FloorRead)
@limiter.limit(READ_LIMIT)
def get_floor(request: Request, floor_id: str, service: TopologyService = Depends(get_topology_service)):
    return service.get_floor(floor_id)


@app.put("/floors/{floor_id}", response_model=FloorRead)
@limiter.limit(TOPOLOGY_WRITE_LIMIT)
def update_floor(
    request: Request,
    floor_id: str,
    floor_update: FloorUpdate,
    actor: Actor = Depends(manage_topology),
    service: TopologyService = Depends(get_topology_service),
):
    floor = service.update_floor(floor_id, floor_update, actor)
    topology_cache.invalidate()
    return floor


@app.delete("/floors/{floor_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(TOPOLOGY_WRITE_LIMIT)
def delete_floor(
    request: Request,
    floor_id: str,
    actor: Actor = Depends(manage_topology),
    service: TopologyService = Depends(get_topology_service),
) -> None:
    service.delete_floor(floor_id, actor)
    topology_cache.invalidate()


@app.get("/floors/{floor_id}/rooms", response_model=List[RoomRead])
@limiter.limit(READ_LIMIT)
def list_floor_rooms(
    request: Request,
    floor_id: str,
    include_inactive: bool = False,
    service: TopologyService = Depends(get_topology_service),
) -> List[RoomRead]:
    service.get_floor(floor_id)
    return topology_cache.load(
        ("floor-rooms", floor_id, include_inactive),
        lambda: [
            RoomRead.model_validate(room)
            for room in service.list_rooms(floor_id=floor_id, include_inactive=include_inactive)
        ],
    )


# Rooms


@app.get("/rooms", response_model=List[RoomRead])
@limiter.limit(READ_LIMIT)
def list_rooms(
    request: Request,
    floor_id: Optional[str] = None,
    capacity: Optional[int] = None,
    room_type: Optional[RoomType] = None,
    equipment: Optional[List[str]] = Query(default=None),
    include_inactive: bool = False,
    service: TopologyService = Depends(get_topology_service),
) -> List[RoomRead]:
    return topology_cache.load(
        ("rooms", floor_id, capacity, room_type, tuple(sorted(equipment or [])), include_inactive),
        lambda: [
            RoomRead.model_validate(room)
            for room in service.list_rooms(floor_id, capacity, room_type, equipment, include_inactive)
        ],
    )


@app.post("/rooms", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(TOPOLOGY_WRITE_LIMIT)
def add_room(
    request: Request,
    room_in: RoomCreate,
    actor: Actor = Depends(manage_topology),
    service: TopologyService = Depends(get_topology_service),
):
    room = service.create_room(room_in, actor)
    topology_cache.invalidate()
    return room


@app.get("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit(READ_LIMIT)
def get_room(request: Request, room_id: str, service: TopologyService = Depends(get_topology_service)):
    return service.get_room(room_id)


@app.put("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit(TOPOLOGY_WRITE_LIMIT)
def update_room(
    request: Request,
    room_id: str,
    room_update: RoomUpdate,
    actor: Actor = Depends(manage_topology),
    service: TopologyService = Depends(get_topology_service),
):
    room = service.update_room(room_id, room_update, actor)
    topology_cache.invalidate()
    return room


@app.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(TOPOLOGY_WRITE_LIMIT)
def delete_room(
    request: Request,
    room_id: str,
    actor: Actor = Depends(manage_topology),
    service: TopologyService = Depends(get_topology_service),
) -> None:
    service.delete_room(room_id, actor)
    topology_cache.invalidate()
