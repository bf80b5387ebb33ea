from contextlib import asynccontextmanager
from datetime import date, time
from typing import List, Optional, Union

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.orm import Session

from common.config import get_settings
from common.database import Base, dispose_engine, engine, get_db
from common.dependencies import get_current_actor
from common.errors import install_error_handlers
from common.logging_middleware import add_audit_middleware
from common.models import BookingStatus
from common.rate_limit import READ_LIMIT, WRITE_LIMIT, apply_rate_limiter, limiter
from common.schemas import (
    Actor,
    ApproveRequest,
    AvailabilityCheck,
    AvailabilityReport,
    BookingCreate,
    BookingRead,
    BookingUpdate,
    CancelRequest,
    ParticipantAdd,
    ParticipantRead,
    ParticipantRespond,
    RejectRequest,
)
from scheduling.availability import check_availability as check_room_availability
from scheduling.availability import get_availability
from scheduling.bookings import BookingService

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield
    dispose_engine()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Bookings Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "bookings")
    install_error_handlers(fastapi_app)
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    return BookingService(db)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "bookings"}


@app.post(
    "/bookings",
    response_model=Union[BookingRead, List[BookingRead]],
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(WRITE_LIMIT)
def create_booking(
    request: Request,
    booking_in: BookingCreate,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> Union[BookingRead, List[BookingRead]]:
    bookings = service.create_booking(booking_in, actor)
    if booking_in.recurring_pattern is None:
        return BookingRead.model_validate(bookings[0])
    return [BookingRead.model_validate(booking) for booking in bookings]


@app.get("/bookings", response_model=List[BookingRead])
@limiter.limit(READ_LIMIT)
def list_bookings(
    request: Request,
    room_id: Optional[str] = None,
    requester_id: Optional[str] = None,
    booking_status: Optional[BookingStatus] = Query(default=None, alias="status"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    include_all: bool = Query(default=False, alias="all"),
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.list_bookings(
        actor,
        room_id=room_id,
        requester_id=requester_id,
        status=booking_status,
        date_from=date_from,
        date_to=date_to,
        include_all=include_all,
    )


@app.get("/bookings/pending", response_model=List[BookingRead])
@limiter.limit(READ_LIMIT)
def list_pending_bookings(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.list_pending(actor)


@app.get("/bookings/availability", response_model=AvailabilityReport)
@limiter.limit(READ_LIMIT)
def availability(
    request: Request,
    on_date: date = Query(..., alias="date"),
    floor_id: Optional[str] = None,
    start_time: Optional[time] = None,
    end_time: Optional[time] = None,
    _: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> AvailabilityReport:
    return get_availability(db, on_date, floor_id=floor_id, start=start_time, end=end_time)


@app.get("/bookings/check-availability", response_model=AvailabilityCheck)
@limiter.limit(READ_LIMIT)
def check_availability(
    request: Request,
    room_id: str,
    on_date: date = Query(..., alias="date"),
    start_time: time = Query(...),
    end_time: time = Query(...),
    exclude_booking_id: Optional[str] = None,
    _: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> AvailabilityCheck:
    return check_room_availability(db, room_id, on_date, start_time, end_time, exclude_booking_id)


@app.get("/bookings/{booking_id}", response_model=BookingRead)
@limiter.limit(READ_LIMIT)
def get_booking(
    request: Request,
    booking_id: str,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_booking(booking_id, actor)


@app.put("/bookings/{booking_id}", response_model=BookingRead)
@limiter.limit(WRITE_LIMIT)
def update_booking(
    request: Request,
    booking_id: str,
    booking_update: BookingUpdate,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.update_booking(booking_id, booking_update, actor)


@app.put("/bookings/{booking_id}/approve", response_model=BookingRead)
@limiter.limit(WRITE_LIMIT)
def approve_booking(
    request: Request,
    booking_id: str,
    body: Optional[ApproveRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.approve_booking(booking_id, actor, notes=body.notes if body else None)


@app.put("/bookings/{booking_id}/reject", response_model=BookingRead)
@limiter.limit(WRITE_LIMIT)
def reject_booking(
    request: Request,
    booking_id: str,
    body: RejectRequest,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.reject_booking(booking_id, actor, body.reason)


@app.put("/bookings/{booking_id}/cancel", response_model=BookingRead)
@limiter.limit(WRITE_LIMIT)
def cancel_booking(
    request: Request,
    booking_id: str,
    body: Optional[CancelRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.cancel_booking(booking_id, actor, reason=body.reason if body else None)


@app.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(WRITE_LIMIT)
def delete_booking(
    request: Request,
    booking_id: str,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> None:
    service.delete_booking(booking_id, actor)


@app.post("/bookings/{booking_id}/participants", response_model=BookingRead)
@limiter.limit(WRITE_LIMIT)
def add_participant(
    request: Request,
    booking_id: str,
    body: ParticipantAdd,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.add_participant(booking_id, body.user_id, actor)


@app.put("/bookings/{booking_id}/participants/me", response_model=ParticipantRead)
@limiter.limit(WRITE_LIMIT)
def respond_to_invitation(
    request: Request,
    booking_id: str,
    body: ParticipantRespond,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.respond_to_invitation(booking_id, actor, body.response)


@app.delete("/bookings/{booking_id}/participants/{user_id}", response_model=BookingRead)
@limiter.limit(WRITE_LIMIT)
def remove_participant(
    request: Request,
    booking_id: str,
    user_id: str,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.remove_participant(booking_id, user_id, actor)
