from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

import config
from auth import get_current_actor
from bookings import BookingService, event_slot_ids, hall_ids_of
from database import get_session, init_db
from errors import BookingError, ErrorKind
from schemas import (
    BookingCreate,
    BookingDetail,
    BookingRead,
    BookingSchedule,
    BookingUpdate,
    CalendarOccurrence,
    ConflictRead,
    HallRead,
    HallSchedule,
    OccurrenceRead,
    PlannedOccurrenceRead,
    PreviewRead,
    StatusChange,
    TimeSlotRead,
)
from slots import load_catalog, load_halls

config.configure_logging()

app = FastAPI(title="Hall Booking System")


def get_booking_service(session: AsyncSession = Depends(get_session)) -> BookingService:
    return BookingService(session)


@app.on_event("startup")
async def on_startup():
    await init_db()


# --- Error mapping ---
@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": ErrorKind.VALIDATION.value,
            "message": "Invalid request",
            "details": {"errors": jsonable_encoder(exc.errors())},
        },
    )


# --- Reference data ---
@app.get("/halls", response_model=List[HallRead])
async def list_halls(session: AsyncSession = Depends(get_session)):
    return await load_halls(session)


@app.get("/time-slots", response_model=List[TimeSlotRead])
async def list_time_slots(session: AsyncSession = Depends(get_session)):
    return await load_catalog(session)


# --- Bookings ---
@app.post("/bookings/preview", response_model=PreviewRead)
async def preview_booking(
    schedule: BookingSchedule,
    service: BookingService = Depends(get_booking_service),
):
    result = await service.preview(schedule)
    return PreviewRead(
        occurrences=[PlannedOccurrenceRead.model_validate(o) for o in result.occurrences],
        conflicts=[ConflictRead.model_validate(c) for c in result.conflicts],
    )


@app.post("/bookings", status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    actor_id: Optional[str] = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.create_booking(booking_data, actor_id)
    return {"ok": True, "booking_id": booking.id}


@app.get("/bookings", response_model=List[BookingRead])
async def list_bookings(
    date_from: Optional[date] = Query(default=None, alias="from"),
    date_to: Optional[date] = Query(default=None, alias="to"),
    hall_id: Optional[int] = Query(default=None, gt=0),
    service: BookingService = Depends(get_booking_service),
):
    return await service.list_bookings(date_from, date_to, hall_id)


@app.get("/bookings/{booking_id}", response_model=BookingDetail)
async def get_booking(booking_id: int, service: BookingService = Depends(get_booking_service)):
    booking, occurrences = await service.get_booking(booking_id)
    return BookingDetail(
        booking=BookingRead.model_validate(booking),
        hall_ids=hall_ids_of(occurrences),
        slot_ids=event_slot_ids(occurrences),
        occurrences=[OccurrenceRead.model_validate(o) for o in occurrences],
    )


@app.patch("/bookings/{booking_id}")
async def update_booking(
    booking_id: int,
    patch: BookingUpdate,
    actor_id: Optional[str] = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    await service.update_booking(booking_id, patch, actor_id)
    return {"ok": True}


@app.post("/bookings/{booking_id}/status")
async def change_booking_status(
    booking_id: int,
    change: StatusChange,
    actor_id: Optional[str] = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.set_status(booking_id, change.status, actor_id)
    return {"ok": True, "status": booking.status}


@app.delete("/bookings/{booking_id}")
async def delete_booking(
    booking_id: int,
    actor_id: Optional[str] = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    await service.delete_booking(booking_id, actor_id)
    return {"ok": True}


# --- Calendar views ---
@app.get("/occurrences", response_model=List[CalendarOccurrence])
async def list_occurrences(
    start: date,
    end: date,
    hall_id: Optional[int] = Query(default=None, gt=0),
    include_cancelled: bool = False,
    service: BookingService = Depends(get_booking_service),
):
    rows = await service.list_occurrences(start, end, hall_id, include_cancelled)
    return [
        CalendarOccurrence(
            hall_id=occ.hall_id,
            slot_id=occ.slot_id,
            kind=occ.kind,
            start_ts=occ.start_ts,
            end_ts=occ.end_ts,
            booking_id=booking.id,
            title=booking.title,
            status=booking.status,
            booking_type=booking.booking_type,
        )
        for occ, booking in rows
    ]


@app.get("/dashboard-grid", response_model=List[HallSchedule])
async def get_dashboard_grid(
    target_date: date,
    service: BookingService = Depends(get_booking_service),
):
    return await service.dashboard_grid(target_date)


app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
