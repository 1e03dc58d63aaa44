import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

import config
from errors import BookingError, LookupFailedError, NotFoundError, UnauthorizedError, ValidationError
from expander import PlannedOccurrence, expand, localize
from guard import HallConflict, ensure_no_conflicts, find_conflicts, translate_db_error
from models import (
    Booking,
    BookingOccurrence,
    BookingStatus,
    Hall,
    OccurrenceKind,
    as_utc,
    utcnow,
)
from schemas import BookingCreate, BookingSchedule, BookingUpdate
from slots import load_catalog, load_halls, slot_code

logger = logging.getLogger(__name__)

SCHEDULE_FIELDS = ("event_start_date", "event_days", "pre_days", "post_days", "hall_ids", "event_slot_codes")
REQUIRED_FIELDS = ("title", "status", "booking_type", "payment_status") + SCHEDULE_FIELDS

ALLOWED_TRANSITIONS = {
    BookingStatus.hold: {BookingStatus.hold, BookingStatus.confirmed, BookingStatus.cancelled},
    BookingStatus.confirmed: {BookingStatus.confirmed, BookingStatus.cancelled},
    BookingStatus.cancelled: {BookingStatus.cancelled},
}


@dataclass
class Preview:
    occurrences: List[PlannedOccurrence]
    conflicts: List[HallConflict]


def check_transition(current: BookingStatus, target: BookingStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise ValidationError(
            f"Cannot change status from {current.value} to {target.value}",
            {"field": "status", "from": current.value, "to": target.value},
        )


def day_bounds(start: date, end: date) -> Tuple[datetime, datetime]:
    """UTC instants of local midnight at ``start`` and ``end``."""
    tz = config.HALLS_TIMEZONE
    lower = datetime.combine(start, time(0), tzinfo=tz)
    upper = datetime.combine(end, time(0), tzinfo=tz)
    return as_utc(lower), as_utc(upper)


class BookingService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- Helpers ---
    @staticmethod
    def _require_actor(actor_id: Optional[str]) -> str:
        if not actor_id:
            raise UnauthorizedError()
        return actor_id

    async def _check_halls(self, hall_ids: Sequence[int]) -> None:
        result = await self.session.execute(select(Hall.id).where(Hall.id.in_(hall_ids)))
        missing = sorted(set(hall_ids) - set(result.scalars().all()))
        if missing:
            raise LookupFailedError("Unknown hall", {"hall_ids": missing})

    async def _plan(self, schedule: Dict[str, Any]) -> List[PlannedOccurrence]:
        await self._check_halls(schedule["hall_ids"])
        catalog = await load_catalog(self.session)
        return expand(catalog=catalog, **schedule)

    async def _get(self, booking_id: int) -> Booking:
        booking = await self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError(booking_id)
        return booking

    def _add_occurrences(self, booking: Booking, planned: Sequence[PlannedOccurrence]) -> None:
        active = booking.status != BookingStatus.cancelled
        self.session.add_all(
            BookingOccurrence(
                booking_id=booking.id,
                hall_id=p.hall_id,
                slot_id=p.slot_id,
                kind=p.kind,
                start_ts=p.start_utc,
                end_ts=p.end_utc,
                active=active,
            )
            for p in planned
        )

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise translate_db_error(exc) from exc

    # --- Operations ---
    async def preview(self, schedule: BookingSchedule) -> Preview:
        """Expand a schedule and report what a booking with it would collide with."""
        planned = await self._plan(schedule.model_dump(include=set(SCHEDULE_FIELDS)))
        conflicts = await find_conflicts(self.session, planned)
        return Preview(planned, conflicts)

    async def create_booking(self, data: BookingCreate, actor_id: Optional[str]) -> Booking:
        actor_id = self._require_actor(actor_id)
        if data.status == BookingStatus.cancelled:
            raise ValidationError("A booking cannot be created as cancelled", {"field": "status"})

        planned = await self._plan(data.model_dump(include=set(SCHEDULE_FIELDS)))

        booking = Booking(
            **data.model_dump(exclude={"currency", "hall_ids"}),
            hall_ids=list(dict.fromkeys(data.hall_ids)),
            currency=self._currency(data.payment_amount, data.currency),
            created_by=actor_id,
        )
        try:
            await ensure_no_conflicts(self.session, planned)
            self.session.add(booking)
            await self.session.flush()
            self._add_occurrences(booking, planned)
            await self.session.flush()
        except BookingError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise translate_db_error(exc) from exc
        await self._commit()

        logger.info(
            "Booking %s created by %s: %d occurrences in halls %s",
            booking.id,
            actor_id,
            len(planned),
            booking.hall_ids,
        )
        return booking

    async def update_booking(
        self, booking_id: int, patch: BookingUpdate, actor_id: Optional[str]
    ) -> Booking:
        """Merge ``patch`` over the stored booking and regenerate its occurrences.

        Only fields the caller actually sent are applied. Sending null for an
        optional field clears it; sending null for a required one is an error.
        On any failure the stored booking and its occurrences stay untouched.
        """
        self._require_actor(actor_id)
        booking = await self._get(booking_id)

        sent = patch.model_dump(include=patch.model_fields_set)
        for field in REQUIRED_FIELDS:
            if field in sent and sent[field] is None:
                raise ValidationError(f"{field} cannot be null", {"field": field})
        if "title" in sent:
            sent["title"] = sent["title"].strip()
            if not sent["title"]:
                raise ValidationError("title must not be blank", {"field": "title"})

        current_status = BookingStatus(booking.status)
        new_status = sent.get("status", current_status)
        check_transition(current_status, new_status)

        schedule = {f: sent.get(f, getattr(booking, f)) for f in SCHEDULE_FIELDS}
        schedule["hall_ids"] = list(dict.fromkeys(schedule["hall_ids"]))
        reschedule = any(schedule[f] != getattr(booking, f) for f in SCHEDULE_FIELDS)
        # Validation and expansion happen before anything is written
        planned = await self._plan(schedule) if reschedule else []

        if "payment_amount" in sent or "currency" in sent:
            amount = sent.get("payment_amount", booking.payment_amount)
            if "currency" in sent:
                currency = sent["currency"]
            else:
                # Dropping the amount drops the stored currency with it
                currency = booking.currency if amount is not None else None
            sent["currency"] = self._currency(amount, currency)

        try:
            for field, value in {**sent, **schedule}.items():
                setattr(booking, field, value)
            booking.updated_at = utcnow()

            if reschedule:
                await self.session.execute(
                    delete(BookingOccurrence).where(BookingOccurrence.booking_id == booking.id)
                )
                if new_status != BookingStatus.cancelled:
                    await ensure_no_conflicts(self.session, planned, exclude_booking_id=booking.id)
                self._add_occurrences(booking, planned)
            elif new_status != current_status:
                await self._set_active(booking.id, new_status != BookingStatus.cancelled)
            await self.session.flush()
        except BookingError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise translate_db_error(exc) from exc
        await self._commit()

        logger.info(
            "Booking %s updated by %s (fields=%s, rescheduled=%s)",
            booking_id,
            actor_id,
            sorted(patch.model_fields_set),
            reschedule,
        )
        return booking

    async def set_status(
        self, booking_id: int, status: BookingStatus, actor_id: Optional[str]
    ) -> Booking:
        return await self.update_booking(booking_id, BookingUpdate(status=status), actor_id)

    async def _set_active(self, booking_id: int, active: bool) -> None:
        await self.session.execute(
            update(BookingOccurrence)
            .where(BookingOccurrence.booking_id == booking_id)
            .values(active=active)
        )

    async def delete_booking(self, booking_id: int, actor_id: Optional[str]) -> None:
        self._require_actor(actor_id)
        booking = await self._get(booking_id)
        try:
            await self.session.execute(
                delete(BookingOccurrence).where(BookingOccurrence.booking_id == booking_id)
            )
            await self.session.delete(booking)
            await self.session.flush()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise translate_db_error(exc) from exc
        await self._commit()
        logger.info("Booking %s deleted by %s", booking_id, actor_id)

    # --- Reads ---
    async def get_booking(self, booking_id: int) -> Tuple[Booking, List[BookingOccurrence]]:
        booking = await self._get(booking_id)
        result = await self.session.execute(
            select(BookingOccurrence)
            .where(BookingOccurrence.booking_id == booking_id)
            .order_by(BookingOccurrence.hall_id, BookingOccurrence.start_ts, BookingOccurrence.slot_id)
        )
        return booking, list(result.scalars().all())

    async def list_bookings(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        hall_id: Optional[int] = None,
    ) -> List[Booking]:
        """Bookings by event start date, optionally limited to one hall."""
        # A single bound means that one day
        if date_from and not date_to:
            date_to = date_from
        if date_to and not date_from:
            date_from = date_to

        statement = select(Booking).order_by(Booking.event_start_date, Booking.id)
        if date_from and date_to:
            if date_to < date_from:
                raise ValidationError("'to' must not be before 'from'", {"from": str(date_from), "to": str(date_to)})
            statement = statement.where(Booking.event_start_date >= date_from).where(
                Booking.event_start_date <= date_to
            )
        if hall_id is not None:
            statement = statement.where(
                Booking.id.in_(
                    select(BookingOccurrence.booking_id).where(BookingOccurrence.hall_id == hall_id)
                )
            )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def list_occurrences(
        self,
        start: date,
        end: date,
        hall_id: Optional[int] = None,
        include_cancelled: bool = False,
    ) -> List[Tuple[BookingOccurrence, Booking]]:
        """Occurrences touching local days ``[start, end)`` with their bookings."""
        if end <= start:
            raise ValidationError("'end' must be after 'start'", {"start": str(start), "end": str(end)})
        lower, upper = day_bounds(start, end)

        statement = (
            select(BookingOccurrence, Booking)
            .join(Booking, Booking.id == BookingOccurrence.booking_id)
            .where(BookingOccurrence.start_ts < upper)
            .where(BookingOccurrence.end_ts > lower)
            .order_by(BookingOccurrence.start_ts, BookingOccurrence.hall_id)
        )
        if hall_id is not None:
            statement = statement.where(BookingOccurrence.hall_id == hall_id)
        if not include_cancelled:
            statement = statement.where(BookingOccurrence.active == True)  # noqa: E712
        result = await self.session.execute(statement)
        return [(occ, booking) for occ, booking in result.all()]

    async def dashboard_grid(self, target_date: date) -> List[Dict[str, Any]]:
        """Occupancy of every hall × slot cell on ``target_date``."""
        halls = await load_halls(self.session)
        catalog = await load_catalog(self.session)
        rows = await self.list_occurrences(target_date, target_date + timedelta(days=1))

        # Key: hall_id -> [(start, end, occurrence, booking)]
        by_hall: Dict[int, List[Tuple[datetime, datetime, BookingOccurrence, Booking]]] = {}
        for occ, booking in rows:
            by_hall.setdefault(occ.hall_id, []).append(
                (as_utc(occ.start_ts), as_utc(occ.end_ts), occ, booking)
            )

        grid = []
        for hall in halls:
            schedule = []
            for slot in catalog:
                start, end = localize(target_date, slot, config.HALLS_TIMEZONE)
                hit = next(
                    (
                        (occ, booking)
                        for o_start, o_end, occ, booking in by_hall.get(hall.id, [])
                        if o_start < end and start < o_end
                    ),
                    None,
                )
                cell = {
                    "slot_id": slot.id,
                    "slot_code": slot_code(slot),
                    "time_label": f"{slot.start_time:%H:%M}-{slot.end_time:%H:%M}",
                    "status": "occupied" if hit else "available",
                }
                if hit:
                    occ, booking = hit
                    cell.update(booking_id=booking.id, title=booking.title, kind=occ.kind)
                schedule.append(cell)
            grid.append({"hall_id": hall.id, "hall_name": hall.name, "schedule": schedule})
        return grid

    @staticmethod
    def _currency(amount, currency: Optional[str]) -> Optional[str]:
        if currency:
            return currency.upper()
        return config.DEFAULT_CURRENCY if amount is not None else None


def event_slot_ids(occurrences: Sequence[BookingOccurrence]) -> List[int]:
    """Slot ids used on the event days (buffer days use every slot)."""
    return sorted({o.slot_id for o in occurrences if OccurrenceKind(o.kind) == OccurrenceKind.event})


def hall_ids_of(occurrences: Sequence[BookingOccurrence]) -> List[int]:
    return sorted({o.hall_id for o in occurrences})
