"""Hall overlap guard: storage-level rule plus the in-transaction pre-check."""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import DDL, event
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from errors import BookingError, ConflictError, StorageError
from expander import PlannedOccurrence
from models import Booking, BookingOccurrence, as_utc

logger = logging.getLogger(__name__)

CONSTRAINT_NAME = "prevent_hall_overlap"
CONFLICT_MESSAGE = "One of the halls is already booked for the same period."

EXCLUSION_VIOLATION = "23P01"
SERIALIZATION_FAILURE = "40001"

# 1. PostgreSQL: btree_gist plus an exclusion constraint over active rows
event.listen(
    SQLModel.metadata,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    BookingOccurrence.__table__,
    "after_create",
    DDL(
        f"ALTER TABLE booking_occurrences ADD CONSTRAINT {CONSTRAINT_NAME} "
        "EXCLUDE USING gist ("
        "hall_id WITH =, "
        "booking_id WITH <>, "
        "tstzrange(start_ts, end_ts, '[)') WITH &&"
        ") WHERE (active)"
    ).execute_if(dialect="postgresql"),
)

# 2. SQLite has no exclusion constraints; triggers abort with the constraint name
_SQLITE_OVERLAP_CHECK = (
    f"SELECT RAISE(ABORT, '{CONSTRAINT_NAME}') WHERE EXISTS ("
    "SELECT 1 FROM booking_occurrences AS other "
    "WHERE other.active "
    "AND other.hall_id = NEW.hall_id "
    "AND other.booking_id <> NEW.booking_id "
    "AND other.start_ts < NEW.end_ts "
    "AND other.end_ts > NEW.start_ts"
    ");"
)
for trigger, timing in (
    ("insert", "BEFORE INSERT"),
    ("update", "BEFORE UPDATE OF active, hall_id, start_ts, end_ts"),
):
    event.listen(
        BookingOccurrence.__table__,
        "after_create",
        DDL(
            f"CREATE TRIGGER {CONSTRAINT_NAME}_{trigger} {timing} ON booking_occurrences "
            f"WHEN NEW.active BEGIN {_SQLITE_OVERLAP_CHECK} END"
        ).execute_if(dialect="sqlite"),
    )


@dataclass(frozen=True)
class HallConflict:
    hall_id: int
    booking_id: int
    booking_title: str
    start_utc: datetime
    end_utc: datetime

    def to_dict(self) -> dict:
        return {
            "hall_id": self.hall_id,
            "booking_id": self.booking_id,
            "booking_title": self.booking_title,
            "start": self.start_utc.isoformat(),
            "end": self.end_utc.isoformat(),
        }


async def find_conflicts(
    session: AsyncSession,
    planned: Sequence[PlannedOccurrence],
    exclude_booking_id: Optional[int] = None,
) -> List[HallConflict]:
    """Active occurrences of other bookings that overlap ``planned``."""
    by_hall: Dict[int, List[PlannedOccurrence]] = defaultdict(list)
    for occ in planned:
        by_hall[occ.hall_id].append(occ)

    conflicts: List[HallConflict] = []
    seen = set()
    for hall_id, hall_occ in by_hall.items():
        window_start = min(o.start_utc for o in hall_occ)
        window_end = max(o.end_utc for o in hall_occ)

        statement = (
            select(BookingOccurrence, Booking.title)
            .join(Booking, Booking.id == BookingOccurrence.booking_id)
            .where(BookingOccurrence.hall_id == hall_id)
            .where(BookingOccurrence.active == True)  # noqa: E712
            .where(BookingOccurrence.start_ts < window_end)
            .where(BookingOccurrence.end_ts > window_start)
            .order_by(BookingOccurrence.start_ts)
        )
        if exclude_booking_id is not None:
            statement = statement.where(BookingOccurrence.booking_id != exclude_booking_id)

        result = await session.execute(statement)
        for existing, title in result.all():
            start, end = as_utc(existing.start_ts), as_utc(existing.end_ts)
            if existing.id in seen:
                continue
            if any(o.overlaps(start, end) for o in hall_occ):
                seen.add(existing.id)
                conflicts.append(HallConflict(hall_id, existing.booking_id, title, start, end))

    return conflicts


def conflict_error(conflicts: Sequence[HallConflict]) -> ConflictError:
    return ConflictError(
        CONFLICT_MESSAGE,
        {"conflicts": [c.to_dict() for c in conflicts]},
    )


async def ensure_no_conflicts(
    session: AsyncSession,
    planned: Sequence[PlannedOccurrence],
    exclude_booking_id: Optional[int] = None,
) -> None:
    conflicts = await find_conflicts(session, planned, exclude_booking_id)
    if conflicts:
        first = conflicts[0]
        logger.warning(
            "Hall %s overlap with booking %s (%d conflicting occurrences)",
            first.hall_id,
            first.booking_id,
            len(conflicts),
        )
        raise conflict_error(conflicts)


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def _constraint_name(exc: DBAPIError) -> str:
    orig = getattr(exc, "orig", None)
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        diag = getattr(candidate, "diag", None)
        name = getattr(diag, "constraint_name", None) or getattr(candidate, "constraint_name", None)
        if name:
            return str(name)
    return CONSTRAINT_NAME if CONSTRAINT_NAME in str(orig) else ""


def translate_db_error(exc: SQLAlchemyError) -> BookingError:
    """Map a storage exception to a booking error kind."""
    if isinstance(exc, DBAPIError):
        state = _sqlstate(exc)
        if state == SERIALIZATION_FAILURE:
            return ConflictError(CONFLICT_MESSAGE, {"reason": "concurrent_update"})
        if isinstance(exc, IntegrityError) and (
            state == EXCLUSION_VIOLATION or _constraint_name(exc) == CONSTRAINT_NAME
        ):
            return ConflictError(CONFLICT_MESSAGE, {"constraint": CONSTRAINT_NAME})
    logger.exception("Unclassified storage error")
    return StorageError("Storage operation failed")
