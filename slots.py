"""Slot catalog: the fixed time-of-day windows a hall can be booked into."""

import logging
from datetime import time
from typing import Iterable, List, Sequence

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from models import Hall, SlotCode, TimeSlot

logger = logging.getLogger(__name__)

DEFAULT_SLOTS = [
    {"code": SlotCode.morning, "name": "Morning", "start_time": time(8, 0), "end_time": time(12, 0)},
    {"code": SlotCode.afternoon, "name": "Afternoon", "start_time": time(13, 0), "end_time": time(17, 0)},
    {"code": SlotCode.night, "name": "Night", "start_time": time(18, 0), "end_time": time(22, 0)},
]

DEFAULT_HALLS = ["Hall 1", "Hall 2", "Hall 3"]


def slot_code(slot: TimeSlot) -> str:
    code = slot.code
    return code.value if isinstance(code, SlotCode) else str(code)


def select_slots(catalog: Sequence[TimeSlot], codes: Iterable[str]) -> List[TimeSlot]:
    """Catalog slots whose code is in ``codes``, in catalog order.

    Codes missing from the catalog are skipped.
    """
    wanted = {c.value if isinstance(c, SlotCode) else str(c) for c in codes}
    return [s for s in catalog if slot_code(s) in wanted]


async def load_catalog(session: AsyncSession) -> List[TimeSlot]:
    result = await session.execute(select(TimeSlot).order_by(TimeSlot.start_time, TimeSlot.id))
    return list(result.scalars().all())


async def load_halls(session: AsyncSession) -> List[Hall]:
    result = await session.execute(select(Hall).order_by(Hall.id))
    return list(result.scalars().all())


async def seed_reference_data(session: AsyncSession) -> None:
    """Insert the default catalog and halls when their tables are empty."""
    slot_count = (await session.execute(select(func.count()).select_from(TimeSlot))).scalar_one()
    if slot_count == 0:
        session.add_all(TimeSlot(**row) for row in DEFAULT_SLOTS)
        logger.info("Seeded %d time slots", len(DEFAULT_SLOTS))

    hall_count = (await session.execute(select(func.count()).select_from(Hall))).scalar_one()
    if hall_count == 0:
        session.add_all(Hall(name=name) for name in DEFAULT_HALLS)
        logger.info("Seeded %d halls", len(DEFAULT_HALLS))

    await session.commit()
