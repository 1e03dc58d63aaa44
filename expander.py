from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import List, Optional, Sequence

import config
from errors import LookupFailedError, ValidationError
from models import OccurrenceKind, TimeSlot
from slots import select_slots, slot_code


@dataclass(frozen=True)
class PlannedOccurrence:
    """One hall/slot/day window of a booking, not yet stored."""

    hall_id: int
    slot_id: int
    slot_code: str
    day: date
    kind: OccurrenceKind
    start_utc: datetime
    end_utc: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start_utc < end and start < self.end_utc


def localize(day: date, slot: TimeSlot, tz: tzinfo) -> tuple[datetime, datetime]:
    """Local start/end of ``slot`` on ``day``, converted to UTC."""
    start = datetime.combine(day, slot.start_time, tzinfo=tz)
    end = datetime.combine(day, slot.end_time, tzinfo=tz)
    if end <= start:
        end = datetime.combine(day + timedelta(days=1), slot.end_time, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def classify_day(day_index: int, pre_days: int, event_days: int) -> OccurrenceKind:
    if day_index < pre_days:
        return OccurrenceKind.prep
    if day_index >= pre_days + event_days:
        return OccurrenceKind.cleanup
    return OccurrenceKind.event


def validate_schedule(
    event_days: int,
    pre_days: int,
    post_days: int,
    hall_ids: Sequence[int],
    event_slot_codes: Sequence[str],
) -> None:
    if not config.MIN_EVENT_DAYS <= event_days <= config.MAX_EVENT_DAYS:
        raise ValidationError(
            f"event_days must be between {config.MIN_EVENT_DAYS} and {config.MAX_EVENT_DAYS}",
            {"field": "event_days", "value": event_days},
        )
    for name, value in (("pre_days", pre_days), ("post_days", post_days)):
        if not 0 <= value <= config.MAX_BUFFER_DAYS:
            raise ValidationError(
                f"{name} must be between 0 and {config.MAX_BUFFER_DAYS}",
                {"field": name, "value": value},
            )
    if not hall_ids:
        raise ValidationError("At least one hall is required", {"field": "hall_ids"})
    if not event_slot_codes:
        raise ValidationError("At least one slot is required", {"field": "event_slot_codes"})


def expand(
    event_start_date: date,
    event_days: int,
    pre_days: int,
    post_days: int,
    hall_ids: Sequence[int],
    event_slot_codes: Sequence[str],
    catalog: Sequence[TimeSlot],
    tz: Optional[tzinfo] = None,
) -> List[PlannedOccurrence]:
    """Expand a booking schedule into its occurrences.

    The result is ordered by hall (in the given order), then day, then slot
    in catalog order.

    Raises:
        ValidationError: If a bound is violated or halls/slots are empty.
        LookupFailedError: If none of ``event_slot_codes`` is in the catalog.
    """
    validate_schedule(event_days, pre_days, post_days, hall_ids, event_slot_codes)
    tz = tz or config.HALLS_TIMEZONE

    event_slots = select_slots(catalog, event_slot_codes)
    if not event_slots:
        raise LookupFailedError(
            "No applicable slots for the selected slot codes",
            {"event_slot_codes": list(event_slot_codes)},
        )

    # Duplicate hall ids would otherwise produce self-overlapping rows
    halls = list(dict.fromkeys(hall_ids))
    overall_start = event_start_date - timedelta(days=pre_days)
    total_days = pre_days + event_days + post_days

    occurrences: List[PlannedOccurrence] = []
    for hall_id in halls:
        for day_index in range(total_days):
            day = overall_start + timedelta(days=day_index)
            kind = classify_day(day_index, pre_days, event_days)
            # Buffer days take every slot
            day_slots = event_slots if kind is OccurrenceKind.event else catalog

            for slot in day_slots:
                start_utc, end_utc = localize(day, slot, tz)
                occurrences.append(
                    PlannedOccurrence(
                        hall_id=hall_id,
                        slot_id=slot.id,
                        slot_code=slot_code(slot),
                        day=day,
                        kind=kind,
                        start_utc=start_utc,
                        end_utc=end_utc,
                    )
                )

    return occurrences
