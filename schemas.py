from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

import config
from models import BookingStatus, BookingType, OccurrenceKind, PaymentStatus, SlotCode, as_utc


# --- Requests ---
class BookingSchedule(BaseModel):
    """Scheduling fields of a booking; also the body of a preview request."""

    model_config = ConfigDict(extra="forbid")

    event_start_date: date
    event_days: int = Field(ge=config.MIN_EVENT_DAYS, le=config.MAX_EVENT_DAYS)
    pre_days: int = Field(default=0, ge=0, le=config.MAX_BUFFER_DAYS)
    post_days: int = Field(default=0, ge=0, le=config.MAX_BUFFER_DAYS)
    hall_ids: List[int] = Field(min_length=1)
    # Plain strings: codes missing from the catalog are skipped, not rejected
    event_slot_codes: List[str] = Field(min_length=1)


class BookingCreate(BookingSchedule):
    title: str = Field(min_length=1)
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    notes: Optional[str] = None
    status: BookingStatus = BookingStatus.hold
    booking_type: BookingType
    payment_amount: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    payment_status: PaymentStatus = PaymentStatus.unpaid

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v


class BookingUpdate(BaseModel):
    """Partial update. Fields left out keep their stored value."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[BookingStatus] = None
    booking_type: Optional[BookingType] = None
    payment_amount: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    payment_status: Optional[PaymentStatus] = None
    event_start_date: Optional[date] = None
    event_days: Optional[int] = Field(default=None, ge=config.MIN_EVENT_DAYS, le=config.MAX_EVENT_DAYS)
    pre_days: Optional[int] = Field(default=None, ge=0, le=config.MAX_BUFFER_DAYS)
    post_days: Optional[int] = Field(default=None, ge=0, le=config.MAX_BUFFER_DAYS)
    hall_ids: Optional[List[int]] = None
    event_slot_codes: Optional[List[str]] = None


class StatusChange(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: BookingStatus


# --- Responses ---
class HallRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class TimeSlotRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: SlotCode
    name: str
    start_time: time
    end_time: time


class OccurrenceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    hall_id: int
    slot_id: int
    kind: OccurrenceKind
    start_ts: datetime
    end_ts: datetime

    @field_validator("start_ts", "end_ts")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class CalendarOccurrence(OccurrenceRead):
    booking_id: int
    title: str
    status: BookingStatus
    booking_type: BookingType


class BookingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    client_name: Optional[str]
    client_phone: Optional[str]
    notes: Optional[str]
    status: BookingStatus
    booking_type: BookingType
    payment_amount: Optional[Decimal]
    currency: Optional[str]
    payment_status: PaymentStatus
    event_start_date: date
    event_days: int
    pre_days: int
    post_days: int
    hall_ids: List[int]
    event_slot_codes: List[str]
    created_by: str
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class BookingDetail(BaseModel):
    booking: BookingRead
    hall_ids: List[int]
    slot_ids: List[int]
    occurrences: List[OccurrenceRead]


class PlannedOccurrenceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    hall_id: int
    slot_id: int
    slot_code: str
    day: date
    kind: OccurrenceKind
    start_utc: datetime
    end_utc: datetime


class ConflictRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    hall_id: int
    booking_id: int
    booking_title: str
    start_utc: datetime
    end_utc: datetime


class PreviewRead(BaseModel):
    occurrences: List[PlannedOccurrenceRead]
    conflicts: List[ConflictRead]


class SlotStatus(BaseModel):
    slot_id: int
    slot_code: SlotCode
    time_label: str
    status: str
    booking_id: Optional[int] = None
    title: Optional[str] = None
    kind: Optional[OccurrenceKind] = None


class HallSchedule(BaseModel):
    hall_id: int
    hall_name: str
    schedule: List[SlotStatus]
