import enum
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back naive; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BookingStatus(str, enum.Enum):
    hold = "hold"
    confirmed = "confirmed"
    cancelled = "cancelled"


class BookingType(str, enum.Enum):
    death = "death"
    mawlid = "mawlid"
    fatiha = "fatiha"
    wedding = "wedding"
    special = "special"


class OccurrenceKind(str, enum.Enum):
    prep = "prep"
    event = "event"
    cleanup = "cleanup"


class PaymentStatus(str, enum.Enum):
    unpaid = "unpaid"
    deposit = "deposit"
    paid = "paid"


class SlotCode(str, enum.Enum):
    morning = "morning"
    afternoon = "afternoon"
    night = "night"


class Hall(SQLModel, table=True):
    __tablename__ = "halls"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str


class TimeSlot(SQLModel, table=True):
    __tablename__ = "time_slots"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: SlotCode = Field(unique=True, index=True)
    name: str
    # Local wall-clock times; end <= start means the slot runs past midnight
    start_time: time
    end_time: time


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    notes: Optional[str] = None
    status: BookingStatus = Field(default=BookingStatus.hold, index=True)
    booking_type: BookingType
    payment_amount: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=3)
    currency: Optional[str] = None
    payment_status: PaymentStatus = Field(default=PaymentStatus.unpaid)

    event_start_date: date = Field(index=True)
    event_days: int
    pre_days: int = 0
    post_days: int = 0
    hall_ids: List[int] = Field(sa_column=Column(JSON, nullable=False))
    event_slot_codes: List[str] = Field(sa_column=Column(JSON, nullable=False))

    created_by: str
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class BookingOccurrence(SQLModel, table=True):
    __tablename__ = "booking_occurrences"
    __table_args__ = (
        Index("ix_booking_occurrences_hall_window", "hall_id", "start_ts", "end_ts"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    booking_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
        )
    )
    hall_id: int = Field(foreign_key="halls.id")
    slot_id: int = Field(foreign_key="time_slots.id")
    kind: OccurrenceKind
    start_ts: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    end_ts: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    # False once the owning booking is cancelled; only active rows block a hall
    active: bool = Field(default=True)
