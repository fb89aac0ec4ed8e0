from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_serializer, field_validator

from .domain.entities import Availability
from .models import Reservation, ReservationStatus
from .utils.time import utc_naive_to_local


def _parse_status(value: object) -> ReservationStatus:
    return ReservationStatus.parse(value)


class BucketAvailability(BaseModel):
    activity_id: str
    schedule_slot: str
    occurrence_date: date
    max_capacity: int
    reserved: int
    remaining: int

    @classmethod
    def from_domain(cls, availability: Availability) -> "BucketAvailability":
        return cls(
            activity_id=availability.bucket.activity_id,
            schedule_slot=availability.bucket.schedule_slot,
            occurrence_date=availability.bucket.occurrence_date,
            max_capacity=availability.max_capacity,
            reserved=availability.reserved,
            remaining=availability.remaining,
        )


class ReservationCreate(BaseModel):
    activity_id: str = Field(min_length=1, max_length=64)
    schedule_slot: str = Field(min_length=1, max_length=64)
    occurrence_date: date
    # Bounds against the activity's capacity are checked by the ledger.
    participant_count: int = 1


class ReservationTransition(BaseModel):
    target_status: ReservationStatus
    version: Optional[int] = Field(default=None, ge=1)

    @field_validator("target_status", mode="before")
    @classmethod
    def _translate_status(cls, value: object) -> ReservationStatus:
        return _parse_status(value)


class ReservationVersion(BaseModel):
    version: Optional[int] = Field(default=None, ge=1)


class ReservationRead(BaseModel):
    reservation_id: int
    activity_id: str
    schedule_slot: str
    occurrence_date: date
    user_id: int
    participant_count: int
    total_price: Decimal
    status: ReservationStatus
    version: int
    created_at: datetime
    updated_at: datetime

    @field_serializer("created_at", "updated_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return dt.isoformat()

    @field_serializer("total_price")
    def _ser_price(self, price: Decimal) -> str:
        return f"{price:.2f}"

    @classmethod
    def from_db(cls, *, reservation: Reservation, tz: ZoneInfo) -> "ReservationRead":
        return cls(
            reservation_id=reservation.id,
            activity_id=reservation.activity_id,
            schedule_slot=reservation.schedule_slot,
            occurrence_date=reservation.occurrence_date,
            user_id=reservation.user_id,
            participant_count=reservation.participant_count,
            total_price=Decimal(reservation.total_price),
            status=reservation.status,
            version=reservation.version,
            created_at=utc_naive_to_local(reservation.created_at, tz),
            updated_at=utc_naive_to_local(reservation.updated_at, tz),
        )


def parse_status_filter(value: Optional[str]) -> Optional[ReservationStatus]:
    if value is None:
        return None
    return _parse_status(value)
