from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Optional

from sqlalchemy import CheckConstraint, Enum, Index, Numeric, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql.sqltypes import BigInteger, Date, DateTime, Integer, String

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


class ReservationStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: object) -> "ReservationStatus":
        """Map a boundary literal (English or legacy Spanish, any casing) to a status."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"invalid reservation status: {value!r}")
        key = value.strip().lower()
        try:
            return cls(_LEGACY_STATUS.get(key, key))
        except ValueError as exc:
            raise ValueError(f"invalid reservation status: {value!r}") from exc


_LEGACY_STATUS = {
    "pendiente": ReservationStatus.PENDING.value,
    "confirmada": ReservationStatus.CONFIRMED.value,
    "confirmado": ReservationStatus.CONFIRMED.value,
    "cancelada": ReservationStatus.CANCELLED.value,
    "cancelado": ReservationStatus.CANCELLED.value,
    "canceled": ReservationStatus.CANCELLED.value,
}

ACTIVE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


class BookingBucket(Base):
    __tablename__ = "booking_buckets"
    __table_args__ = (
        UniqueConstraint("activity_id", "schedule_slot", "occurrence_date", name="uq_bucket"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    activity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    schedule_slot: Mapped[str] = mapped_column(String(64), nullable=False)
    occurrence_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class UserDay(Base):
    __tablename__ = "user_days"
    __table_args__ = (
        UniqueConstraint("user_id", "occurrence_date", name="uq_user_day"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    occurrence_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("participant_count >= 1", name="chk_res_participants"),
        Index("idx_res_bucket", "activity_id", "schedule_slot", "occurrence_date"),
        Index("idx_res_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    activity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    schedule_slot: Mapped[str] = mapped_column(String(64), nullable=False)
    occurrence_date: Mapped[date] = mapped_column(Date, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    participant_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(
            ReservationStatus,
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
            native_enum=False,
        ),
        nullable=False,
        default=ReservationStatus.PENDING,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
