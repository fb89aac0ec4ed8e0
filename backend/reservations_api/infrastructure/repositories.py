from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import Insert, func, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.entities import BucketKey
from ..domain.repositories import ReservationRepository
from ..models import ACTIVE_STATUSES, Base, BookingBucket, Reservation, ReservationStatus, UserDay


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _insert_ignoring_duplicates(dialect_name: str, model: type[Base], values: dict[str, Any]) -> Insert:
    if dialect_name == "mysql":
        stmt = mysql.insert(model).values(**values)
        # No-op update so an existing row is left untouched.
        return stmt.on_duplicate_key_update(id=model.__table__.c.id)
    if dialect_name == "postgresql":
        return postgresql.insert(model).values(**values).on_conflict_do_nothing()
    if dialect_name == "sqlite":
        return sqlite.insert(model).values(**values).on_conflict_do_nothing()
    raise NotImplementedError(f"row locking is not supported on {dialect_name}")


def _bucket_filter(bucket: BucketKey) -> tuple[Any, ...]:
    return (
        Reservation.activity_id == bucket.activity_id,
        Reservation.schedule_slot == bucket.schedule_slot,
        Reservation.occurrence_date == bucket.occurrence_date,
    )


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def lock_bucket(self, bucket: BucketKey) -> None:
        """Row-lock the bucket until the surrounding transaction ends, creating it on first use."""
        dialect_name = self.session.get_bind().dialect.name
        await self.session.execute(
            _insert_ignoring_duplicates(
                dialect_name,
                BookingBucket,
                {
                    "activity_id": bucket.activity_id,
                    "schedule_slot": bucket.schedule_slot,
                    "occurrence_date": bucket.occurrence_date,
                    "created_at": _utc_now_naive(),
                },
            )
        )
        stmt = (
            select(BookingBucket.id)
            .where(
                BookingBucket.activity_id == bucket.activity_id,
                BookingBucket.schedule_slot == bucket.schedule_slot,
                BookingBucket.occurrence_date == bucket.occurrence_date,
            )
            .with_for_update()
        )
        await self.session.scalar(stmt)

    async def lock_user_day(self, user_id: int, occurrence_date: date) -> None:
        """Row-lock one user's bookings for a date. Taken before ``lock_bucket`` when both are needed."""
        dialect_name = self.session.get_bind().dialect.name
        await self.session.execute(
            _insert_ignoring_duplicates(
                dialect_name,
                UserDay,
                {"user_id": user_id, "occurrence_date": occurrence_date, "created_at": _utc_now_naive()},
            )
        )
        stmt = (
            select(UserDay.id)
            .where(UserDay.user_id == user_id, UserDay.occurrence_date == occurrence_date)
            .with_for_update()
        )
        await self.session.scalar(stmt)

    async def sum_reserved(self, bucket: BucketKey) -> int:
        stmt = select(func.coalesce(func.sum(Reservation.participant_count), 0)).where(
            *_bucket_filter(bucket),
            Reservation.status.in_(ACTIVE_STATUSES),
        )
        return int(await self.session.scalar(stmt) or 0)

    async def sum_reserved_by_slot(self, activity_id: str, occurrence_date: date) -> dict[str, int]:
        stmt = (
            select(
                Reservation.schedule_slot,
                func.coalesce(func.sum(Reservation.participant_count), 0).label("reserved"),
            )
            .where(
                Reservation.activity_id == activity_id,
                Reservation.occurrence_date == occurrence_date,
                Reservation.status.in_(ACTIVE_STATUSES),
            )
            .group_by(Reservation.schedule_slot)
        )
        rows = await self.session.execute(stmt)
        return {slot: int(reserved) for slot, reserved in rows.all()}

    async def user_has_active(self, bucket: BucketKey, user_id: int) -> bool:
        stmt = select(Reservation.id).where(
            *_bucket_filter(bucket),
            Reservation.user_id == user_id,
            Reservation.status.in_(ACTIVE_STATUSES),
        )
        return await self.session.scalar(stmt.limit(1)) is not None

    async def list_active_for_user_on(self, user_id: int, occurrence_date: date) -> list[Reservation]:
        stmt = select(Reservation).where(
            Reservation.user_id == user_id,
            Reservation.occurrence_date == occurrence_date,
            Reservation.status.in_(ACTIVE_STATUSES),
        )
        return list((await self.session.scalars(stmt)).all())

    async def create(
        self,
        *,
        bucket: BucketKey,
        user_id: int,
        participant_count: int,
        total_price: Decimal,
        duration_minutes: int | None,
        status: ReservationStatus,
    ) -> Reservation:
        now = _utc_now_naive()
        reservation = Reservation(
            activity_id=bucket.activity_id,
            schedule_slot=bucket.schedule_slot,
            occurrence_date=bucket.occurrence_date,
            user_id=user_id,
            participant_count=participant_count,
            total_price=total_price,
            duration_minutes=duration_minutes,
            status=status,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def get(self, reservation_id: int) -> Reservation | None:
        return await self.session.get(Reservation, reservation_id)

    async def get_for_update(self, reservation_id: int) -> Reservation | None:
        result = await self.session.scalar(
            select(Reservation).where(Reservation.id == reservation_id).with_for_update()
        )
        return result if isinstance(result, Reservation) else None

    async def save(self, reservation: Reservation) -> Reservation:
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def delete(self, reservation: Reservation) -> None:
        await self.session.delete(reservation)
        await self.session.flush()

    async def list_by_user(
        self,
        user_id: int,
        status: ReservationStatus | None = None,
    ) -> list[Reservation]:
        stmt = select(Reservation).where(Reservation.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Reservation.status == status)
        stmt = stmt.order_by(Reservation.occurrence_date, Reservation.id)
        return list((await self.session.scalars(stmt)).all())

    async def list_all(
        self,
        *,
        activity_id: str | None = None,
        status: ReservationStatus | None = None,
    ) -> list[Reservation]:
        stmt = select(Reservation)
        if activity_id is not None:
            stmt = stmt.where(Reservation.activity_id == activity_id)
        if status is not None:
            stmt = stmt.where(Reservation.status == status)
        stmt = stmt.order_by(Reservation.occurrence_date, Reservation.id)
        return list((await self.session.scalars(stmt)).all())
