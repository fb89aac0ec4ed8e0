"""In-memory stand-ins for the reservation store and the activities catalog.

``FakeLedgerStore`` is the shared database; each ``FakeReservationRepo`` plays
the role of one session. Bucket and row locks are ``asyncio.Lock`` objects held
until the repo's ``begin()`` block exits, like ``SELECT ... FOR UPDATE``.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncIterator

from reservations_api.domain.entities import ActivitySnapshot, BucketKey
from reservations_api.models import ACTIVE_STATUSES, Reservation, ReservationStatus


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class FakeLedgerStore:
    def __init__(self) -> None:
        self.reservations: dict[int, Reservation] = {}
        self.next_id = 1
        self.bucket_locks: dict[BucketKey, asyncio.Lock] = {}
        self.user_day_locks: dict[tuple[int, date], asyncio.Lock] = {}
        self.row_locks: dict[int, asyncio.Lock] = {}

    def bucket_lock(self, bucket: BucketKey) -> asyncio.Lock:
        return self.bucket_locks.setdefault(bucket, asyncio.Lock())

    def user_day_lock(self, user_id: int, occurrence_date: date) -> asyncio.Lock:
        return self.user_day_locks.setdefault((user_id, occurrence_date), asyncio.Lock())

    def row_lock(self, reservation_id: int) -> asyncio.Lock:
        return self.row_locks.setdefault(reservation_id, asyncio.Lock())

    def committed_total(self, bucket: BucketKey) -> int:
        return sum(
            r.participant_count
            for r in self.reservations.values()
            if _in_bucket(r, bucket) and r.status in ACTIVE_STATUSES
        )


def _in_bucket(reservation: Reservation, bucket: BucketKey) -> bool:
    return (
        reservation.activity_id == bucket.activity_id
        and reservation.schedule_slot == bucket.schedule_slot
        and reservation.occurrence_date == bucket.occurrence_date
    )


class FakeReservationRepo:
    def __init__(self, store: FakeLedgerStore) -> None:
        self.store = store
        self.held: list[asyncio.Lock] = []
        self.created_ids: list[int] = []
        self.locked_buckets: list[BucketKey] = []
        self.lock_order: list[str] = []

    @asynccontextmanager
    async def begin(self) -> AsyncIterator["FakeReservationRepo"]:
        try:
            yield self
        except BaseException:
            for reservation_id in self.created_ids:
                self.store.reservations.pop(reservation_id, None)
            raise
        finally:
            self.created_ids = []
            while self.held:
                self.held.pop().release()

    async def _acquire(self, lock: asyncio.Lock) -> None:
        if lock in self.held:
            return
        await lock.acquire()
        self.held.append(lock)

    async def lock_user_day(self, user_id: int, occurrence_date: date) -> None:
        self.lock_order.append("user_day")
        await self._acquire(self.store.user_day_lock(user_id, occurrence_date))

    async def lock_bucket(self, bucket: BucketKey) -> None:
        self.locked_buckets.append(bucket)
        self.lock_order.append("bucket")
        await self._acquire(self.store.bucket_lock(bucket))

    async def sum_reserved(self, bucket: BucketKey) -> int:
        total = self.store.committed_total(bucket)
        # Give other writers a chance to interleave between read and write.
        await asyncio.sleep(0)
        return total

    async def sum_reserved_by_slot(self, activity_id: str, occurrence_date: date) -> dict[str, int]:
        totals: dict[str, int] = {}
        for r in self.store.reservations.values():
            if r.activity_id == activity_id and r.occurrence_date == occurrence_date and r.status in ACTIVE_STATUSES:
                totals[r.schedule_slot] = totals.get(r.schedule_slot, 0) + r.participant_count
        return totals

    async def user_has_active(self, bucket: BucketKey, user_id: int) -> bool:
        return any(
            _in_bucket(r, bucket) and r.user_id == user_id and r.status in ACTIVE_STATUSES
            for r in self.store.reservations.values()
        )

    async def list_active_for_user_on(self, user_id: int, occurrence_date: date) -> list[Reservation]:
        active = [
            r
            for r in self.store.reservations.values()
            if r.user_id == user_id and r.occurrence_date == occurrence_date and r.status in ACTIVE_STATUSES
        ]
        # Let a concurrent writer interleave between the overlap check and the insert.
        await asyncio.sleep(0)
        return active

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
        await asyncio.sleep(0)
        now = utc_now_naive()
        reservation = Reservation(
            id=self.store.next_id,
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
        self.store.next_id += 1
        self.store.reservations[reservation.id] = reservation
        self.created_ids.append(reservation.id)
        return reservation

    async def get(self, reservation_id: int) -> Reservation | None:
        return self.store.reservations.get(reservation_id)

    async def get_for_update(self, reservation_id: int) -> Reservation | None:
        reservation = self.store.reservations.get(reservation_id)
        if reservation is not None:
            await self._acquire(self.store.row_lock(reservation_id))
        return reservation

    async def save(self, reservation: Reservation) -> Reservation:
        self.store.reservations[reservation.id] = reservation
        return reservation

    async def delete(self, reservation: Reservation) -> None:
        self.store.reservations.pop(reservation.id, None)

    async def list_by_user(self, user_id: int, status: ReservationStatus | None = None) -> list[Reservation]:
        return [
            r
            for r in self.store.reservations.values()
            if r.user_id == user_id and (status is None or r.status == status)
        ]

    async def list_all(
        self,
        *,
        activity_id: str | None = None,
        status: ReservationStatus | None = None,
    ) -> list[Reservation]:
        return [
            r
            for r in self.store.reservations.values()
            if (activity_id is None or r.activity_id == activity_id) and (status is None or r.status == status)
        ]


class FakeCatalog:
    def __init__(self, *activities: ActivitySnapshot) -> None:
        self.activities = {a.id: a for a in activities}
        self.calls: list[str] = []

    async def resolve_activity(self, activity_id: str) -> ActivitySnapshot | None:
        self.calls.append(activity_id)
        return self.activities.get(activity_id)
