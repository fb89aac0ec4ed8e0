from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Protocol

from ..models import Reservation, ReservationStatus
from .entities import ActivitySnapshot, Actor, BucketKey


class ReservationRepository(Protocol):
    async def lock_bucket(self, bucket: BucketKey) -> None: ...

    async def lock_user_day(self, user_id: int, occurrence_date: date) -> None: ...

    async def sum_reserved(self, bucket: BucketKey) -> int: ...

    async def sum_reserved_by_slot(self, activity_id: str, occurrence_date: date) -> dict[str, int]: ...

    async def user_has_active(self, bucket: BucketKey, user_id: int) -> bool: ...

    async def list_active_for_user_on(self, user_id: int, occurrence_date: date) -> list[Reservation]: ...

    async def create(
        self,
        *,
        bucket: BucketKey,
        user_id: int,
        participant_count: int,
        total_price: Decimal,
        duration_minutes: int | None,
        status: ReservationStatus,
    ) -> Reservation: ...

    async def get(self, reservation_id: int) -> Reservation | None: ...

    async def get_for_update(self, reservation_id: int) -> Reservation | None: ...

    async def save(self, reservation: Reservation) -> Reservation: ...

    async def delete(self, reservation: Reservation) -> None: ...

    async def list_by_user(
        self,
        user_id: int,
        status: ReservationStatus | None = None,
    ) -> list[Reservation]: ...

    async def list_all(
        self,
        *,
        activity_id: str | None = None,
        status: ReservationStatus | None = None,
    ) -> list[Reservation]: ...


class ActivityCatalog(Protocol):
    async def resolve_activity(self, activity_id: str) -> ActivitySnapshot | None: ...


class UserDirectory(Protocol):
    async def resolve_actor(self, user_id: int) -> Actor | None: ...
