from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

ADMIN_ROLE = "admin"
SYSTEM_ROLE = "system"


@dataclass(frozen=True)
class ActivitySnapshot:
    """Read model of an activity as served by the activities catalog."""

    id: str
    max_capacity: int
    schedule: tuple[str, ...]
    is_active: bool = True
    price: Decimal = Decimal("0")
    name: str = ""
    duration_minutes: int = 60

    def has_slot(self, slot: str) -> bool:
        return slot in self.schedule


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: str = "user"
    is_active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @property
    def can_confirm(self) -> bool:
        return self.role in (ADMIN_ROLE, SYSTEM_ROLE)


@dataclass(frozen=True)
class BucketKey:
    activity_id: str
    schedule_slot: str
    occurrence_date: date


@dataclass(frozen=True)
class Availability:
    bucket: BucketKey
    max_capacity: int
    reserved: int
    remaining: int = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "remaining", max(self.max_capacity - self.reserved, 0))
