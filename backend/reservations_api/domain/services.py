from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Literal

from ..models import ReservationStatus
from .entities import ActivitySnapshot, Actor
from .errors import (
    AlreadyCancelledError,
    CapacityExceededError,
    DuplicateReservationError,
    ForbiddenError,
    InvalidDateError,
    InvalidParticipantCountError,
    InvalidSlotError,
    InvalidTransitionError,
    VersionConflictError,
)


@dataclass(frozen=True)
class BucketSnapshot:
    max_capacity: int
    reserved: int
    user_has_active_reservation: bool = False


DateCutoff = Literal["day", "slot"]


@dataclass(frozen=True)
class DatePolicy:
    """When an occurrence counts as being in the past.

    ``day`` rejects dates before today in ``tz``; ``slot`` rejects occurrences
    whose slot start is older than ``grace_minutes``.
    """

    tz: tzinfo
    cutoff: DateCutoff = "day"
    grace_minutes: int = 1


def validate_reservation(snapshot: BucketSnapshot, *, participant_count: int) -> int:
    """
    Pure validation run while the bucket is locked.
    Returns remaining capacity after booking if OK. Raises domain errors otherwise.
    """
    if snapshot.user_has_active_reservation:
        raise DuplicateReservationError("user already has an active reservation for this slot and date")
    if participant_count < 1:
        raise InvalidParticipantCountError("participant_count must be positive")

    remaining = snapshot.max_capacity - snapshot.reserved
    if participant_count > remaining:
        raise CapacityExceededError(f"insufficient capacity: requested {participant_count}, available {max(remaining, 0)}")
    return remaining - participant_count


def check_slot(activity: ActivitySnapshot, schedule_slot: str) -> None:
    if not activity.has_slot(schedule_slot):
        raise InvalidSlotError(f"schedule '{schedule_slot}' does not exist for this activity")


def check_participant_count(activity: ActivitySnapshot, participant_count: int) -> None:
    if participant_count < 1 or participant_count > activity.max_capacity:
        raise InvalidParticipantCountError(
            f"participant_count must be between 1 and {activity.max_capacity}"
        )


def _local_now(now: datetime, policy: DatePolicy) -> datetime:
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return now.astimezone(policy.tz)


def check_occurrence_day(occurrence_date: date, *, now: datetime, policy: DatePolicy) -> None:
    """Reject dates before today in the policy timezone, whatever the cutoff mode."""
    if occurrence_date < _local_now(now, policy).date():
        raise InvalidDateError("occurrence_date must not be in the past")


def check_occurrence_date(
    schedule_slot: str,
    occurrence_date: date,
    *,
    now: datetime,
    policy: DatePolicy,
) -> None:
    parsed = parse_slot(schedule_slot) if policy.cutoff == "slot" else None
    if parsed is None:
        check_occurrence_day(occurrence_date, now=now, policy=policy)
        return
    local_now = _local_now(now, policy)
    _, minutes = parsed
    starts_at = datetime.combine(occurrence_date, time(minutes // 60, minutes % 60), tzinfo=policy.tz)
    if starts_at < local_now - timedelta(minutes=policy.grace_minutes):
        raise InvalidDateError("occurrence has already started")


def parse_slot(label: str) -> tuple[str, int] | None:
    """Split a slot label like ``"Lunes 20:00"`` into (normalized day, minutes since midnight)."""
    parts = label.split()
    if len(parts) != 2:
        return None
    day, clock = parts
    hour, sep, minute = clock.partition(":")
    if not sep or not hour.isdigit() or not minute.isdigit():
        return None
    h, m = int(hour), int(minute)
    if h > 23 or m > 59:
        return None
    return _normalize_day(day), h * 60 + m


def _normalize_day(day: str) -> str:
    decomposed = unicodedata.normalize("NFKD", day.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def slots_overlap(slot_a: str, duration_a: int, slot_b: str, duration_b: int) -> bool:
    """True if two slot labels fall on the same day and their time ranges intersect.

    Identical labels always overlap; unparseable labels only overlap themselves.
    """
    if slot_a == slot_b:
        return True
    a = parse_slot(slot_a)
    b = parse_slot(slot_b)
    if a is None or b is None or a[0] != b[0]:
        return False
    start_a, start_b = a[1], b[1]
    return start_a < start_b + duration_b and start_b < start_a + duration_a


def next_status(
    current: ReservationStatus,
    target: ReservationStatus,
    *,
    actor: Actor,
    owner_id: int,
) -> ReservationStatus:
    """Apply the lifecycle state machine. Authorization is checked before state."""
    if target == ReservationStatus.CANCELLED:
        if not (actor.is_admin or actor.user_id == owner_id):
            raise ForbiddenError("only the owner or an administrator may cancel")
        if current == ReservationStatus.CANCELLED:
            raise AlreadyCancelledError("reservation is already cancelled")
        return target

    if target == ReservationStatus.CONFIRMED:
        if not actor.can_confirm:
            raise ForbiddenError("confirmation requires administrative capability")
        if current == ReservationStatus.CANCELLED:
            raise AlreadyCancelledError("reservation is already cancelled")
        if current != ReservationStatus.PENDING:
            raise InvalidTransitionError(f"cannot confirm a {current.value} reservation")
        return target

    raise InvalidTransitionError(f"cannot transition {current.value} -> {target.value}")


def check_version(current: int, expected: int | None) -> None:
    if expected is not None and current != expected:
        raise VersionConflictError("version mismatch")
