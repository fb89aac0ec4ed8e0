import logging
from datetime import date, datetime

from ..domain.entities import Actor, BucketKey
from ..domain.errors import (
    ActivityUnavailableError,
    ForbiddenError,
    InvalidTransitionError,
    ReservationNotFoundError,
    ScheduleConflictError,
    UnauthorizedError,
)
from ..domain.repositories import ActivityCatalog, ReservationRepository
from ..domain.services import (
    BucketSnapshot,
    DatePolicy,
    check_occurrence_date,
    check_participant_count,
    check_slot,
    slots_overlap,
    validate_reservation,
)
from ..models import Reservation, ReservationStatus

logger = logging.getLogger(__name__)


async def create_reservation(
    catalog: ActivityCatalog,
    res_repo: ReservationRepository,
    *,
    actor: Actor,
    activity_id: str,
    schedule_slot: str,
    occurrence_date: date,
    participant_count: int,
    now: datetime,
    policy: DatePolicy,
    single_booking_per_user: bool = True,
) -> Reservation:
    """Validate a booking request and insert it as ``pending``.

    Must run inside a transaction: the bucket lock taken here is what keeps
    concurrent writers on the same bucket from overbooking, and it is only
    released on commit or rollback.
    """
    if not actor.is_active:
        raise UnauthorizedError("user is not active")

    # Catalog lookups happen before any lock is held.
    activity = await catalog.resolve_activity(activity_id)
    if activity is None or not activity.is_active:
        raise ActivityUnavailableError(f"activity {activity_id} is not available")
    check_slot(activity, schedule_slot)
    check_occurrence_date(schedule_slot, occurrence_date, now=now, policy=policy)
    check_participant_count(activity, participant_count)

    bucket = BucketKey(activity_id=activity.id, schedule_slot=schedule_slot, occurrence_date=occurrence_date)
    # Lock order is user-day, then bucket.
    if single_booking_per_user:
        await res_repo.lock_user_day(actor.user_id, occurrence_date)
    await res_repo.lock_bucket(bucket)

    user_has_active = False
    if single_booking_per_user:
        user_has_active = await res_repo.user_has_active(bucket, actor.user_id)
        if not user_has_active:
            await _check_schedule_conflicts(
                res_repo,
                user_id=actor.user_id,
                occurrence_date=occurrence_date,
                schedule_slot=schedule_slot,
                duration_minutes=activity.duration_minutes,
            )
    reserved = await res_repo.sum_reserved(bucket)

    snapshot = BucketSnapshot(
        max_capacity=activity.max_capacity,
        reserved=reserved,
        user_has_active_reservation=user_has_active,
    )
    remaining_after = validate_reservation(snapshot, participant_count=participant_count)

    reservation = await res_repo.create(
        bucket=bucket,
        user_id=actor.user_id,
        participant_count=participant_count,
        total_price=activity.price * participant_count,
        duration_minutes=activity.duration_minutes,
        status=ReservationStatus.PENDING,
    )
    logger.debug(
        "booked %s seats in %s/%s/%s, %s remaining",
        participant_count,
        bucket.activity_id,
        bucket.schedule_slot,
        bucket.occurrence_date,
        remaining_after,
    )
    return reservation


async def _check_schedule_conflicts(
    res_repo: ReservationRepository,
    *,
    user_id: int,
    occurrence_date: date,
    schedule_slot: str,
    duration_minutes: int,
) -> None:
    existing = await res_repo.list_active_for_user_on(user_id, occurrence_date)
    for other in existing:
        other_duration = other.duration_minutes or duration_minutes
        if slots_overlap(schedule_slot, duration_minutes, other.schedule_slot, other_duration):
            raise ScheduleConflictError(
                f"schedule '{schedule_slot}' overlaps your reservation {other.id} at '{other.schedule_slot}'"
            )


async def get_reservation(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    actor: Actor,
) -> Reservation:
    reservation = await res_repo.get(reservation_id)
    if reservation is None:
        raise ReservationNotFoundError("reservation not found")
    if not (actor.is_admin or reservation.user_id == actor.user_id):
        raise ForbiddenError("reservation belongs to another user")
    return reservation


async def list_user_reservations(
    res_repo: ReservationRepository,
    *,
    user_id: int,
    status: ReservationStatus | None = None,
) -> list[Reservation]:
    return await res_repo.list_by_user(user_id, status)


async def list_reservations(
    res_repo: ReservationRepository,
    *,
    actor: Actor,
    activity_id: str | None = None,
    status: ReservationStatus | None = None,
) -> list[Reservation]:
    if not actor.is_admin:
        raise ForbiddenError("listing all reservations requires administrator role")
    return await res_repo.list_all(activity_id=activity_id, status=status)


async def delete_reservation(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    actor: Actor,
) -> Reservation:
    """Administrative hard delete. Confirmed reservations must be cancelled first."""
    if not actor.is_admin:
        raise ForbiddenError("deleting reservations requires administrator role")
    reservation = await res_repo.get_for_update(reservation_id)
    if reservation is None:
        raise ReservationNotFoundError("reservation not found")
    if reservation.status == ReservationStatus.CONFIRMED:
        raise InvalidTransitionError("cannot delete a confirmed reservation")
    await res_repo.delete(reservation)
    return reservation
