from datetime import date, datetime

from ..domain.entities import ActivitySnapshot, Availability, BucketKey
from ..domain.errors import ActivityNotFoundError, InvalidDateError
from ..domain.repositories import ActivityCatalog, ReservationRepository
from ..domain.services import DatePolicy, check_occurrence_date, check_occurrence_day, check_slot


async def _resolve(catalog: ActivityCatalog, activity_id: str) -> ActivitySnapshot:
    activity = await catalog.resolve_activity(activity_id)
    if activity is None:
        raise ActivityNotFoundError(f"activity {activity_id} not found")
    return activity


async def get_availability(
    catalog: ActivityCatalog,
    res_repo: ReservationRepository,
    *,
    activity_id: str,
    schedule_slot: str,
    occurrence_date: date,
    now: datetime,
    policy: DatePolicy,
) -> Availability:
    activity = await _resolve(catalog, activity_id)
    check_slot(activity, schedule_slot)
    check_occurrence_date(schedule_slot, occurrence_date, now=now, policy=policy)

    bucket = BucketKey(activity_id=activity.id, schedule_slot=schedule_slot, occurrence_date=occurrence_date)
    reserved = await res_repo.sum_reserved(bucket)
    return Availability(bucket=bucket, max_capacity=activity.max_capacity, reserved=reserved)


async def list_activity_availability(
    catalog: ActivityCatalog,
    res_repo: ReservationRepository,
    *,
    activity_id: str,
    occurrence_date: date,
    now: datetime,
    policy: DatePolicy,
) -> list[Availability]:
    """Availability of every slot of an activity on one date, in schedule order.

    Slots whose occurrence is already past under ``policy`` are left out.
    """
    activity = await _resolve(catalog, activity_id)
    check_occurrence_day(occurrence_date, now=now, policy=policy)

    reserved_by_slot = await res_repo.sum_reserved_by_slot(activity.id, occurrence_date)
    items: list[Availability] = []
    for slot in activity.schedule:
        try:
            check_occurrence_date(slot, occurrence_date, now=now, policy=policy)
        except InvalidDateError:
            continue
        items.append(
            Availability(
                bucket=BucketKey(activity_id=activity.id, schedule_slot=slot, occurrence_date=occurrence_date),
                max_capacity=activity.max_capacity,
                reserved=reserved_by_slot.get(slot, 0),
            )
        )
    return items
