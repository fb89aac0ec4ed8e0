from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_activity_catalog, get_current_actor, get_date_policy, get_session
from ..domain.errors import ReservationError
from ..domain.repositories import ActivityCatalog
from ..domain.services import DatePolicy
from ..infrastructure.repositories import SqlAlchemyReservationRepository
from ..schemas import BucketAvailability
from ..usecases import availability as availability_usecase
from ..utils.time import utc_now
from .errors import to_http_exception

router = APIRouter(prefix="/activities", tags=["availability"], dependencies=[Depends(get_current_actor)])


@router.get("/{activity_id}/availability", response_model=BucketAvailability)
async def get_availability(
    activity_id: str,
    schedule_slot: str = Query(..., min_length=1, description="Slot label, e.g. 'Friday 18:00'"),
    occurrence_date: date = Query(..., description="Calendar date of the occurrence (YYYY-MM-DD)"),
    session: AsyncSession = Depends(get_session),
    catalog: ActivityCatalog = Depends(get_activity_catalog),
    policy: DatePolicy = Depends(get_date_policy),
) -> BucketAvailability:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        availability = await availability_usecase.get_availability(
            catalog,
            res_repo,
            activity_id=activity_id,
            schedule_slot=schedule_slot,
            occurrence_date=occurrence_date,
            now=utc_now(),
            policy=policy,
        )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return BucketAvailability.from_domain(availability)


@router.get("/{activity_id}/availability/slots", response_model=List[BucketAvailability])
async def list_slot_availability(
    activity_id: str,
    occurrence_date: date = Query(..., description="Calendar date of the occurrence (YYYY-MM-DD)"),
    session: AsyncSession = Depends(get_session),
    catalog: ActivityCatalog = Depends(get_activity_catalog),
    policy: DatePolicy = Depends(get_date_policy),
) -> list[BucketAvailability]:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        items = await availability_usecase.list_activity_availability(
            catalog,
            res_repo,
            activity_id=activity_id,
            occurrence_date=occurrence_date,
            now=utc_now(),
            policy=policy,
        )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return [BucketAvailability.from_domain(item) for item in items]
