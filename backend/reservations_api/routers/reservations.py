from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Path, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_activity_catalog, get_current_actor, get_date_policy, get_session
from ..domain.entities import ADMIN_ROLE, SYSTEM_ROLE, Actor
from ..domain.errors import ReservationError
from ..domain.repositories import ActivityCatalog
from ..domain.services import DatePolicy
from ..infrastructure.repositories import SqlAlchemyReservationRepository
from ..models import Reservation, ReservationStatus
from ..schemas import (
    ReservationCreate,
    ReservationRead,
    ReservationTransition,
    ReservationVersion,
    parse_status_filter,
)
from ..usecases import lifecycle as lifecycle_usecase
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import AuditAction, AuditInitiator, emit_audit_log
from ..utils.time import booking_zone, utc_now
from .errors import to_http_exception

router = APIRouter(prefix="", tags=["reservations"])

_TRANSITION_ACTIONS: dict[ReservationStatus, AuditAction] = {
    ReservationStatus.CONFIRMED: "reservation.confirmed",
    ReservationStatus.CANCELLED: "reservation.cancelled",
}


def _read(reservation: Reservation, response: Response | None = None) -> ReservationRead:
    if response is not None:
        response.headers["ETag"] = f'"{reservation.version}"'
    tz = booking_zone(get_settings().booking_timezone)
    return ReservationRead.from_db(reservation=reservation, tz=tz)


def _initiator(actor: Actor) -> AuditInitiator:
    if actor.role == ADMIN_ROLE:
        return "admin"
    if actor.role == SYSTEM_ROLE:
        return "system"
    return "user"


def _extract_version(
    if_match: Optional[str],
    payload: Optional[ReservationVersion | ReservationTransition],
) -> int | None:
    """Expected version from If-Match (preferred) or the body; None when neither is given."""
    if if_match is not None:
        raw = if_match.strip()
        if raw.startswith("W/"):
            raw = raw[2:]
        raw = raw.strip('"')
        try:
            version = int(raw)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid If-Match header") from exc
        if version < 1:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="version must be >= 1")
        return version
    if payload is not None and payload.version is not None:
        if payload.version < 1:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="version must be >= 1")
        return payload.version
    return None


def _status_filter(value: Optional[str]) -> Optional[ReservationStatus]:
    try:
        return parse_status_filter(value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


def _audit(
    *,
    action: AuditAction,
    actor: Actor,
    reservation: Reservation,
    status_from: Optional[ReservationStatus],
    status_to: Optional[ReservationStatus],
) -> None:
    try:
        emit_audit_log(
            action=action,
            initiator=_initiator(actor),
            reservation_id=reservation.id,
            activity_id=reservation.activity_id,
            schedule_slot=reservation.schedule_slot,
            occurrence_date=reservation.occurrence_date,
            user_id=reservation.user_id,
            actor_id=actor.user_id,
            participant_count=reservation.participant_count,
            status_from=status_from,
            status_to=status_to,
            version=reservation.version,
        )
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc


@router.post("/reservations", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    response: Response,
    session: AsyncSession = Depends(get_session),
    catalog: ActivityCatalog = Depends(get_activity_catalog),
    policy: DatePolicy = Depends(get_date_policy),
    actor: Actor = Depends(get_current_actor),
) -> ReservationRead:
    res_repo = SqlAlchemyReservationRepository(session)
    async with session.begin():
        try:
            reservation = await reservation_usecase.create_reservation(
                catalog,
                res_repo,
                actor=actor,
                activity_id=payload.activity_id,
                schedule_slot=payload.schedule_slot,
                occurrence_date=payload.occurrence_date,
                participant_count=payload.participant_count,
                now=utc_now(),
                policy=policy,
                single_booking_per_user=get_settings().single_booking_per_user,
            )
        except ReservationError as exc:
            raise to_http_exception(exc) from exc

    _audit(
        action="reservation.created",
        actor=actor,
        reservation=reservation,
        status_from=None,
        status_to=reservation.status,
    )
    return _read(reservation, response)


@router.get("/reservations", response_model=List[ReservationRead])
async def list_reservations(
    activity_id: Optional[str] = Query(default=None),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> list[ReservationRead]:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        rows = await reservation_usecase.list_reservations(
            res_repo,
            actor=actor,
            activity_id=activity_id,
            status=_status_filter(status_filter),
        )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return [_read(res) for res in rows]


@router.get("/me/reservations", response_model=List[ReservationRead])
async def list_my_reservations(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> list[ReservationRead]:
    res_repo = SqlAlchemyReservationRepository(session)
    rows = await reservation_usecase.list_user_reservations(
        res_repo,
        user_id=actor.user_id,
        status=_status_filter(status_filter),
    )
    return [_read(res) for res in rows]


@router.get("/reservations/{reservation_id}", response_model=ReservationRead)
async def get_reservation(
    response: Response,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> ReservationRead:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        reservation = await reservation_usecase.get_reservation(res_repo, reservation_id=reservation_id, actor=actor)
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return _read(reservation, response)


async def _transition(
    *,
    session: AsyncSession,
    reservation_id: int,
    target_status: ReservationStatus,
    actor: Actor,
    expected_version: int | None,
) -> Reservation:
    res_repo = SqlAlchemyReservationRepository(session)
    async with session.begin():
        try:
            updated, previous = await lifecycle_usecase.transition_reservation(
                res_repo,
                reservation_id=reservation_id,
                target_status=target_status,
                actor=actor,
                expected_version=expected_version,
            )
        except ReservationError as exc:
            raise to_http_exception(exc) from exc

    _audit(
        action=_TRANSITION_ACTIONS[updated.status],
        actor=actor,
        reservation=updated,
        status_from=previous,
        status_to=updated.status,
    )
    return updated


@router.post("/reservations/{reservation_id}/transitions", response_model=ReservationRead)
async def transition_reservation(
    response: Response,
    payload: ReservationTransition,
    reservation_id: int = Path(..., ge=1),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> ReservationRead:
    updated = await _transition(
        session=session,
        reservation_id=reservation_id,
        target_status=payload.target_status,
        actor=actor,
        expected_version=_extract_version(if_match, payload),
    )
    return _read(updated, response)


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationRead)
async def cancel_reservation(
    response: Response,
    reservation_id: int = Path(..., ge=1),
    payload: Optional[ReservationVersion] = Body(default=None),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> ReservationRead:
    updated = await _transition(
        session=session,
        reservation_id=reservation_id,
        target_status=ReservationStatus.CANCELLED,
        actor=actor,
        expected_version=_extract_version(if_match, payload),
    )
    return _read(updated, response)


@router.post("/reservations/{reservation_id}/confirm", response_model=ReservationRead)
async def confirm_reservation(
    response: Response,
    reservation_id: int = Path(..., ge=1),
    payload: Optional[ReservationVersion] = Body(default=None),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> ReservationRead:
    updated = await _transition(
        session=session,
        reservation_id=reservation_id,
        target_status=ReservationStatus.CONFIRMED,
        actor=actor,
        expected_version=_extract_version(if_match, payload),
    )
    return _read(updated, response)


@router.delete("/reservations/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
) -> Response:
    res_repo = SqlAlchemyReservationRepository(session)
    async with session.begin():
        try:
            deleted = await reservation_usecase.delete_reservation(res_repo, reservation_id=reservation_id, actor=actor)
        except ReservationError as exc:
            raise to_http_exception(exc) from exc

    _audit(
        action="reservation.deleted",
        actor=actor,
        reservation=deleted,
        status_from=deleted.status,
        status_to=None,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
