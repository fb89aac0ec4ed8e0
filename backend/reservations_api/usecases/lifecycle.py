from datetime import datetime, timezone

from ..domain.entities import Actor
from ..domain.errors import ReservationNotFoundError
from ..domain.repositories import ReservationRepository
from ..domain.services import check_version, next_status
from ..models import Reservation, ReservationStatus


async def transition_reservation(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    target_status: ReservationStatus,
    actor: Actor,
    expected_version: int | None = None,
) -> tuple[Reservation, ReservationStatus]:
    """Move a reservation along pending -> confirmed -> cancelled.

    Returns the updated reservation and the status it had before.
    """
    reservation = await res_repo.get_for_update(reservation_id)
    if reservation is None:
        raise ReservationNotFoundError("reservation not found")

    previous = reservation.status
    new_status = next_status(previous, target_status, actor=actor, owner_id=reservation.user_id)
    # State machine errors take precedence over a stale version.
    check_version(reservation.version, expected_version)

    reservation.status = new_status
    reservation.version += 1
    reservation.updated_at = datetime.now(timezone.utc).replace(tzinfo=None)
    updated = await res_repo.save(reservation)
    return updated, previous


async def cancel_reservation(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    actor: Actor,
    expected_version: int | None = None,
) -> tuple[Reservation, ReservationStatus]:
    return await transition_reservation(
        res_repo,
        reservation_id=reservation_id,
        target_status=ReservationStatus.CANCELLED,
        actor=actor,
        expected_version=expected_version,
    )


async def confirm_reservation(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    actor: Actor,
    expected_version: int | None = None,
) -> tuple[Reservation, ReservationStatus]:
    return await transition_reservation(
        res_repo,
        reservation_id=reservation_id,
        target_status=ReservationStatus.CONFIRMED,
        actor=actor,
        expected_version=expected_version,
    )
