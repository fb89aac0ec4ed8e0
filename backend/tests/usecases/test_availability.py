from datetime import date, datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
from ledger_fakes import FakeCatalog, FakeLedgerStore, FakeReservationRepo
from reservations_api.domain.entities import ActivitySnapshot, Actor
from reservations_api.domain.errors import ActivityNotFoundError, InvalidDateError, InvalidSlotError
from reservations_api.domain.services import DatePolicy
from reservations_api.usecases import availability as uc
from reservations_api.usecases import lifecycle
from reservations_api.usecases import reservations as writer

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
FRIDAY = date(2030, 1, 4)
POLICY = DatePolicy(tz=ZoneInfo("UTC"))
ACTIVITY = ActivitySnapshot(
    id="act-1",
    max_capacity=10,
    schedule=("Friday 18:00", "Friday 20:00"),
    price=Decimal("5.00"),
)


async def _book(store: FakeLedgerStore, catalog: FakeCatalog, *, user_id: int, count: int, slot: str = "Friday 18:00"):
    repo = FakeReservationRepo(store)
    async with repo.begin():
        return await writer.create_reservation(
            catalog,
            repo,
            actor=Actor(user_id=user_id),
            activity_id=ACTIVITY.id,
            schedule_slot=slot,
            occurrence_date=FRIDAY,
            participant_count=count,
            now=NOW,
            policy=POLICY,
        )


async def _remaining(store: FakeLedgerStore, catalog: FakeCatalog, slot: str = "Friday 18:00") -> int:
    availability = await uc.get_availability(
        catalog,
        FakeReservationRepo(store),
        activity_id=ACTIVITY.id,
        schedule_slot=slot,
        occurrence_date=FRIDAY,
        now=NOW,
        policy=POLICY,
    )
    return availability.remaining


@pytest.mark.asyncio
async def test_empty_bucket_reports_full_capacity() -> None:
    assert await _remaining(FakeLedgerStore(), FakeCatalog(ACTIVITY)) == 10


@pytest.mark.asyncio
async def test_repeated_reads_are_stable() -> None:
    store, catalog = FakeLedgerStore(), FakeCatalog(ACTIVITY)
    await _book(store, catalog, user_id=1, count=3)
    first = await _remaining(store, catalog)
    second = await _remaining(store, catalog)
    assert first == second == 7


@pytest.mark.asyncio
async def test_reads_take_no_locks() -> None:
    store, catalog = FakeLedgerStore(), FakeCatalog(ACTIVITY)
    repo = FakeReservationRepo(store)
    await uc.get_availability(
        catalog,
        repo,
        activity_id=ACTIVITY.id,
        schedule_slot="Friday 18:00",
        occurrence_date=FRIDAY,
        now=NOW,
        policy=POLICY,
    )
    assert repo.locked_buckets == []
    assert repo.held == []


@pytest.mark.asyncio
async def test_cancellation_frees_exactly_its_seats() -> None:
    store, catalog = FakeLedgerStore(), FakeCatalog(ACTIVITY)
    reservation = await _book(store, catalog, user_id=1, count=4)
    await _book(store, catalog, user_id=2, count=2)
    before = await _remaining(store, catalog)

    repo = FakeReservationRepo(store)
    async with repo.begin():
        await lifecycle.cancel_reservation(repo, reservation_id=reservation.id, actor=Actor(user_id=1))

    assert await _remaining(store, catalog) == before + 4


@pytest.mark.asyncio
async def test_unknown_activity_is_not_found() -> None:
    with pytest.raises(ActivityNotFoundError):
        await uc.get_availability(
            FakeCatalog(),
            FakeReservationRepo(FakeLedgerStore()),
            activity_id="missing",
            schedule_slot="Friday 18:00",
            occurrence_date=FRIDAY,
            now=NOW,
            policy=POLICY,
        )


@pytest.mark.asyncio
async def test_unknown_slot_is_rejected() -> None:
    with pytest.raises(InvalidSlotError):
        await _remaining(FakeLedgerStore(), FakeCatalog(ACTIVITY), slot="Sunday 10:00")


@pytest.mark.asyncio
async def test_past_date_is_rejected() -> None:
    with pytest.raises(InvalidDateError):
        await uc.get_availability(
            FakeCatalog(ACTIVITY),
            FakeReservationRepo(FakeLedgerStore()),
            activity_id=ACTIVITY.id,
            schedule_slot="Friday 18:00",
            occurrence_date=date(2029, 12, 28),
            now=NOW,
            policy=POLICY,
        )


@pytest.mark.asyncio
async def test_slot_map_lists_every_slot_in_schedule_order() -> None:
    store, catalog = FakeLedgerStore(), FakeCatalog(ACTIVITY)
    await _book(store, catalog, user_id=1, count=3, slot="Friday 20:00")
    items = await uc.list_activity_availability(
        catalog,
        FakeReservationRepo(store),
        activity_id=ACTIVITY.id,
        occurrence_date=FRIDAY,
        now=NOW,
        policy=POLICY,
    )
    assert [(i.bucket.schedule_slot, i.remaining) for i in items] == [("Friday 18:00", 10), ("Friday 20:00", 7)]


@pytest.mark.asyncio
async def test_slot_map_skips_started_slots_under_slot_cutoff() -> None:
    policy = DatePolicy(tz=ZoneInfo("UTC"), cutoff="slot", grace_minutes=0)
    now = datetime(2030, 1, 4, 19, 0, tzinfo=timezone.utc)
    items = await uc.list_activity_availability(
        FakeCatalog(ACTIVITY),
        FakeReservationRepo(FakeLedgerStore()),
        activity_id=ACTIVITY.id,
        occurrence_date=FRIDAY,
        now=now,
        policy=policy,
    )
    assert [i.bucket.schedule_slot for i in items] == ["Friday 20:00"]
