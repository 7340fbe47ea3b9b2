from datetime import datetime, time, timedelta
from typing import Optional

import pytest
from visitcap.domain.weekdays import WORKDAYS
from visitcap.models import TimeSlot
from visitcap.usecases import alternatives as uc

MONDAY_9 = datetime(2030, 1, 7, 9, 0)


def _slot(
    slot_id: int,
    *,
    start: time = time(9, 0),
    max_visitors: int = 5,
    active_days: int = int(WORKDAYS),
    display_order: int = 1,
) -> TimeSlot:
    return TimeSlot(
        id=slot_id,
        name=f"slot-{slot_id}",
        start_time=start,
        end_time=time(17, 0),
        max_visitors=max_visitors,
        active_days=active_days,
        location_id=None,
        is_active=True,
        is_deleted=False,
        display_order=display_order,
    )


class FakeOccupancyRepo:
    """Occupancy keyed by exact instant; anything else is empty."""

    def __init__(self, occupancy: Optional[dict[datetime, int]] = None) -> None:
        self.occupancy = occupancy or {}
        self.queried: list[datetime] = []

    async def sum_expected_visitors(
        self,
        at: datetime,
        location_id: Optional[int] = None,
        exclude_invitation_id: Optional[int] = None,
    ) -> int:
        self.queried.append(at)
        return self.occupancy.get(at, 0)

    async def list_approved_between(self, *args: object, **kwargs: object) -> list:  # pragma: no cover
        return []


class FakeTimeSlotRepo:
    def __init__(self, *slots: TimeSlot) -> None:
        self.slots = list(slots)
        self.calls = 0

    async def get(self, time_slot_id: int) -> Optional[TimeSlot]:  # pragma: no cover
        return next((s for s in self.slots if s.id == time_slot_id), None)

    async def list_active(self, location_id: Optional[int] = None) -> list[TimeSlot]:
        self.calls += 1
        return sorted(self.slots, key=lambda s: (s.display_order, s.start_time, s.id))


class FlakyTimeSlotRepo(FakeTimeSlotRepo):
    async def list_active(self, location_id: Optional[int] = None) -> list[TimeSlot]:
        self.calls += 1
        if self.calls == 2:
            raise ConnectionError("lost connection")
        return list(self.slots)


@pytest.mark.asyncio
async def test_returns_only_day_with_room() -> None:
    full = {MONDAY_9 + timedelta(days=d): 5 for d in (0, 1, 2, 4, 7)}
    result = await uc.get_alternative_slots(
        FakeOccupancyRepo(full),
        FakeTimeSlotRepo(_slot(1)),
        original=MONDAY_9,
        expected_visitors=1,
        now=MONDAY_9 - timedelta(hours=1),
    )
    assert [a.date_time for a in result] == [datetime(2030, 1, 10, 9, 0)]
    assert result[0].available_capacity == 5
    assert result[0].occupancy_percentage == 0.0


@pytest.mark.asyncio
async def test_never_suggests_original_or_past_instants() -> None:
    result = await uc.get_alternative_slots(
        FakeOccupancyRepo(),
        FakeTimeSlotRepo(_slot(1)),
        original=MONDAY_9,
        expected_visitors=1,
        now=datetime(2030, 1, 9, 12, 0),
    )
    assert [a.date_time for a in result] == [datetime(2030, 1, 10, 9, 0), datetime(2030, 1, 11, 9, 0)]


@pytest.mark.asyncio
async def test_caps_results_and_sorts_nearest_first() -> None:
    afternoon = _slot(1, start=time(14, 0), display_order=1)
    morning = _slot(2, start=time(9, 0), display_order=2)
    slots = FakeTimeSlotRepo(afternoon, morning)
    result = await uc.get_alternative_slots(
        FakeOccupancyRepo(),
        slots,
        original=MONDAY_9,
        expected_visitors=2,
        now=MONDAY_9 - timedelta(days=1),
    )
    times = [a.date_time for a in result]
    assert len(result) == 5
    assert times == sorted(times)
    assert MONDAY_9 not in times
    assert times[0] == datetime(2030, 1, 7, 14, 0)
    # Enough candidates after the third day; later days are never loaded.
    assert slots.calls == 3


@pytest.mark.asyncio
async def test_partial_capacity_reported() -> None:
    tuesday = MONDAY_9 + timedelta(days=1)
    result = await uc.get_alternative_slots(
        FakeOccupancyRepo({tuesday: 2}),
        FakeTimeSlotRepo(_slot(1, max_visitors=8)),
        original=MONDAY_9,
        expected_visitors=6,
        days_to_check=2,
        now=MONDAY_9 - timedelta(hours=1),
    )
    assert len(result) == 1
    assert result[0].available_capacity == 6
    assert result[0].occupancy_percentage == 25.0


@pytest.mark.asyncio
async def test_failed_day_is_skipped() -> None:
    result = await uc.get_alternative_slots(
        FakeOccupancyRepo(),
        FlakyTimeSlotRepo(_slot(1)),
        original=MONDAY_9,
        expected_visitors=1,
        days_to_check=3,
        now=MONDAY_9 - timedelta(hours=1),
    )
    assert [a.date_time for a in result] == [datetime(2030, 1, 9, 9, 0)]


@pytest.mark.asyncio
async def test_no_days_to_check_returns_empty() -> None:
    result = await uc.get_alternative_slots(
        FakeOccupancyRepo(),
        FakeTimeSlotRepo(_slot(1)),
        original=MONDAY_9,
        expected_visitors=1,
        days_to_check=0,
        now=MONDAY_9 - timedelta(hours=1),
    )
    assert result == []
