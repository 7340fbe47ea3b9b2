import logging
from datetime import datetime, timedelta
from typing import Optional

from ..domain.repositories import InvitationRepository, TimeSlotRepository
from ..domain.services import AlternativeSlot, occupancy_percentage
from ..utils.time import facility_now
from .occupancy import get_current_occupancy

logger = logging.getLogger(__name__)


async def get_alternative_slots(
    invitation_repo: InvitationRepository,
    time_slot_repo: TimeSlotRepository,
    *,
    original: datetime,
    expected_visitors: int,
    location_id: Optional[int] = None,
    days_to_check: int = 7,
    max_results: int = 5,
    now: Optional[datetime] = None,
) -> list[AlternativeSlot]:
    """
    Scan forward day by day from the requested date for slot start times with room
    for `expected_visitors`. Stops after the first day that brings the count to
    `max_results`; results are nearest first.

    Only suggestions come out of here, so a failing day is logged and skipped.
    """
    now = now or facility_now()
    candidates: list[AlternativeSlot] = []
    start_day = original.date()

    for offset in range(days_to_check):
        check_date = start_day + timedelta(days=offset)
        try:
            slots = await time_slot_repo.list_active(location_id)
            for slot in slots:
                if not slot.is_active_on(check_date):
                    continue
                slot_start = slot.starts_on(check_date)
                if slot_start == original or slot_start < now:
                    continue

                occupancy = await get_current_occupancy(invitation_repo, at=slot_start, location_id=location_id)
                available = slot.max_visitors - occupancy
                if available >= expected_visitors:
                    candidates.append(
                        AlternativeSlot(
                            time_slot_id=slot.id,
                            name=slot.name,
                            date_time=slot_start,
                            available_capacity=available,
                            occupancy_percentage=occupancy_percentage(occupancy, slot.max_visitors),
                        )
                    )
        except Exception:
            logger.warning("skipping %s while searching alternative slots", check_date, exc_info=True)
            continue

        if len(candidates) >= max_results:
            break

    candidates.sort(key=lambda candidate: candidate.date_time)
    return candidates[:max_results]
