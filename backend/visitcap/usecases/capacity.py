import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Optional

from ..config import Settings, get_settings
from ..domain.errors import BookingValidationError
from ..domain.repositories import InvitationRepository, LocationRepository, TimeSlotRepository
from ..domain.services import (
    CapacityValidation,
    OccupancySnapshot,
    OccupancyStatistics,
    occupancy_percentage,
)
from ..models import TimeSlot
from .alternatives import get_alternative_slots
from .occupancy import get_current_occupancy

logger = logging.getLogger(__name__)

VIP_OVERRIDE_MESSAGE = "VIP override applied - capacity limit bypassed"


async def find_time_slot(
    time_slot_repo: TimeSlotRepository,
    *,
    at: datetime,
    location_id: Optional[int] = None,
    time_slot_id: Optional[int] = None,
) -> Optional[TimeSlot]:
    slots = await time_slot_repo.list_active(location_id)
    for slot in slots:
        if time_slot_id is not None and slot.id != time_slot_id:
            continue
        if slot.is_active_on(at.date()) and slot.contains_time(at):
            return slot
    return None


async def get_max_capacity(
    time_slot_repo: TimeSlotRepository,
    location_repo: LocationRepository,
    *,
    at: datetime,
    location_id: Optional[int] = None,
    time_slot_id: Optional[int] = None,
    default_capacity: int = 100,
) -> int:
    capacity: Optional[int] = None

    slot = await find_time_slot(time_slot_repo, at=at, location_id=location_id, time_slot_id=time_slot_id)
    if slot is not None:
        capacity = slot.max_visitors
        logger.debug("time slot %r capacity: %d", slot.name, capacity)

    if location_id is not None:
        location = await location_repo.get(location_id)
        if location is not None:
            capacity = location.max_capacity if capacity is None else min(capacity, location.max_capacity)
            logger.debug("location %d capacity: %d, effective: %d", location_id, location.max_capacity, capacity)

    if capacity is None:
        logger.warning(
            "no capacity configured for %s at location %s, using default %d", at, location_id, default_capacity
        )
        capacity = default_capacity
    return capacity


async def validate_capacity(
    invitation_repo: InvitationRepository,
    time_slot_repo: TimeSlotRepository,
    location_repo: LocationRepository,
    *,
    at: datetime,
    expected_visitors: int,
    location_id: Optional[int] = None,
    time_slot_id: Optional[int] = None,
    is_vip_request: bool = False,
    exclude_invitation_id: Optional[int] = None,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> CapacityValidation:
    settings = settings or get_settings()
    try:
        max_capacity = await get_max_capacity(
            time_slot_repo,
            location_repo,
            at=at,
            location_id=location_id,
            time_slot_id=time_slot_id,
            default_capacity=settings.default_capacity,
        )
        current = await get_current_occupancy(
            invitation_repo,
            at=at,
            location_id=location_id,
            exclude_invitation_id=exclude_invitation_id,
        )
    except Exception:
        logger.exception("capacity validation failed for %d visitors at %s", expected_visitors, at)
        raise

    available = max_capacity - current
    percentage = occupancy_percentage(current, max_capacity)
    result = CapacityValidation(
        is_available=available >= expected_visitors,
        max_capacity=max_capacity,
        current_occupancy=current,
        available_slots=available,
        occupancy_percentage=percentage,
        is_warning_level=percentage >= settings.warning_threshold,
    )

    if not result.is_available and is_vip_request:
        result.is_available = True
        result.messages.append(VIP_OVERRIDE_MESSAGE)
        logger.info("VIP override applied for %d visitors at %s", expected_visitors, at)

    if not result.is_available:
        result.messages.append(
            f"Insufficient capacity: {expected_visitors} visitors requested, only {available} slots available"
        )
        result.alternative_slots = await get_alternative_slots(
            invitation_repo,
            time_slot_repo,
            original=at,
            expected_visitors=expected_visitors,
            location_id=location_id,
            days_to_check=settings.alternative_days,
            max_results=settings.max_alternatives,
            now=now,
        )
    elif result.is_warning_level:
        result.messages.append(f"Warning: Facility is at {percentage:g}% capacity")
    return result


async def get_occupancy_snapshot(
    invitation_repo: InvitationRepository,
    time_slot_repo: TimeSlotRepository,
    location_repo: LocationRepository,
    *,
    at: datetime,
    location_id: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> OccupancySnapshot:
    settings = settings or get_settings()
    current = await get_current_occupancy(invitation_repo, at=at, location_id=location_id)
    max_capacity = await get_max_capacity(
        time_slot_repo,
        location_repo,
        at=at,
        location_id=location_id,
        default_capacity=settings.default_capacity,
    )
    percentage = occupancy_percentage(current, max_capacity)
    return OccupancySnapshot(
        date_time=at,
        location_id=location_id,
        current_occupancy=current,
        max_capacity=max_capacity,
        available_slots=max(0, max_capacity - current),
        occupancy_percentage=percentage,
        is_warning_level=max_capacity > 0 and percentage >= settings.warning_threshold,
        is_at_capacity=current >= max_capacity,
    )


async def get_occupancy_statistics(
    invitation_repo: InvitationRepository,
    *,
    start_date: date,
    end_date: date,
    location_id: Optional[int] = None,
) -> OccupancyStatistics:
    if start_date > end_date:
        raise BookingValidationError(["Start date must not be after end date."])

    invitations = await invitation_repo.list_approved_between(start_date, end_date, location_id)
    daily: dict[date, int] = defaultdict(int)
    for invitation in invitations:
        daily[invitation.scheduled_start_time.date()] += invitation.expected_visitor_count

    breakdown = dict(sorted(daily.items()))
    total_visitors = sum(breakdown.values())
    average = round(total_visitors / len(breakdown), 2) if breakdown else 0.0
    # Earliest day wins ties.
    peak_day = max(breakdown, key=lambda day: (breakdown[day], -day.toordinal())) if breakdown else None
    return OccupancyStatistics(
        start_date=start_date,
        end_date=end_date,
        total_invitations=len(invitations),
        total_visitors=total_visitors,
        average_visitors_per_day=average,
        peak_day=peak_day,
        daily_breakdown=breakdown,
    )
