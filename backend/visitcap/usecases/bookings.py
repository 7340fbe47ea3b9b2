import logging
from datetime import date, datetime, timedelta
from typing import Optional

from ..domain.errors import BookingValidationError, InvalidStateError, NotFoundError
from ..domain.repositories import BookingRepository, TimeSlotRepository
from ..domain.services import (
    SlotDateSnapshot,
    TimeSlotAvailability,
    booking_field_errors,
    cancellation_field_errors,
    ensure_cancellable,
    occupancy_percentage,
    validate_booking,
)
from ..models import BookingStatus, TimeSlot, TimeSlotBooking
from ..utils.time import facility_now, facility_today

logger = logging.getLogger(__name__)


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


async def book_slot(
    time_slot_repo: TimeSlotRepository,
    booking_repo: BookingRepository,
    *,
    time_slot_id: int,
    booking_date: date,
    visitor_count: int,
    booked_by: int,
    invitation_id: Optional[int] = None,
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> TimeSlotBooking:
    today = today or facility_today()
    notes = _clean_text(notes)

    # Lock before any plain read; the transaction snapshot must postdate the previous holder's commit.
    async with booking_repo.locked_slot_date(time_slot_id, booking_date):
        slot = await time_slot_repo.get(time_slot_id)
        if slot is None or slot.is_deleted:
            raise NotFoundError(f"time slot {time_slot_id} not found")
        if not slot.is_active:
            raise InvalidStateError("cannot book an inactive time slot")
        if booking_date < today:
            raise BookingValidationError(["Cannot book a time slot for a past date."])
        if not slot.is_active_on(booking_date):
            raise InvalidStateError(f"time slot '{slot.name}' is not active on {booking_date:%A}")

        reserved = await booking_repo.sum_confirmed(time_slot_id, booking_date)
        has_active = invitation_id is not None and await booking_repo.invitation_has_active(invitation_id)
        snapshot = SlotDateSnapshot(
            max_visitors=slot.max_visitors,
            reserved=reserved,
            allow_overlapping=slot.allow_overlapping,
            invitation_has_active_booking=has_active,
        )
        validate_booking(snapshot, visitor_count=visitor_count, label=f"{slot.name} on {booking_date:%Y-%m-%d}")

        errors = booking_field_errors(
            booking_date=booking_date,
            today=today,
            visitor_count=visitor_count,
            booked_by=booked_by,
            notes=notes,
        )
        if errors:
            raise BookingValidationError(errors)

        booking = await booking_repo.create(
            time_slot_id=time_slot_id,
            booking_date=booking_date,
            invitation_id=invitation_id,
            visitor_count=visitor_count,
            notes=notes,
            status=BookingStatus.CONFIRMED,
            booked_by=booked_by,
            booked_on=facility_now(),
        )
    logger.info(
        "booked %d visitor(s) on slot %d for %s (%d/%d)",
        visitor_count,
        time_slot_id,
        booking_date,
        reserved + visitor_count,
        slot.max_visitors,
    )
    return booking


async def cancel_booking(
    time_slot_repo: TimeSlotRepository,
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    cancelled_by: int,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
    cutoff_minutes: int = 0,
) -> tuple[TimeSlotBooking, BookingStatus]:
    """Cancel a confirmed booking. Returns the booking and the status it had before."""
    now = now or facility_now()
    booking = await booking_repo.get_for_update(booking_id)
    if booking is None:
        raise NotFoundError(f"booking {booking_id} not found")

    slot = await time_slot_repo.get(booking.time_slot_id)
    if slot is None:
        raise NotFoundError(f"time slot {booking.time_slot_id} not found")

    ensure_cancellable(
        booking,
        slot_starts_at=slot.starts_on(booking.booking_date),
        now=now,
        cutoff_minutes=cutoff_minutes,
    )

    reason = _clean_text(reason)
    errors = cancellation_field_errors(cancelled_by=cancelled_by, reason=reason)
    if errors:
        raise BookingValidationError(errors)

    previous = booking.status
    booking.status = BookingStatus.CANCELLED
    booking.cancelled_by = cancelled_by
    booking.cancelled_on = now
    booking.cancellation_reason = reason
    updated = await booking_repo.cancel(booking)
    return updated, previous


async def _next_available_date(
    booking_repo: BookingRepository,
    slot: TimeSlot,
    *,
    after: date,
    lookahead_days: int,
) -> Optional[date]:
    for offset in range(1, lookahead_days + 1):
        check_date = after + timedelta(days=offset)
        if not slot.is_active_on(check_date):
            continue
        if await booking_repo.sum_confirmed(slot.id, check_date) < slot.max_visitors:
            return check_date
    return None


async def list_available_time_slots(
    time_slot_repo: TimeSlotRepository,
    booking_repo: BookingRepository,
    *,
    on_date: date,
    location_id: Optional[int] = None,
    lookahead_days: int = 30,
) -> list[TimeSlotAvailability]:
    items: list[TimeSlotAvailability] = []
    for slot in await time_slot_repo.list_active(location_id):
        if not slot.is_active_on(on_date):
            continue
        current = await booking_repo.sum_confirmed(slot.id, on_date)
        remaining = slot.max_visitors - current
        fully_booked = remaining <= 0
        next_date = None
        if fully_booked:
            next_date = await _next_available_date(booking_repo, slot, after=on_date, lookahead_days=lookahead_days)
        items.append(
            TimeSlotAvailability(
                time_slot_id=slot.id,
                name=slot.name,
                starts_at=slot.starts_on(on_date),
                ends_at=datetime.combine(on_date, slot.end_time),
                max_visitors=slot.max_visitors,
                current_bookings=current,
                available_spots=max(0, remaining),
                is_fully_booked=fully_booked,
                occupancy_percentage=occupancy_percentage(current, slot.max_visitors),
                next_available_date=next_date,
            )
        )
    return items
