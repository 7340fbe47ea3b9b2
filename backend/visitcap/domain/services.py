from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Optional

from ..models import BookingStatus, TimeSlotBooking
from .errors import CapacityExceededError, DuplicateBookingError, InvalidStateError

MAX_VISITORS_PER_BOOKING = 1000
MAX_TEXT_LENGTH = 500


@dataclass(frozen=True)
class AlternativeSlot:
    time_slot_id: int
    name: str
    date_time: datetime
    available_capacity: int
    occupancy_percentage: float


@dataclass
class CapacityValidation:
    is_available: bool
    max_capacity: int
    current_occupancy: int
    available_slots: int
    occupancy_percentage: float
    is_warning_level: bool
    messages: list[str] = field(default_factory=list)
    alternative_slots: list[AlternativeSlot] = field(default_factory=list)


@dataclass(frozen=True)
class OccupancySnapshot:
    date_time: datetime
    location_id: Optional[int]
    current_occupancy: int
    max_capacity: int
    available_slots: int
    occupancy_percentage: float
    is_warning_level: bool
    is_at_capacity: bool


@dataclass(frozen=True)
class OccupancyStatistics:
    start_date: date
    end_date: date
    total_invitations: int
    total_visitors: int
    average_visitors_per_day: float
    peak_day: Optional[date]
    daily_breakdown: dict[date, int]


@dataclass(frozen=True)
class TimeSlotAvailability:
    time_slot_id: int
    name: str
    starts_at: datetime
    ends_at: datetime
    max_visitors: int
    current_bookings: int
    available_spots: int
    is_fully_booked: bool
    occupancy_percentage: float
    next_available_date: Optional[date] = None


@dataclass(frozen=True)
class SlotDateSnapshot:
    max_visitors: int
    reserved: int
    allow_overlapping: bool
    invitation_has_active_booking: bool = False


def occupancy_percentage(current: int, maximum: int) -> float:
    """current / maximum as a percentage rounded half-to-even to 2 places, 0 when maximum is 0."""
    if maximum <= 0:
        return 0.0
    ratio = Decimal(current) / Decimal(maximum) * 100
    return float(ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_EVEN))


def validate_booking(snapshot: SlotDateSnapshot, *, visitor_count: int, label: str = "") -> int:
    """
    Pure validation of a booking against the confirmed total of its slot/date.
    Returns the remaining capacity after the booking. Raises domain errors otherwise.
    """
    available = snapshot.max_visitors - snapshot.reserved
    if visitor_count > available and not snapshot.allow_overlapping:
        raise CapacityExceededError(
            requested=visitor_count,
            available=available,
            current=snapshot.reserved,
            maximum=snapshot.max_visitors,
            label=label,
        )
    if snapshot.invitation_has_active_booking:
        raise DuplicateBookingError("invitation already has an active booking")
    return available - visitor_count


def booking_field_errors(
    *,
    booking_date: date,
    today: date,
    visitor_count: int,
    booked_by: int,
    notes: Optional[str],
) -> list[str]:
    errors: list[str] = []
    if booking_date < today:
        errors.append("Booking date cannot be in the past.")
    if visitor_count <= 0:
        errors.append("Visitor count must be greater than 0.")
    elif visitor_count > MAX_VISITORS_PER_BOOKING:
        errors.append(f"Visitor count cannot exceed {MAX_VISITORS_PER_BOOKING}.")
    if booked_by <= 0:
        errors.append("Booked by must reference a user.")
    if notes is not None and len(notes) > MAX_TEXT_LENGTH:
        errors.append(f"Notes cannot exceed {MAX_TEXT_LENGTH} characters.")
    return errors


def ensure_cancellable(
    booking: TimeSlotBooking,
    *,
    slot_starts_at: datetime,
    now: datetime,
    cutoff_minutes: int = 0,
) -> None:
    if booking.status != BookingStatus.CONFIRMED:
        raise InvalidStateError(f"booking in status '{booking.status}' cannot be cancelled")
    if now >= slot_starts_at - timedelta(minutes=cutoff_minutes):
        raise InvalidStateError("cancellation window closed")


def cancellation_field_errors(*, cancelled_by: int, reason: Optional[str]) -> list[str]:
    errors: list[str] = []
    if cancelled_by <= 0:
        errors.append("Cancelled by must reference a user.")
    if reason is not None and len(reason) > MAX_TEXT_LENGTH:
        errors.append(f"Cancellation reason cannot exceed {MAX_TEXT_LENGTH} characters.")
    return errors
