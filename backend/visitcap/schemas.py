from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from .domain.services import (
    AlternativeSlot,
    CapacityValidation,
    OccupancySnapshot,
    OccupancyStatistics,
    TimeSlotAvailability,
)
from .models import BookingStatus, TimeSlotBooking


class CapacityValidationRequest(BaseModel):
    date_time: datetime
    expected_visitors: int = Field(ge=1)
    location_id: Optional[int] = None
    time_slot_id: Optional[int] = None
    is_vip_request: bool = False
    exclude_invitation_id: Optional[int] = None


class AlternativeSlotRead(BaseModel):
    time_slot_id: int
    name: str
    date_time: datetime
    available_capacity: int
    occupancy_percentage: float

    @classmethod
    def from_domain(cls, slot: AlternativeSlot) -> "AlternativeSlotRead":
        return cls(
            time_slot_id=slot.time_slot_id,
            name=slot.name,
            date_time=slot.date_time,
            available_capacity=slot.available_capacity,
            occupancy_percentage=slot.occupancy_percentage,
        )


class CapacityValidationRead(BaseModel):
    is_available: bool
    max_capacity: int
    current_occupancy: int
    available_slots: int
    occupancy_percentage: float
    is_warning_level: bool
    messages: list[str]
    alternative_slots: list[AlternativeSlotRead]

    @classmethod
    def from_domain(cls, result: CapacityValidation) -> "CapacityValidationRead":
        return cls(
            is_available=result.is_available,
            max_capacity=result.max_capacity,
            current_occupancy=result.current_occupancy,
            available_slots=result.available_slots,
            occupancy_percentage=result.occupancy_percentage,
            is_warning_level=result.is_warning_level,
            messages=list(result.messages),
            alternative_slots=[AlternativeSlotRead.from_domain(s) for s in result.alternative_slots],
        )


class OccupancyRead(BaseModel):
    date_time: datetime
    location_id: Optional[int]
    current_occupancy: int
    max_capacity: int
    available_slots: int
    occupancy_percentage: float
    is_warning_level: bool
    is_at_capacity: bool

    @classmethod
    def from_domain(cls, snapshot: OccupancySnapshot) -> "OccupancyRead":
        return cls(**vars(snapshot))


class OccupancyStatisticsRead(BaseModel):
    start_date: date
    end_date: date
    total_invitations: int
    total_visitors: int
    average_visitors_per_day: float
    peak_day: Optional[date]
    daily_breakdown: dict[date, int]

    @classmethod
    def from_domain(cls, stats: OccupancyStatistics) -> "OccupancyStatisticsRead":
        return cls(**vars(stats))


class TimeSlotAvailabilityRead(BaseModel):
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

    @classmethod
    def from_domain(cls, item: TimeSlotAvailability) -> "TimeSlotAvailabilityRead":
        return cls(**vars(item))


class BookingCreate(BaseModel):
    booking_date: date
    visitor_count: int = Field(default=1, ge=1, le=1000)
    invitation_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class BookingRead(BaseModel):
    booking_id: int
    time_slot_id: int
    booking_date: date
    invitation_id: Optional[int]
    visitor_count: int
    notes: Optional[str]
    status: BookingStatus
    booked_by: int
    booked_on: datetime
    cancelled_by: Optional[int] = None
    cancelled_on: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    @classmethod
    def from_db(cls, *, booking: TimeSlotBooking) -> "BookingRead":
        return cls(
            booking_id=booking.id,
            time_slot_id=booking.time_slot_id,
            booking_date=booking.booking_date,
            invitation_id=booking.invitation_id,
            visitor_count=booking.visitor_count,
            notes=booking.notes,
            status=booking.status,
            booked_by=booking.booked_by,
            booked_on=booking.booked_on,
            cancelled_by=booking.cancelled_by,
            cancelled_on=booking.cancelled_on,
            cancellation_reason=booking.cancellation_reason,
        )
