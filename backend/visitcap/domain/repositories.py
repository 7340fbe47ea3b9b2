from __future__ import annotations

from datetime import date, datetime
from typing import AsyncContextManager, Protocol

from ..models import BookingStatus, Invitation, Location, TimeSlot, TimeSlotBooking


class InvitationRepository(Protocol):
    async def sum_expected_visitors(
        self,
        at: datetime,
        location_id: int | None = None,
        exclude_invitation_id: int | None = None,
    ) -> int: ...

    async def list_approved_between(
        self,
        start_date: date,
        end_date: date,
        location_id: int | None = None,
    ) -> list[Invitation]: ...


class LocationRepository(Protocol):
    async def get(self, location_id: int) -> Location | None: ...


class TimeSlotRepository(Protocol):
    async def get(self, time_slot_id: int) -> TimeSlot | None: ...

    async def list_active(self, location_id: int | None = None) -> list[TimeSlot]: ...


class BookingRepository(Protocol):
    def locked_slot_date(self, time_slot_id: int, booking_date: date) -> AsyncContextManager[None]: ...

    async def sum_confirmed(self, time_slot_id: int, booking_date: date) -> int: ...

    async def invitation_has_active(self, invitation_id: int) -> bool: ...

    async def create(
        self,
        *,
        time_slot_id: int,
        booking_date: date,
        invitation_id: int | None,
        visitor_count: int,
        notes: str | None,
        status: BookingStatus,
        booked_by: int,
        booked_on: datetime,
    ) -> TimeSlotBooking: ...

    async def get_for_update(self, booking_id: int) -> TimeSlotBooking | None: ...

    async def cancel(self, booking: TimeSlotBooking) -> TimeSlotBooking: ...
