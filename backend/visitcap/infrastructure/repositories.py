from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta
from typing import AsyncIterator, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.repositories import BookingRepository, InvitationRepository, LocationRepository, TimeSlotRepository
from ..models import (
    BookingStatus,
    Invitation,
    InvitationStatus,
    Location,
    TimeSlot,
    TimeSlotBooking,
    TimeSlotDateLock,
)


class SqlAlchemyInvitationRepository(InvitationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def sum_expected_visitors(
        self,
        at: datetime,
        location_id: int | None = None,
        exclude_invitation_id: int | None = None,
    ) -> int:
        stmt = select(func.coalesce(func.sum(Invitation.expected_visitor_count), 0)).where(
            Invitation.is_deleted.is_(False),
            Invitation.status == InvitationStatus.APPROVED,
            Invitation.scheduled_start_time <= at,
            Invitation.scheduled_end_time >= at,
        )
        if location_id is not None:
            stmt = stmt.where(Invitation.location_id == location_id)
        if exclude_invitation_id is not None:
            stmt = stmt.where(Invitation.id != exclude_invitation_id)
        return int(await self.session.scalar(stmt) or 0)

    async def list_approved_between(
        self,
        start_date: date,
        end_date: date,
        location_id: int | None = None,
    ) -> List[Invitation]:
        stmt = (
            select(Invitation)
            .where(
                Invitation.is_deleted.is_(False),
                Invitation.status == InvitationStatus.APPROVED,
                Invitation.scheduled_start_time >= datetime.combine(start_date, time.min),
                Invitation.scheduled_start_time < datetime.combine(end_date + timedelta(days=1), time.min),
            )
            .order_by(Invitation.scheduled_start_time)
        )
        if location_id is not None:
            stmt = stmt.where(Invitation.location_id == location_id)
        return list(await self.session.scalars(stmt))


class SqlAlchemyLocationRepository(LocationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, location_id: int) -> Location | None:
        return await self.session.get(Location, location_id)


class SqlAlchemyTimeSlotRepository(TimeSlotRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, time_slot_id: int) -> TimeSlot | None:
        return await self.session.get(TimeSlot, time_slot_id)

    async def list_active(self, location_id: int | None = None) -> List[TimeSlot]:
        stmt = (
            select(TimeSlot)
            .where(TimeSlot.is_active.is_(True), TimeSlot.is_deleted.is_(False))
            .order_by(TimeSlot.display_order, TimeSlot.start_time, TimeSlot.id)
        )
        if location_id is not None:
            stmt = stmt.where(or_(TimeSlot.location_id.is_(None), TimeSlot.location_id == location_id))
        return list(await self.session.scalars(stmt))


class SqlAlchemyBookingRepository(BookingRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def locked_slot_date(self, time_slot_id: int, booking_date: date) -> AsyncIterator[None]:
        """
        Lock the (slot, date) row until the surrounding transaction ends, creating it on
        first use. Concurrent bookers of the same slot and date queue up here.
        """
        # Upsert first: FOR UPDATE on a missing row takes gap locks that make two
        # first-time inserters deadlock.
        upsert = mysql_insert(TimeSlotDateLock).values(time_slot_id=time_slot_id, booking_date=booking_date)
        await self.session.execute(upsert.on_duplicate_key_update(id=TimeSlotDateLock.id))
        stmt = (
            select(TimeSlotDateLock)
            .where(TimeSlotDateLock.time_slot_id == time_slot_id, TimeSlotDateLock.booking_date == booking_date)
            .with_for_update()
        )
        if await self.session.scalar(stmt) is None:
            raise RuntimeError(f"could not lock time slot {time_slot_id} on {booking_date}")
        yield

    async def sum_confirmed(self, time_slot_id: int, booking_date: date) -> int:
        stmt = select(func.coalesce(func.sum(TimeSlotBooking.visitor_count), 0)).where(
            TimeSlotBooking.time_slot_id == time_slot_id,
            TimeSlotBooking.booking_date == booking_date,
            TimeSlotBooking.status == BookingStatus.CONFIRMED,
        )
        return int(await self.session.scalar(stmt) or 0)

    async def invitation_has_active(self, invitation_id: int) -> bool:
        stmt = (
            select(TimeSlotBooking.id)
            .where(
                TimeSlotBooking.invitation_id == invitation_id,
                TimeSlotBooking.status != BookingStatus.CANCELLED,
            )
            .with_for_update()
        )
        return await self.session.scalar(stmt) is not None

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
    ) -> TimeSlotBooking:
        booking = TimeSlotBooking(
            time_slot_id=time_slot_id,
            booking_date=booking_date,
            invitation_id=invitation_id,
            visitor_count=visitor_count,
            notes=notes,
            status=status,
            booked_by=booked_by,
            booked_on=booked_on,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_for_update(self, booking_id: int) -> Optional[TimeSlotBooking]:
        stmt = select(TimeSlotBooking).where(TimeSlotBooking.id == booking_id).with_for_update()
        return await self.session.scalar(stmt)

    async def cancel(self, booking: TimeSlotBooking) -> TimeSlotBooking:
        self.session.add(booking)
        await self.session.flush()
        return booking
