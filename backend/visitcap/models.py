from __future__ import annotations

from datetime import date, datetime, time
from enum import StrEnum
from typing import Optional

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, Boolean, Date, DateTime, Integer, String, Time

from .domain.weekdays import Weekdays


class Base(DeclarativeBase):
    pass


class InvitationStatus(StrEnum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"


class BookingStatus(StrEnum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


def _str_enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
    )


class Location(Base):
    __tablename__ = "locations"
    __table_args__ = (CheckConstraint("max_capacity >= 0", name="chk_locations_capacity"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    time_slots: Mapped[list["TimeSlot"]] = relationship(back_populates="location")


class TimeSlot(Base):
    __tablename__ = "time_slots"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="chk_time_slots_time"),
        CheckConstraint("max_visitors >= 0", name="chk_time_slots_max_visitors"),
        CheckConstraint("active_days >= 0 AND active_days < 128", name="chk_time_slots_active_days"),
        Index("idx_time_slots_location", "location_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    max_visitors: Mapped[int] = mapped_column(Integer, nullable=False)
    # Bitmask of Weekdays; 0 means every day.
    active_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    location_id: Mapped[Optional[int]] = mapped_column(ForeignKey("locations.id"), nullable=True)
    allow_overlapping: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    location: Mapped[Optional["Location"]] = relationship(back_populates="time_slots")
    bookings: Mapped[list["TimeSlotBooking"]] = relationship(back_populates="time_slot")

    @property
    def weekdays(self) -> Weekdays:
        return Weekdays(self.active_days or 0)

    def is_active_on(self, day: date) -> bool:
        return self.weekdays.includes(day)

    def contains_time(self, at: datetime) -> bool:
        return self.start_time <= at.time() <= self.end_time

    def starts_on(self, day: date) -> datetime:
        return datetime.combine(day, self.start_time)


class Invitation(Base):
    __tablename__ = "invitations"
    __table_args__ = (
        CheckConstraint("scheduled_start_time <= scheduled_end_time", name="chk_invitations_schedule"),
        Index("idx_invitations_schedule", "status", "scheduled_start_time", "scheduled_end_time"),
        Index("idx_invitations_location", "location_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    status: Mapped[InvitationStatus] = mapped_column(
        _str_enum(InvitationStatus), nullable=False, default=InvitationStatus.DRAFT
    )
    scheduled_start_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    scheduled_end_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    expected_visitor_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    location_id: Mapped[Optional[int]] = mapped_column(ForeignKey("locations.id"), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class TimeSlotBooking(Base):
    __tablename__ = "time_slot_bookings"
    __table_args__ = (
        CheckConstraint("visitor_count >= 1", name="chk_bookings_visitor_count"),
        Index("idx_bookings_slot_date", "time_slot_id", "booking_date", "status"),
        Index("idx_bookings_invitation", "invitation_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    time_slot_id: Mapped[int] = mapped_column(ForeignKey("time_slots.id"), nullable=False)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    invitation_id: Mapped[Optional[int]] = mapped_column(ForeignKey("invitations.id"), nullable=True)
    visitor_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    status: Mapped[BookingStatus] = mapped_column(
        _str_enum(BookingStatus), nullable=False, default=BookingStatus.CONFIRMED
    )
    booked_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    booked_on: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    cancelled_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    cancelled_on: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    time_slot: Mapped["TimeSlot"] = relationship(back_populates="bookings")

    @property
    def is_active(self) -> bool:
        return self.status == BookingStatus.CONFIRMED


class TimeSlotDateLock(Base):
    """
    Row locked by concurrent bookers of one slot on one date. Taken before the slot is read,
    so it has no foreign key and unknown slot ids still end up as not found.
    """

    __tablename__ = "time_slot_date_locks"
    __table_args__ = (UniqueConstraint("time_slot_id", "booking_date", name="uq_time_slot_date_locks"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    time_slot_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
