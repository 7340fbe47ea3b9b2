from __future__ import annotations

from datetime import date
from enum import IntFlag
from typing import Iterable


class Weekdays(IntFlag):
    """Set of ISO weekdays. An empty set means every day."""

    NONE = 0
    MONDAY = 1 << 0
    TUESDAY = 1 << 1
    WEDNESDAY = 1 << 2
    THURSDAY = 1 << 3
    FRIDAY = 1 << 4
    SATURDAY = 1 << 5
    SUNDAY = 1 << 6

    @classmethod
    def from_iso(cls, iso_day: int) -> "Weekdays":
        if not 1 <= iso_day <= 7:
            raise ValueError(f"ISO weekday must be 1..7, got {iso_day}")
        return cls(1 << (iso_day - 1))

    @classmethod
    def of(cls, iso_days: Iterable[int]) -> "Weekdays":
        mask = cls.NONE
        for day in iso_days:
            mask |= cls.from_iso(day)
        return mask

    @classmethod
    def for_date(cls, value: date) -> "Weekdays":
        return cls.from_iso(value.isoweekday())

    def includes(self, value: date) -> bool:
        if self == Weekdays.NONE:
            return True
        return bool(self & Weekdays.for_date(value))

    def iso_days(self) -> list[int]:
        return [day for day in range(1, 8) if self & Weekdays.from_iso(day)]


WORKDAYS = Weekdays.MONDAY | Weekdays.TUESDAY | Weekdays.WEDNESDAY | Weekdays.THURSDAY | Weekdays.FRIDAY
ALL_DAYS = WORKDAYS | Weekdays.SATURDAY | Weekdays.SUNDAY
