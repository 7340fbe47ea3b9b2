from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from ..config import get_settings


def facility_zone() -> ZoneInfo:
    return ZoneInfo(get_settings().facility_timezone)


def facility_now() -> datetime:
    """Naive wall-clock time at the facility; slot times and invitations are stored this way."""
    return datetime.now(timezone.utc).astimezone(facility_zone()).replace(tzinfo=None)


def facility_today() -> date:
    return facility_now().date()


def to_facility_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(facility_zone()).replace(tzinfo=None)
