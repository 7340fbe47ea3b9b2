from datetime import date, datetime, timezone
from typing import Any, cast

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from visitcap.domain.errors import (
    BookingValidationError,
    CapacityExceededError,
    DuplicateBookingError,
    InvalidStateError,
    NotFoundError,
)
from visitcap.models import BookingStatus, TimeSlotBooking
from visitcap.routers import bookings as router
from visitcap.schemas import BookingCancel, BookingCreate, BookingRead


class DummySession:
    def __init__(self) -> None:
        self.exited_with: object = None

    async def __aenter__(self) -> "DummySession":
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        self.exited_with = exc_type
        return False

    def begin(self) -> "DummySession":
        return self


def _booking(status: BookingStatus = BookingStatus.CONFIRMED) -> TimeSlotBooking:
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return TimeSlotBooking(
        id=100,
        time_slot_id=1,
        booking_date=date(2030, 1, 7),
        invitation_id=5,
        visitor_count=2,
        notes=None,
        status=status,
        booked_by=200,
        booked_on=now,
    )


@pytest.fixture(autouse=True)
def _fake_repositories(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(router, "SqlAlchemyTimeSlotRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "SqlAlchemyBookingRepository", lambda s: s)  # type: ignore[assignment]


async def _create(session: DummySession) -> BookingRead:
    return await router.book_time_slot(
        payload=BookingCreate(booking_date=date(2030, 1, 7), visitor_count=2, invitation_id=5),
        time_slot_id=1,
        session=cast(AsyncSession, session),
        user_id=200,
    )


@pytest.mark.asyncio
async def test_book_emits_log_and_returns_booking(monkeypatch: pytest.MonkeyPatch) -> None:
    booking = _booking()
    received: dict[str, Any] = {}

    async def fake_book_slot(*args: object, **kwargs: Any) -> TimeSlotBooking:
        received.update(kwargs)
        return booking

    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(router.booking_usecase, "book_slot", fake_book_slot)
    monkeypatch.setattr(router, "emit_booking_log", lambda **kwargs: calls.append(kwargs))

    result = await _create(DummySession())

    assert result.booking_id == booking.id
    assert result.status == BookingStatus.CONFIRMED
    assert received["booked_by"] == 200
    assert received["time_slot_id"] == 1
    assert len(calls) == 1
    assert calls[0]["action"] == "booking.created"
    assert calls[0]["status_to"] == BookingStatus.CONFIRMED


@pytest.mark.parametrize(
    ("error", "status_code"),
    [
        (NotFoundError("time slot 1 not found"), 404),
        (InvalidStateError("cannot book an inactive time slot"), 400),
        (BookingValidationError(["Visitor count must be greater than 0."]), 400),
        (DuplicateBookingError("invitation already has an active booking"), 400),
    ],
)
@pytest.mark.asyncio
async def test_book_maps_domain_errors(monkeypatch: pytest.MonkeyPatch, error: Exception, status_code: int) -> None:
    async def fake_book_slot(*args: object, **kwargs: object) -> TimeSlotBooking:
        raise error

    monkeypatch.setattr(router.booking_usecase, "book_slot", fake_book_slot)
    session = DummySession()
    with pytest.raises(HTTPException) as excinfo:
        await _create(session)
    assert excinfo.value.status_code == status_code
    assert session.exited_with is type(error)


@pytest.mark.asyncio
async def test_book_capacity_exceeded_detail(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_book_slot(*args: object, **kwargs: object) -> TimeSlotBooking:
        raise CapacityExceededError(requested=4, available=3, current=7, maximum=10)

    monkeypatch.setattr(router.booking_usecase, "book_slot", fake_book_slot)
    with pytest.raises(HTTPException) as excinfo:
        await _create(DummySession())
    assert excinfo.value.status_code == 400
    detail = cast(dict[str, Any], excinfo.value.detail)
    assert detail["requested"] == 4
    assert detail["available"] == 3
    assert detail["max"] == 10


@pytest.mark.asyncio
async def test_book_storage_failure_returns_500(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_book_slot(*args: object, **kwargs: object) -> TimeSlotBooking:
        raise OperationalError("INSERT", {}, Exception("gone"))

    monkeypatch.setattr(router.booking_usecase, "book_slot", fake_book_slot)
    with pytest.raises(HTTPException) as excinfo:
        await _create(DummySession())
    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_cancel_emits_log_with_transition(monkeypatch: pytest.MonkeyPatch) -> None:
    booking = _booking(BookingStatus.CANCELLED)
    booking.cancellation_reason = "sick"

    async def fake_cancel(*args: object, **kwargs: object) -> tuple[TimeSlotBooking, BookingStatus]:
        return booking, BookingStatus.CONFIRMED

    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(router.booking_usecase, "cancel_booking", fake_cancel)
    monkeypatch.setattr(router, "emit_booking_log", lambda **kwargs: calls.append(kwargs))

    result = await router.cancel_booking(
        payload=BookingCancel(reason="sick"),
        booking_id=booking.id,
        session=cast(AsyncSession, DummySession()),
        user_id=200,
    )
    assert result.status == BookingStatus.CANCELLED
    assert calls[0]["action"] == "booking.cancelled"
    assert calls[0]["status_from"] == BookingStatus.CONFIRMED
    assert calls[0]["message"] == "sick"


@pytest.mark.asyncio
async def test_cancel_log_failure_returns_500(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_cancel(*args: object, **kwargs: object) -> tuple[TimeSlotBooking, BookingStatus]:
        return _booking(BookingStatus.CANCELLED), BookingStatus.CONFIRMED

    def fake_emit(**kwargs: Any) -> None:
        raise RuntimeError("fail log")

    monkeypatch.setattr(router.booking_usecase, "cancel_booking", fake_cancel)
    monkeypatch.setattr(router, "emit_booking_log", fake_emit)

    with pytest.raises(HTTPException) as excinfo:
        await router.cancel_booking(
            payload=BookingCancel(),
            booking_id=100,
            session=cast(AsyncSession, DummySession()),
            user_id=200,
        )
    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_cancel_not_cancellable_returns_400(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_cancel(*args: object, **kwargs: object) -> tuple[TimeSlotBooking, BookingStatus]:
        raise InvalidStateError("cancellation window closed")

    monkeypatch.setattr(router.booking_usecase, "cancel_booking", fake_cancel)
    with pytest.raises(HTTPException) as excinfo:
        await router.cancel_booking(
            payload=BookingCancel(),
            booking_id=100,
            session=cast(AsyncSession, DummySession()),
            user_id=200,
        )
    assert excinfo.value.status_code == 400
    assert excinfo.value.detail == "cancellation window closed"


def _deadlock() -> OperationalError:
    return OperationalError("INSERT", {}, Exception(1213, "Deadlock found when trying to get lock"))


@pytest.mark.asyncio
async def test_book_retries_after_deadlock(monkeypatch: pytest.MonkeyPatch) -> None:
    booking = _booking()
    attempts: list[int] = []

    async def fake_book_slot(*args: object, **kwargs: object) -> TimeSlotBooking:
        attempts.append(1)
        if len(attempts) == 1:
            raise _deadlock()
        return booking

    monkeypatch.setattr(router.booking_usecase, "book_slot", fake_book_slot)
    monkeypatch.setattr(router, "emit_booking_log", lambda **kwargs: None)

    result = await _create(DummySession())
    assert result.booking_id == booking.id
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_book_gives_up_after_repeated_deadlocks(monkeypatch: pytest.MonkeyPatch) -> None:
    attempts: list[int] = []

    async def fake_book_slot(*args: object, **kwargs: object) -> TimeSlotBooking:
        attempts.append(1)
        raise _deadlock()

    monkeypatch.setattr(router.booking_usecase, "book_slot", fake_book_slot)
    with pytest.raises(HTTPException) as excinfo:
        await _create(DummySession())
    assert excinfo.value.status_code == 500
    assert len(attempts) == router.MAX_BOOKING_ATTEMPTS
