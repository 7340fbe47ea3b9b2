import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_current_user_id, get_session
from ..domain.errors import CapacityEngineError, CollaboratorError
from ..infrastructure.repositories import SqlAlchemyBookingRepository, SqlAlchemyTimeSlotRepository
from ..models import BookingStatus
from ..schemas import BookingCancel, BookingCreate, BookingRead, TimeSlotAvailabilityRead
from ..usecases import bookings as booking_usecase
from ..utils.booking_log import emit_booking_log
from .errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["bookings"])

# MySQL deadlock (1213) and lock wait timeout (1205); the whole transaction was rolled back.
_LOCK_CONFLICT_CODES = frozenset({1205, 1213})
MAX_BOOKING_ATTEMPTS = 3


def _is_lock_conflict(exc: OperationalError) -> bool:
    args = getattr(exc.orig, "args", ())
    return bool(args) and args[0] in _LOCK_CONFLICT_CODES


@router.get("/time-slots/available", response_model=List[TimeSlotAvailabilityRead])
async def list_available_time_slots(
    on_date: date = Query(..., alias="date"),
    location_id: Optional[int] = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> list[TimeSlotAvailabilityRead]:
    items = await booking_usecase.list_available_time_slots(
        SqlAlchemyTimeSlotRepository(session),
        SqlAlchemyBookingRepository(session),
        on_date=on_date,
        location_id=location_id,
    )
    return [TimeSlotAvailabilityRead.from_domain(item) for item in items]


@router.post(
    "/time-slots/{time_slot_id}/bookings",
    response_model=BookingRead,
    status_code=status.HTTP_201_CREATED,
)
async def book_time_slot(
    payload: BookingCreate,
    time_slot_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> BookingRead:
    slot_repo = SqlAlchemyTimeSlotRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    for attempt in range(1, MAX_BOOKING_ATTEMPTS + 1):
        try:
            async with session.begin():
                booking = await booking_usecase.book_slot(
                    slot_repo,
                    booking_repo,
                    time_slot_id=time_slot_id,
                    booking_date=payload.booking_date,
                    visitor_count=payload.visitor_count,
                    booked_by=user_id,
                    invitation_id=payload.invitation_id,
                    notes=payload.notes,
                )
            break
        except CapacityEngineError as exc:
            raise to_http_exception(exc) from exc
        except OperationalError as exc:
            if _is_lock_conflict(exc) and attempt < MAX_BOOKING_ATTEMPTS:
                logger.warning("lock conflict booking time slot %d (attempt %d), retrying", time_slot_id, attempt)
                continue
            logger.exception("booking time slot %d failed", time_slot_id)
            raise to_http_exception(CollaboratorError("booking could not be stored")) from exc
        except SQLAlchemyError as exc:
            logger.exception("booking time slot %d failed", time_slot_id)
            raise to_http_exception(CollaboratorError("booking could not be stored")) from exc

    try:
        emit_booking_log(
            action="booking.created",
            booking_id=booking.id,
            time_slot_id=booking.time_slot_id,
            booking_date=booking.booking_date,
            invitation_id=booking.invitation_id,
            visitor_count=booking.visitor_count,
            actor_id=user_id,
            status_from=None,
            status_to=booking.status,
        )
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="failed to log booking") from exc

    return BookingRead.from_db(booking=booking)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingRead)
async def cancel_booking(
    payload: BookingCancel,
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> BookingRead:
    slot_repo = SqlAlchemyTimeSlotRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        async with session.begin():
            updated, previous = await booking_usecase.cancel_booking(
                slot_repo,
                booking_repo,
                booking_id=booking_id,
                cancelled_by=user_id,
                reason=payload.reason,
                cutoff_minutes=get_settings().booking_cancel_cutoff_minutes,
            )
    except CapacityEngineError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("cancelling booking %d failed", booking_id)
        raise to_http_exception(CollaboratorError("cancellation could not be stored")) from exc

    try:
        emit_booking_log(
            action="booking.cancelled",
            booking_id=updated.id,
            time_slot_id=updated.time_slot_id,
            booking_date=updated.booking_date,
            invitation_id=updated.invitation_id,
            visitor_count=updated.visitor_count,
            actor_id=user_id,
            status_from=previous,
            status_to=BookingStatus.CANCELLED,
            message=updated.cancellation_reason,
        )
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="failed to log booking") from exc

    return BookingRead.from_db(booking=updated)
