from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_session
from ..domain.errors import CapacityEngineError
from ..infrastructure.repositories import (
    SqlAlchemyInvitationRepository,
    SqlAlchemyLocationRepository,
    SqlAlchemyTimeSlotRepository,
)
from ..schemas import (
    AlternativeSlotRead,
    CapacityValidationRead,
    CapacityValidationRequest,
    OccupancyRead,
    OccupancyStatisticsRead,
)
from ..usecases import alternatives as alternatives_usecase
from ..usecases import capacity as capacity_usecase
from ..utils.time import to_facility_naive
from .errors import to_http_exception

router = APIRouter(prefix="/capacity", tags=["capacity"])


@router.post("/validate", response_model=CapacityValidationRead)
async def validate_capacity(
    payload: CapacityValidationRequest,
    session: AsyncSession = Depends(get_session),
) -> CapacityValidationRead:
    result = await capacity_usecase.validate_capacity(
        SqlAlchemyInvitationRepository(session),
        SqlAlchemyTimeSlotRepository(session),
        SqlAlchemyLocationRepository(session),
        at=to_facility_naive(payload.date_time),
        expected_visitors=payload.expected_visitors,
        location_id=payload.location_id,
        time_slot_id=payload.time_slot_id,
        is_vip_request=payload.is_vip_request,
        exclude_invitation_id=payload.exclude_invitation_id,
    )
    return CapacityValidationRead.from_domain(result)


@router.get("/occupancy", response_model=OccupancyRead)
async def get_occupancy(
    date_time: datetime = Query(..., description="Instant to inspect (ISO 8601)"),
    location_id: Optional[int] = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> OccupancyRead:
    snapshot = await capacity_usecase.get_occupancy_snapshot(
        SqlAlchemyInvitationRepository(session),
        SqlAlchemyTimeSlotRepository(session),
        SqlAlchemyLocationRepository(session),
        at=to_facility_naive(date_time),
        location_id=location_id,
    )
    return OccupancyRead.from_domain(snapshot)


@router.get("/alternatives", response_model=List[AlternativeSlotRead])
async def get_alternatives(
    date_time: datetime = Query(..., description="Originally requested instant (ISO 8601)"),
    expected_visitors: int = Query(..., ge=1),
    location_id: Optional[int] = Query(default=None),
    days_to_check: Optional[int] = Query(default=None, ge=1, le=31),
    session: AsyncSession = Depends(get_session),
) -> list[AlternativeSlotRead]:
    settings = get_settings()
    slots = await alternatives_usecase.get_alternative_slots(
        SqlAlchemyInvitationRepository(session),
        SqlAlchemyTimeSlotRepository(session),
        original=to_facility_naive(date_time),
        expected_visitors=expected_visitors,
        location_id=location_id,
        days_to_check=days_to_check or settings.alternative_days,
        max_results=settings.max_alternatives,
    )
    return [AlternativeSlotRead.from_domain(slot) for slot in slots]


@router.get("/statistics", response_model=OccupancyStatisticsRead)
async def get_statistics(
    start_date: date = Query(...),
    end_date: date = Query(...),
    location_id: Optional[int] = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> OccupancyStatisticsRead:
    try:
        stats = await capacity_usecase.get_occupancy_statistics(
            SqlAlchemyInvitationRepository(session),
            start_date=start_date,
            end_date=end_date,
            location_id=location_id,
        )
    except CapacityEngineError as exc:
        raise to_http_exception(exc) from exc
    return OccupancyStatisticsRead.from_domain(stats)

