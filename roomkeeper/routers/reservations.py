import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from roomkeeper.core.auth import Requester, get_requester, require_elevated
from roomkeeper.core.database import get_db
from roomkeeper.db_models import ReservationStatus
from roomkeeper.models import (
    AvailableRoomOut,
    PriceBreakdownOut,
    PriceQuoteRequest,
    RateOverrideOut,
    RateOverrideRequest,
    ReservationCreatedOut,
    ReservationOut,
    ReservationRequest,
    RoomOut,
)
from roomkeeper.services.pricing_service import PricingService
from roomkeeper.services.rate_service import RateService
from roomkeeper.services.reservation_service import ReservationService

router = APIRouter()
logger = logging.getLogger(__name__)

reservation_service = ReservationService()


def get_reservation_service() -> ReservationService:
    """Dependency returning the process-wide reservation engine."""
    return reservation_service


@router.get("/hotels/{hotel_id}/available-rooms", response_model=list[AvailableRoomOut])
async def get_available_rooms(
    hotel_id: int,
    check_in_date: date = Query(...),
    check_out_date: date = Query(...),
    guest_count: int = Query(1),
    db: AsyncSession = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    """Free rooms of a hotel for the stay, each priced for the party."""
    available = await service.search_available_rooms(db, hotel_id, check_in_date, check_out_date, guest_count)
    return [
        AvailableRoomOut(
            room=RoomOut.model_validate(item.room),
            price_breakdown=PriceBreakdownOut.from_breakdown(item.price),
        )
        for item in available
    ]


@router.post("/pricing/quote", response_model=PriceBreakdownOut)
async def price_quote(data: PriceQuoteRequest, db: AsyncSession = Depends(get_db)):
    """Price a stay without reserving it."""
    breakdown = await PricingService.quote(
        db, data.category_id, data.check_in_date, data.check_out_date, data.guest_count
    )
    return PriceBreakdownOut.from_breakdown(breakdown)


@router.post("/reservations", response_model=ReservationCreatedOut, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    data: ReservationRequest,
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    result = await service.reserve(
        db,
        guest_id=requester.id,
        room_id=data.room_id,
        check_in=data.check_in_date,
        check_out=data.check_out_date,
        guest_count=data.guest_count,
        guest_name=data.guest_name,
        guest_email=data.guest_email,
        special_requests=data.special_requests,
    )
    return ReservationCreatedOut(
        reservation=ReservationOut.model_validate(result.reservation),
        price_breakdown=PriceBreakdownOut.from_breakdown(result.price),
    )


@router.get("/reservations", response_model=list[ReservationOut])
async def list_reservations(
    reservation_status: Optional[ReservationStatus] = Query(None, alias="status"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    guest_id: Optional[int] = Query(None),
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    """The requester's reservations; elevated roles see everyone's."""
    reservations = await service.list_reservations(
        db,
        requester.id,
        requester.role,
        guest_id=guest_id,
        status=reservation_status,
        start=start_date,
        end=end_date,
    )
    return [ReservationOut.model_validate(r) for r in reservations]


@router.get("/reservations/{reservation_id}", response_model=ReservationOut)
async def get_reservation(
    reservation_id: int,
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    reservation = await service.get_reservation(db, reservation_id, requester.id, requester.role)
    return ReservationOut.model_validate(reservation)


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationOut)
async def cancel_reservation(
    reservation_id: int,
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    reservation = await service.cancel(db, reservation_id, requester.id, requester.role)
    return ReservationOut.model_validate(reservation)


@router.post(
    "/categories/{category_id}/rate-overrides",
    response_model=RateOverrideOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_rate_override(
    category_id: int,
    data: RateOverrideRequest,
    requester: Requester = Depends(require_elevated),
    db: AsyncSession = Depends(get_db),
):
    """Set a date-scoped price for a room category (admin/manager)."""
    override = await RateService.add_override(db, category_id, data.start_date, data.end_date, data.price)
    await db.commit()
    logger.info(
        "Rate override recorded",
        extra={"category_id": category_id, "override_id": override.id, "requester_id": requester.id}
    )
    return RateOverrideOut.model_validate(override)


@router.post("/rooms/{room_id}/reconcile-status", response_model=RoomOut)
async def reconcile_room_status(
    room_id: int,
    _requester: Requester = Depends(require_elevated),
    db: AsyncSession = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    """Recompute a room's cached status from its reservations (admin/manager)."""
    room = await service.reconcile_room_status(db, room_id)
    return RoomOut.model_validate(room)
