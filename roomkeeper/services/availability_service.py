"""Availability index: which rooms are free for a date range.

The reservation set is authoritative here. A room is taken for a range when a
stay item on it belongs to a reservation that is not cancelled and whose
dates overlap the range. The default overlap test is inclusive on both ends,
so a stay ending on day N blocks a new stay starting on day N.
"""
import logging
from datetime import date
from typing import Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.errors import HotelNotFound
from ..core.validators import validate_stay
from ..db_models import Hotel, Reservation, ReservationStatus, Room, RoomCategory, StayItem

logger = logging.getLogger(__name__)


def overlap_condition(check_in: date, check_out: date, same_day_turnover: Optional[bool] = None):
    """SQL condition for reservations overlapping ``[check_in, check_out]``."""
    if same_day_turnover is None:
        same_day_turnover = settings.SAME_DAY_TURNOVER
    if same_day_turnover:
        return and_(Reservation.check_in < check_out, Reservation.check_out > check_in)
    return and_(Reservation.check_in <= check_out, Reservation.check_out >= check_in)


def _blocking_stays(check_in: date, check_out: date):
    return (
        select(StayItem.room_id)
        .join(Reservation, Reservation.id == StayItem.reservation_id)
        .where(
            Reservation.status != ReservationStatus.CANCELLED.value,
            overlap_condition(check_in, check_out),
        )
    )


class AvailabilityService:
    """Service for availability queries."""

    @staticmethod
    async def is_available(db: AsyncSession, room_id: int, check_in: date, check_out: date) -> bool:
        """True when no live reservation on the room overlaps the range."""
        stmt = _blocking_stays(check_in, check_out).where(StayItem.room_id == room_id).limit(1)
        result = await db.execute(stmt)
        return result.first() is None

    @staticmethod
    async def get_available_rooms(
        db: AsyncSession,
        hotel_id: int,
        check_in: date,
        check_out: date,
        guest_count: int
    ) -> list[Room]:
        """Rooms of the hotel that fit ``guest_count`` and are free for the range.

        Raises:
            HotelNotFound: If the hotel does not exist
            InvalidInput: If the dates or guest count are invalid
        """
        validate_stay(check_in, check_out, guest_count)
        if await db.get(Hotel, hotel_id) is None:
            raise HotelNotFound(hotel_id)

        blocked = _blocking_stays(check_in, check_out)
        stmt = (
            select(Room)
            .join(RoomCategory, RoomCategory.id == Room.category_id)
            .where(
                Room.hotel_id == hotel_id,
                RoomCategory.capacity >= guest_count,
                Room.id.not_in(blocked),
            )
            .order_by(Room.id)
        )
        result = await db.execute(stmt)
        rooms = list(result.scalars().all())
        logger.info(
            "Available rooms resolved",
            extra={
                "hotel_id": hotel_id,
                "check_in": check_in.isoformat(),
                "check_out": check_out.isoformat(),
                "guest_count": guest_count,
                "count": len(rooms)
            }
        )
        return rooms
