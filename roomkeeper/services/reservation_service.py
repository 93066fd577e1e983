"""Reservation engine: atomic reserve and cancel.

A reservation is only created after the room is confirmed free and the stay is
priced. The availability check, pricing, the reservation insert and the room
status flip happen in one transaction while the room is held, both by the
in-process room lock and by a ``FOR UPDATE NOWAIT`` row lock, so two
overlapping requests for the same room can never both commit.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import AsyncIterator, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import Authorizer, can_manage_reservation, is_elevated_role
from ..core.config import settings
from ..core.errors import (
    AlreadyCancelled,
    CategoryNotFound,
    Conflict,
    ReservationError,
    ReservationNotFound,
    RoomNotFound,
    RoomUnavailable,
    Unauthorized,
    translate_store_error,
)
from ..core.events import (
    RESERVATION_CANCELLED,
    RESERVATION_CONFIRMED,
    EventBus,
    bus,
    reservation_envelope,
)
from ..core.locks import RoomLocks
from ..core.validators import property_today, validate_stay
from ..db_models import Reservation, ReservationStatus, Room, RoomStatus, StayItem
from .availability_service import AvailabilityService
from .pricing_service import PriceBreakdown, calculate_price
from .rate_service import RateService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationResult:
    reservation: Reservation
    price: PriceBreakdown


@dataclass(frozen=True)
class AvailableRoom:
    room: Room
    price: PriceBreakdown


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@asynccontextmanager
async def _transaction(db: AsyncSession) -> AsyncIterator[None]:
    """Commit on success, roll back otherwise; used while room locks are held."""
    try:
        yield
        await db.commit()
    except BaseException:
        await db.rollback()
        raise


def _event_payload(reservation: Reservation) -> dict:
    return {
        "reservation_id": reservation.id,
        "guest_id": reservation.guest_id,
        "hotel_id": reservation.hotel_id,
        "room_ids": [item.room_id for item in reservation.stay_items],
        "check_in": reservation.check_in.isoformat(),
        "check_out": reservation.check_out.isoformat(),
        "total_amount": str(reservation.total_amount),
        "status": reservation.status,
    }


class ReservationService:
    """Orchestrates availability, pricing and persistence of reservations."""

    def __init__(
        self,
        locks: Optional[RoomLocks] = None,
        event_bus: Optional[EventBus] = None,
        authorize: Optional[Authorizer] = None,
    ) -> None:
        self.locks = locks or RoomLocks(settings.ROOM_LOCK_TIMEOUT_SECONDS)
        self.event_bus = event_bus if event_bus is not None else bus
        self.authorize = authorize or can_manage_reservation

    @asynccontextmanager
    async def _guard(self, db: AsyncSession, operation: str, **context) -> AsyncIterator[None]:
        """Roll back on any failure and surface store errors as domain errors."""
        try:
            yield
        except ReservationError as exc:
            await db.rollback()
            logger.warning(
                "Reservation %s rejected",
                operation,
                extra={**context, "code": exc.code, "reason": exc.message}
            )
            raise
        except SQLAlchemyError as exc:
            await db.rollback()
            error = translate_store_error(exc)
            logger.error(
                "Reservation %s failed in store",
                operation,
                extra={**context, "code": error.code, "error": str(exc)}
            )
            raise error from exc

    @staticmethod
    async def _lock_rooms(db: AsyncSession, room_ids: list[int]) -> list[Room]:
        stmt = (
            select(Room)
            .where(Room.id.in_(room_ids))
            .order_by(Room.id)
            .with_for_update(nowait=True)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def _claim_room(db: AsyncSession, room_id: int) -> None:
        """Flip the room from available to booked, or fail if another writer did.

        The status guard in the UPDATE makes the flip a compare-and-set in the
        store itself, so writers in other processes, or on backends that
        ignore row locks, cannot both claim the room.
        """
        claimed = await db.execute(
            update(Room)
            .where(Room.id == room_id, Room.status == RoomStatus.AVAILABLE.value)
            .values(status=RoomStatus.BOOKED.value)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise Conflict(f"Room {room_id} was booked by a concurrent request")

    @staticmethod
    async def _get_reservation(db: AsyncSession, reservation_id: int, for_update: bool = False) -> Reservation:
        stmt = select(Reservation).where(Reservation.id == reservation_id)
        if for_update:
            stmt = stmt.with_for_update(nowait=True).execution_options(populate_existing=True)
        result = await db.execute(stmt)
        reservation = result.scalar_one_or_none()
        if reservation is None:
            raise ReservationNotFound(reservation_id)
        return reservation

    async def _publish(self, event_type: str, reservation: Reservation) -> None:
        envelope = reservation_envelope(event_type, reservation.id, _event_payload(reservation))
        result = await self.event_bus.publish(envelope)
        if result.status == "failed":
            logger.warning(
                "Reservation event not fully delivered",
                extra={"event_type": event_type, "reservation_id": reservation.id}
            )

    async def _reserve_locked(
        self,
        db: AsyncSession,
        guest_id: int,
        room_id: int,
        check_in: date,
        check_out: date,
        guest_count: int,
        **guest_details,
    ) -> ReservationResult:
        rooms = await self._lock_rooms(db, [room_id])
        if not rooms:
            raise RoomNotFound(room_id)
        room = rooms[0]
        if room.category is None:
            raise CategoryNotFound(room.category_id)

        # Both views of occupancy must agree before the room is sold
        if room.status != RoomStatus.AVAILABLE.value:
            raise RoomUnavailable(f"Room {room_id} is {room.status}")
        if not await AvailabilityService.is_available(db, room_id, check_in, check_out):
            raise RoomUnavailable()

        calendar = await RateService.load_calendar(
            db, room.category_id, check_in, check_out - timedelta(days=1)
        )
        price = calculate_price(calendar, check_in, check_out, guest_count)

        await self._claim_room(db, room_id)
        reservation = Reservation(
            guest_id=guest_id,
            hotel_id=room.hotel_id,
            check_in=check_in,
            check_out=check_out,
            guest_count=guest_count,
            total_amount=price.total,
            status=ReservationStatus.CONFIRMED.value,
            stay_items=[
                StayItem(
                    room_id=room.id,
                    price_per_night=price.average_nightly_price,
                    nights=price.night_count,
                )
            ],
            **guest_details,
        )
        db.add(reservation)
        await db.flush()
        await db.refresh(reservation)
        return ReservationResult(reservation=reservation, price=price)

    async def reserve(
        self,
        db: AsyncSession,
        guest_id: int,
        room_id: int,
        check_in: date,
        check_out: date,
        guest_count: int,
        guest_name: Optional[str] = None,
        guest_email: Optional[str] = None,
        special_requests: Optional[str] = None,
    ) -> ReservationResult:
        """Reserve ``room_id`` for ``guest_id`` over ``[check_in, check_out)``.

        Args:
            db: Session the reservation is committed on
            guest_id: Guest the reservation belongs to
            room_id: Room to hold
            check_in: Arrival date
            check_out: Departure date, after check_in
            guest_count: Number of guests, at least one

        Returns:
            ReservationResult: the committed reservation and its price breakdown

        Raises:
            InvalidInput: Bad dates or guest count, before any store access
            RoomNotFound: If the room does not exist
            CategoryNotFound: If the room's category does not exist
            RoomUnavailable: Room status is not available, or a live
                reservation overlaps the range
            Conflict: Another writer holds the room
            StoreFailure: Any other store error
        """
        context = {"guest_id": guest_id, "room_id": room_id,
                   "check_in": str(check_in), "check_out": str(check_out)}
        async with self._guard(db, "reserve", **context):
            validate_stay(check_in, check_out, guest_count)
            async with self.locks.hold([room_id]):
                async with _transaction(db):
                    result = await self._reserve_locked(
                        db, guest_id, room_id, check_in, check_out, guest_count,
                        guest_name=guest_name,
                        guest_email=guest_email,
                        special_requests=special_requests,
                    )

        logger.info(
            "Reservation confirmed",
            extra={**context, "reservation_id": result.reservation.id, "total": str(result.price.total)}
        )
        await self._publish(RESERVATION_CONFIRMED, result.reservation)
        return result

    async def _cancel_locked(self, db: AsyncSession, reservation_id: int, room_ids: list[int]) -> Reservation:
        reservation = await self._get_reservation(db, reservation_id, for_update=True)
        if reservation.is_cancelled:
            raise AlreadyCancelled(reservation_id)

        await self._lock_rooms(db, room_ids)
        released = await db.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.status == ReservationStatus.CONFIRMED.value,
            )
            .values(status=ReservationStatus.CANCELLED.value, cancelled_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        if released.rowcount != 1:
            # a concurrent cancel committed first
            raise AlreadyCancelled(reservation_id)
        await db.execute(
            update(Room)
            .where(Room.id.in_(room_ids))
            .values(status=RoomStatus.AVAILABLE.value)
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        await db.refresh(reservation)
        return reservation

    async def cancel(
        self,
        db: AsyncSession,
        reservation_id: int,
        requester_id: int,
        requester_role: Optional[str],
    ) -> Reservation:
        """Cancel a reservation and release its rooms.

        Every room of the reservation is set back to available, regardless of
        other reservations it may hold later on.

        Raises:
            ReservationNotFound: If the reservation does not exist
            Unauthorized: If the requester may not manage the reservation
            AlreadyCancelled: If the reservation is already cancelled
        """
        context = {"reservation_id": reservation_id, "requester_id": requester_id}
        async with self._guard(db, "cancel", **context):
            reservation = await self._get_reservation(db, reservation_id)
            if not self.authorize(requester_id, requester_role, reservation):
                raise Unauthorized("Not authorized to cancel this reservation")

            # stay items never change after creation, so the room set is stable
            room_ids = [item.room_id for item in reservation.stay_items]
            async with self.locks.hold(room_ids):
                async with _transaction(db):
                    reservation = await self._cancel_locked(db, reservation_id, room_ids)

        logger.info("Reservation cancelled", extra={**context, "room_ids": room_ids})
        await self._publish(RESERVATION_CANCELLED, reservation)
        return reservation

    async def get_reservation(
        self,
        db: AsyncSession,
        reservation_id: int,
        requester_id: int,
        requester_role: Optional[str],
    ) -> Reservation:
        reservation = await self._get_reservation(db, reservation_id)
        if not self.authorize(requester_id, requester_role, reservation):
            raise Unauthorized("Not authorized to view this reservation")
        return reservation

    @staticmethod
    async def list_reservations(
        db: AsyncSession,
        requester_id: int,
        requester_role: Optional[str],
        guest_id: Optional[int] = None,
        status: Optional[ReservationStatus] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[Reservation]:
        """Reservations visible to the requester.

        Guests only see their own, newest check-in first. Elevated roles see
        everyone's, newest first, and may filter by guest.
        """
        elevated = is_elevated_role(requester_role)
        if not elevated:
            if guest_id is not None and guest_id != requester_id:
                raise Unauthorized("Not authorized to list other guests' reservations")
            guest_id = requester_id

        stmt = select(Reservation)
        if guest_id is not None:
            stmt = stmt.where(Reservation.guest_id == guest_id)
        if status is not None:
            stmt = stmt.where(Reservation.status == ReservationStatus(status).value)
        if start is not None:
            stmt = stmt.where(Reservation.check_in >= start)
        if end is not None:
            stmt = stmt.where(Reservation.check_out <= end)
        if elevated:
            stmt = stmt.order_by(Reservation.created_at.desc(), Reservation.id.desc())
        else:
            stmt = stmt.order_by(Reservation.check_in.desc(), Reservation.id.desc())

        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def search_available_rooms(
        self,
        db: AsyncSession,
        hotel_id: int,
        check_in: date,
        check_out: date,
        guest_count: int,
    ) -> list[AvailableRoom]:
        """Free rooms of a hotel for the stay, each with its price."""
        rooms = await AvailabilityService.get_available_rooms(db, hotel_id, check_in, check_out, guest_count)
        prices: dict[int, PriceBreakdown] = {}
        available = []
        for room in rooms:
            if room.category_id not in prices:
                calendar = await RateService.load_calendar(
                    db, room.category_id, check_in, check_out - timedelta(days=1)
                )
                prices[room.category_id] = calculate_price(calendar, check_in, check_out, guest_count)
            available.append(AvailableRoom(room=room, price=prices[room.category_id]))
        return available

    async def _reconcile_locked(self, db: AsyncSession, room_id: int, today: date) -> Room:
        rooms = await self._lock_rooms(db, [room_id])
        if not rooms:
            raise RoomNotFound(room_id)
        room = rooms[0]
        if room.status == RoomStatus.MAINTENANCE.value:
            return room

        stmt = (
            select(StayItem.id)
            .join(Reservation, Reservation.id == StayItem.reservation_id)
            .where(
                StayItem.room_id == room_id,
                Reservation.status == ReservationStatus.CONFIRMED.value,
                Reservation.check_out >= today,
            )
            .limit(1)
        )
        held = (await db.execute(stmt)).first() is not None
        expected = RoomStatus.BOOKED.value if held else RoomStatus.AVAILABLE.value
        if room.status != expected:
            logger.info(
                "Room status corrected",
                extra={"room_id": room_id, "cached": room.status, "derived": expected}
            )
            room.status = expected
            await db.flush()
            await db.refresh(room)
        return room

    async def reconcile_room_status(
        self,
        db: AsyncSession,
        room_id: int,
        today: Optional[date] = None,
    ) -> Room:
        """Recompute a room's cached status from its live reservations.

        The room is booked while any confirmed reservation on it has not
        checked out yet. Rooms under maintenance are left alone.
        """
        today = today or property_today()
        async with self._guard(db, "reconcile", room_id=room_id):
            async with self.locks.hold([room_id]):
                async with _transaction(db):
                    room = await self._reconcile_locked(db, room_id, today)
        return room
