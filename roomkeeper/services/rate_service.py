"""Rate calendar: nightly base price per room category and date."""
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import CategoryNotFound, InvalidInput
from ..db_models import RateOverride, RoomCategory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverrideRate:
    id: int
    start_date: date
    end_date: date
    price: Decimal
    created_at: object

    def covers(self, on: date) -> bool:
        return self.start_date <= on <= self.end_date

    @property
    def precedence(self) -> tuple:
        # latest creation wins, highest id breaks ties
        return (self.created_at, self.id)


@dataclass(frozen=True)
class RateCalendar:
    """Immutable snapshot of a category's pricing over a date window."""

    category_id: int
    capacity: int
    base_price: Decimal
    overrides: tuple[OverrideRate, ...] = ()

    def price_on(self, on: date) -> Decimal:
        winner: Optional[OverrideRate] = None
        for override in self.overrides:
            if override.covers(on) and (winner is None or override.precedence > winner.precedence):
                winner = override
        return winner.price if winner is not None else self.base_price


def _snapshot(category: RoomCategory, overrides: Sequence[RateOverride]) -> RateCalendar:
    return RateCalendar(
        category_id=category.id,
        capacity=category.capacity,
        base_price=Decimal(category.base_price),
        overrides=tuple(
            OverrideRate(
                id=o.id,
                start_date=o.start_date,
                end_date=o.end_date,
                price=Decimal(o.price),
                created_at=o.created_at,
            )
            for o in overrides
        ),
    )


class RateService:
    """Service for rate-related database operations."""

    @staticmethod
    async def get_category(db: AsyncSession, category_id: int) -> RoomCategory:
        category = await db.get(RoomCategory, category_id)
        if category is None:
            logger.warning("Room category not found", extra={"category_id": category_id})
            raise CategoryNotFound(category_id)
        return category

    @staticmethod
    async def load_calendar(
        db: AsyncSession,
        category_id: int,
        start: date,
        end: date
    ) -> RateCalendar:
        """Load the category and every override touching ``[start, end]``.

        Args:
            db: Database session; the snapshot reflects its transaction
            category_id: Room category
            start: First night to be priced
            end: Last night to be priced (inclusive)

        Returns:
            RateCalendar: snapshot able to price every date in the window

        Raises:
            CategoryNotFound: If the category does not exist
        """
        category = await RateService.get_category(db, category_id)
        stmt = (
            select(RateOverride)
            .where(
                RateOverride.category_id == category_id,
                RateOverride.start_date <= end,
                RateOverride.end_date >= start,
            )
            .order_by(RateOverride.created_at, RateOverride.id)
        )
        result = await db.execute(stmt)
        overrides = result.scalars().all()
        return _snapshot(category, overrides)

    @staticmethod
    async def resolve_price(db: AsyncSession, category_id: int, on: date) -> Decimal:
        """Nightly base price of ``category_id`` on ``on``.

        The most recently created override covering the date wins; without
        one the category's standard base price applies.
        """
        calendar = await RateService.load_calendar(db, category_id, on, on)
        price = calendar.price_on(on)
        logger.debug(
            "Rate resolved",
            extra={"category_id": category_id, "date": on.isoformat(), "price": str(price)}
        )
        return price

    @staticmethod
    async def add_override(
        db: AsyncSession,
        category_id: int,
        start_date: date,
        end_date: date,
        price: Decimal
    ) -> RateOverride:
        """Record a date-scoped price for a category."""
        if start_date > end_date:
            raise InvalidInput("Override start date must not be after its end date")
        if price < 0:
            raise InvalidInput("Override price must not be negative")
        await RateService.get_category(db, category_id)

        override = RateOverride(
            category_id=category_id,
            start_date=start_date,
            end_date=end_date,
            price=price,
        )
        db.add(override)
        await db.flush()
        await db.refresh(override)
        logger.info(
            "Rate override added",
            extra={
                "category_id": category_id,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "price": str(price)
            }
        )
        return override
