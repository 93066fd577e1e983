"""Stay pricing: per-night surcharges, long-stay discount and totals.

``calculate_price`` is pure. Given the same rate calendar snapshot and the
same stay it always returns the same breakdown, so quotes and committed
reservations agree as long as they price from the same snapshot.
"""
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterator

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.validators import validate_stay
from .rate_service import RateCalendar, RateService

logger = logging.getLogger(__name__)

WEEKEND_SURCHARGE_RATE = Decimal("0.15")
SEASONAL_SURCHARGE_RATE = Decimal("0.20")
OCCUPANCY_SURCHARGE_RATE = Decimal("0.10")  # per guest beyond category capacity
LONG_STAY_MIN_NIGHTS = 7
LONG_STAY_DISCOUNT_RATE = Decimal("0.10")

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def is_weekend(night: date) -> bool:
    return night.weekday() >= 5


def is_high_season(night: date) -> bool:
    """Dec 15 - Jan 15 and Jul 1 - Aug 31, bounds inclusive."""
    if night.month == 12 and night.day >= 15:
        return True
    if night.month == 1 and night.day <= 15:
        return True
    return night.month in (7, 8)


def iter_nights(check_in: date, check_out: date) -> Iterator[date]:
    night = check_in
    while night < check_out:
        yield night
        night += timedelta(days=1)


@dataclass(frozen=True)
class NightlyPrice:
    date: date
    base_price: Decimal
    weekend_surcharge: Decimal
    seasonal_surcharge: Decimal
    occupancy_surcharge: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class PriceBreakdown:
    category_id: int
    check_in: date
    check_out: date
    guest_count: int
    nights: tuple[NightlyPrice, ...]
    subtotal: Decimal
    discount: Decimal
    total: Decimal

    @property
    def night_count(self) -> int:
        return len(self.nights)

    @property
    def base_price(self) -> Decimal:
        return sum((n.base_price for n in self.nights), ZERO)

    @property
    def weekend_surcharge(self) -> Decimal:
        return sum((n.weekend_surcharge for n in self.nights), ZERO)

    @property
    def seasonal_surcharge(self) -> Decimal:
        return sum((n.seasonal_surcharge for n in self.nights), ZERO)

    @property
    def occupancy_surcharge(self) -> Decimal:
        return sum((n.occupancy_surcharge for n in self.nights), ZERO)

    @property
    def total_surcharge(self) -> Decimal:
        return self.weekend_surcharge + self.seasonal_surcharge + self.occupancy_surcharge

    @property
    def average_nightly_price(self) -> Decimal:
        return to_money(self.subtotal / self.night_count)


def price_night(calendar: RateCalendar, night: date, guest_count: int) -> NightlyPrice:
    base = to_money(calendar.price_on(night))
    weekend = to_money(base * WEEKEND_SURCHARGE_RATE) if is_weekend(night) else ZERO
    seasonal = to_money(base * SEASONAL_SURCHARGE_RATE) if is_high_season(night) else ZERO
    extra_guests = max(0, guest_count - calendar.capacity)
    occupancy = to_money(base * OCCUPANCY_SURCHARGE_RATE * extra_guests)
    return NightlyPrice(
        date=night,
        base_price=base,
        weekend_surcharge=weekend,
        seasonal_surcharge=seasonal,
        occupancy_surcharge=occupancy,
        total_price=base + weekend + seasonal + occupancy,
    )


def calculate_price(
    calendar: RateCalendar,
    check_in: date,
    check_out: date,
    guest_count: int
) -> PriceBreakdown:
    """Price a stay of ``guest_count`` guests over ``[check_in, check_out)``.

    Raises:
        InvalidDateRange: If check_out is not after check_in
        InvalidInput: If guest_count is below one
    """
    night_count = validate_stay(check_in, check_out, guest_count)

    nights = tuple(price_night(calendar, night, guest_count) for night in iter_nights(check_in, check_out))
    subtotal = sum((n.total_price for n in nights), ZERO)
    discount = to_money(subtotal * LONG_STAY_DISCOUNT_RATE) if night_count >= LONG_STAY_MIN_NIGHTS else ZERO

    return PriceBreakdown(
        category_id=calendar.category_id,
        check_in=check_in,
        check_out=check_out,
        guest_count=guest_count,
        nights=nights,
        subtotal=subtotal,
        discount=discount,
        total=subtotal - discount,
    )


class PricingService:  # pylint: disable=too-few-public-methods
    """Prices stays against the rate calendar of the caller's session."""

    @staticmethod
    async def quote(
        db: AsyncSession,
        category_id: int,
        check_in: date,
        check_out: date,
        guest_count: int
    ) -> PriceBreakdown:
        validate_stay(check_in, check_out, guest_count)
        calendar = await RateService.load_calendar(
            db, category_id, check_in, check_out - timedelta(days=1)
        )
        breakdown = calculate_price(calendar, check_in, check_out, guest_count)
        logger.info(
            "Stay priced",
            extra={
                "category_id": category_id,
                "check_in": check_in.isoformat(),
                "check_out": check_out.isoformat(),
                "guest_count": guest_count,
                "total": str(breakdown.total)
            }
        )
        return breakdown
