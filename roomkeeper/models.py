"""Pydantic models for request validation and responses."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .core.config import settings
from .core.errors import InvalidInput
from .core.validators import validate_check_in_date_not_past
from .db_models import ReservationStatus, RoomStatus
from .services.pricing_service import NightlyPrice, PriceBreakdown


class StayRequest(BaseModel):  # pylint: disable=too-few-public-methods
    """Dates and party size shared by quotes and reservations."""

    check_in_date: date = Field(..., description="Check-in date in YYYY-MM-DD format")
    check_out_date: date = Field(..., description="Check-out date in YYYY-MM-DD format")
    guest_count: int = Field(..., ge=1, description="Number of guests")

    @field_validator("check_in_date")
    @classmethod
    def validate_check_in_date(cls, v: date) -> date:
        """Reject check-ins before today in the property's timezone."""
        if settings.REJECT_PAST_CHECK_IN:
            try:
                validate_check_in_date_not_past(v)
            except InvalidInput as exc:
                raise ValueError(exc.message) from exc
        return v

    @model_validator(mode="after")
    def check_out_after_check_in(self):
        if self.check_out_date <= self.check_in_date:
            raise ValueError("Check-out date must be after check-in date")
        return self


class PriceQuoteRequest(StayRequest):
    """Request model for pricing a stay without reserving."""

    category_id: int = Field(..., ge=1, description="Room category to price")


class ReservationRequest(StayRequest):
    """Request model for reserving a room."""

    room_id: int = Field(..., ge=1, description="Room to reserve")
    guest_name: Optional[str] = Field(default=None, max_length=191)
    guest_email: Optional[str] = Field(default=None, max_length=191)
    special_requests: Optional[str] = None


class RateOverrideRequest(BaseModel):
    """Request model for a date-scoped category price."""

    start_date: date
    end_date: date
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)

    @model_validator(mode="after")
    def end_not_before_start(self):
        if self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        return self


class NightlyPriceOut(BaseModel):
    date: date
    base_price: Decimal
    weekend_surcharge: Decimal
    seasonal_surcharge: Decimal
    occupancy_surcharge: Decimal
    total_price: Decimal

    @classmethod
    def from_night(cls, night: NightlyPrice) -> "NightlyPriceOut":
        return cls(
            date=night.date,
            base_price=night.base_price,
            weekend_surcharge=night.weekend_surcharge,
            seasonal_surcharge=night.seasonal_surcharge,
            occupancy_surcharge=night.occupancy_surcharge,
            total_price=night.total_price,
        )


class PriceBreakdownOut(BaseModel):
    category_id: int
    check_in_date: date
    check_out_date: date
    guest_count: int
    nights: int
    per_night: list[NightlyPriceOut]
    base_price: Decimal
    weekend_surcharge: Decimal
    seasonal_surcharge: Decimal
    occupancy_surcharge: Decimal
    total_surcharge: Decimal
    subtotal: Decimal
    discount: Decimal
    total: Decimal

    @classmethod
    def from_breakdown(cls, breakdown: PriceBreakdown) -> "PriceBreakdownOut":
        return cls(
            category_id=breakdown.category_id,
            check_in_date=breakdown.check_in,
            check_out_date=breakdown.check_out,
            guest_count=breakdown.guest_count,
            nights=breakdown.night_count,
            per_night=[NightlyPriceOut.from_night(n) for n in breakdown.nights],
            base_price=breakdown.base_price,
            weekend_surcharge=breakdown.weekend_surcharge,
            seasonal_surcharge=breakdown.seasonal_surcharge,
            occupancy_surcharge=breakdown.occupancy_surcharge,
            total_surcharge=breakdown.total_surcharge,
            subtotal=breakdown.subtotal,
            discount=breakdown.discount,
            total=breakdown.total,
        )


class RoomOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    hotel_id: int
    category_id: int
    number: str
    floor: Optional[int] = None
    status: RoomStatus


class StayItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    room_id: int
    price_per_night: Decimal
    nights: int


class ReservationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    guest_id: int
    hotel_id: int
    check_in: date
    check_out: date
    guest_count: int
    total_amount: Decimal
    status: ReservationStatus
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    special_requests: Optional[str] = None
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    stay_items: list[StayItemOut]


class ReservationCreatedOut(BaseModel):
    reservation: ReservationOut
    price_breakdown: PriceBreakdownOut


class AvailableRoomOut(BaseModel):
    room: RoomOut
    price_breakdown: PriceBreakdownOut


class RateOverrideOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_id: int
    start_date: date
    end_date: date
    price: Decimal
    created_at: Optional[datetime] = None
