# pylint: disable=not-callable
from enum import Enum

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from roomkeeper.core.database import Base

MONEY = Numeric(12, 2)


class RoomStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    MAINTENANCE = "maintenance"


class ReservationStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Hotel(Base):
    __tablename__ = "hotels"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(191), nullable=False)
    city = Column(String(191), default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class RoomCategory(Base):
    __tablename__ = "room_categories"
    __table_args__ = (
        CheckConstraint("capacity >= 1", name="ck_room_categories_capacity"),
        CheckConstraint("base_price >= 0", name="ck_room_categories_base_price"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    name = Column(String(191), nullable=False)
    capacity = Column(Integer, nullable=False)
    base_price = Column(MONEY, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class RateOverride(Base):
    """Date-scoped price for a category; start and end dates are inclusive."""

    __tablename__ = "rate_overrides"
    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_rate_overrides_interval"),
        CheckConstraint("price >= 0", name="ck_rate_overrides_price"),
        Index("ix_rate_overrides_category_dates", "category_id", "start_date", "end_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("room_categories.id"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    price = Column(MONEY, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("room_categories.id"), nullable=False, index=True)
    number = Column(String(32), nullable=False)
    floor = Column(Integer, default=0)
    # Display cache of occupancy; reservations are the source of truth
    status = Column(String(16), nullable=False, default=RoomStatus.AVAILABLE.value)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship("RoomCategory", lazy="selectin")


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("check_out > check_in", name="ck_reservations_interval"),
        Index("ix_reservations_status_dates", "status", "check_in", "check_out"),
    )

    id = Column(Integer, primary_key=True, index=True)
    guest_id = Column(Integer, nullable=False, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    guest_count = Column(Integer, nullable=False)
    total_amount = Column(MONEY, nullable=False)
    status = Column(String(16), nullable=False, default=ReservationStatus.CONFIRMED.value)

    guest_name = Column(String(191), nullable=True)
    guest_email = Column(String(191), nullable=True)
    special_requests = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    stay_items = relationship(
        "StayItem",
        back_populates="reservation",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="StayItem.id",
    )

    @property
    def is_cancelled(self) -> bool:
        return self.status == ReservationStatus.CANCELLED.value

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days


class StayItem(Base):
    """One room held by a reservation, with the nightly price captured at booking."""

    __tablename__ = "stay_items"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    price_per_night = Column(MONEY, nullable=False)
    nights = Column(Integer, nullable=False)

    reservation = relationship("Reservation", back_populates="stay_items")
