"""Tests for the rate calendar."""
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from roomkeeper.core.errors import CategoryNotFound, InvalidInput
from roomkeeper.services.rate_service import OverrideRate, RateCalendar, RateService


def _override(id_, start, end, price, created_at):
    return OverrideRate(id=id_, start_date=start, end_date=end, price=Decimal(price), created_at=created_at)


def test_price_on_without_overrides_uses_base_price():
    calendar = RateCalendar(category_id=1, capacity=2, base_price=Decimal("100.00"))

    assert calendar.price_on(date(2031, 3, 4)) == Decimal("100.00")


def test_price_on_override_bounds_are_inclusive():
    created = datetime(2031, 1, 1, 12, 0, 0)
    calendar = RateCalendar(
        category_id=1,
        capacity=2,
        base_price=Decimal("100.00"),
        overrides=(_override(1, date(2031, 3, 3), date(2031, 3, 5), "80.00", created),),
    )

    assert calendar.price_on(date(2031, 3, 2)) == Decimal("100.00")
    assert calendar.price_on(date(2031, 3, 3)) == Decimal("80.00")
    assert calendar.price_on(date(2031, 3, 5)) == Decimal("80.00")
    assert calendar.price_on(date(2031, 3, 6)) == Decimal("100.00")


def test_price_on_most_recently_created_override_wins():
    earlier = datetime(2031, 1, 1, 12, 0, 0)
    later = earlier + timedelta(hours=1)
    # the older id was created later, creation time decides
    calendar = RateCalendar(
        category_id=1,
        capacity=2,
        base_price=Decimal("100.00"),
        overrides=(
            _override(1, date(2031, 3, 1), date(2031, 3, 31), "150.00", later),
            _override(2, date(2031, 3, 4), date(2031, 3, 4), "90.00", earlier),
        ),
    )

    assert calendar.price_on(date(2031, 3, 4)) == Decimal("150.00")


def test_price_on_same_creation_time_highest_id_wins():
    created = datetime(2031, 1, 1, 12, 0, 0)
    calendar = RateCalendar(
        category_id=1,
        capacity=2,
        base_price=Decimal("100.00"),
        overrides=(
            _override(3, date(2031, 3, 4), date(2031, 3, 4), "70.00", created),
            _override(2, date(2031, 3, 4), date(2031, 3, 4), "60.00", created),
        ),
    )

    assert calendar.price_on(date(2031, 3, 4)) == Decimal("70.00")


@pytest.mark.asyncio
async def test_resolve_price_base_and_override(db_session, inventory):
    category_id = inventory.standard_category_id
    await RateService.add_override(db_session, category_id, date(2031, 3, 4), date(2031, 3, 6), Decimal("80.00"))
    await db_session.commit()

    assert await RateService.resolve_price(db_session, category_id, date(2031, 3, 3)) == Decimal("100.00")
    assert await RateService.resolve_price(db_session, category_id, date(2031, 3, 4)) == Decimal("80.00")
    assert await RateService.resolve_price(db_session, category_id, date(2031, 3, 6)) == Decimal("80.00")
    assert await RateService.resolve_price(db_session, category_id, date(2031, 3, 7)) == Decimal("100.00")


@pytest.mark.asyncio
async def test_resolve_price_later_override_replaces_earlier(db_session, inventory):
    category_id = inventory.standard_category_id
    await RateService.add_override(db_session, category_id, date(2031, 3, 1), date(2031, 3, 31), Decimal("120.00"))
    await RateService.add_override(db_session, category_id, date(2031, 3, 4), date(2031, 3, 4), Decimal("95.00"))
    await db_session.commit()

    assert await RateService.resolve_price(db_session, category_id, date(2031, 3, 4)) == Decimal("95.00")
    assert await RateService.resolve_price(db_session, category_id, date(2031, 3, 5)) == Decimal("120.00")


@pytest.mark.asyncio
async def test_load_calendar_only_keeps_overrides_in_window(db_session, inventory):
    category_id = inventory.suite_category_id
    await RateService.add_override(db_session, category_id, date(2031, 1, 1), date(2031, 1, 10), Decimal("200.00"))
    await RateService.add_override(db_session, category_id, date(2031, 3, 1), date(2031, 3, 5), Decimal("300.00"))
    await db_session.commit()

    calendar = await RateService.load_calendar(db_session, category_id, date(2031, 3, 4), date(2031, 3, 8))

    assert calendar.capacity == 4
    assert calendar.base_price == Decimal("250.00")
    assert [o.price for o in calendar.overrides] == [Decimal("300.00")]


@pytest.mark.asyncio
async def test_resolve_price_unknown_category(db_session, inventory):
    with pytest.raises(CategoryNotFound):
        await RateService.resolve_price(db_session, 9999, date(2031, 3, 4))


@pytest.mark.asyncio
async def test_add_override_rejects_inverted_interval(db_session, inventory):
    with pytest.raises(InvalidInput):
        await RateService.add_override(
            db_session, inventory.standard_category_id, date(2031, 3, 6), date(2031, 3, 4), Decimal("80.00")
        )


@pytest.mark.asyncio
async def test_add_override_rejects_negative_price(db_session, inventory):
    with pytest.raises(InvalidInput):
        await RateService.add_override(
            db_session, inventory.standard_category_id, date(2031, 3, 4), date(2031, 3, 4), Decimal("-1.00")
        )
