"""Business logic validators."""
import logging
from datetime import date, datetime

import pytz

from .config import settings
from .errors import InvalidDateRange, InvalidInput

logger = logging.getLogger(__name__)


def property_today() -> date:
    """Current date in the property's timezone.

    Raises:
        InvalidInput: If the configured timezone is unknown
    """
    try:
        property_tz = pytz.timezone(settings.PROPERTY_TIMEZONE)
    except pytz.exceptions.UnknownTimeZoneError:
        logger.error(
            "Invalid timezone configuration",
            extra={"timezone": settings.PROPERTY_TIMEZONE}
        )
        raise InvalidInput(
            f"Invalid timezone '{settings.PROPERTY_TIMEZONE}'. "
            "Use IANA timezone name (e.g., Asia/Dubai, America/New_York)"
        )
    return datetime.now(property_tz).date()


def validate_check_in_date_not_past(check_in_date: date) -> date:
    """Validate that check-in date is not in the past (property timezone-aware).

    A guest booking "today" at the front desk is valid regardless of where the
    server runs: at 2:00 AM Dubai time on Jan 24 (UTC still Jan 23) a check-in
    on Jan 24 passes.

    Args:
        check_in_date: The date to validate

    Returns:
        date: The validated date (unchanged if valid)

    Raises:
        InvalidInput: If date is in the past or timezone is invalid
    """
    today_property = property_today()

    if check_in_date < today_property:
        logger.warning(
            "Check-in date validation failed - date in past",
            extra={
                "check_in_date": check_in_date.isoformat(),
                "today_property": today_property.isoformat(),
                "timezone": settings.PROPERTY_TIMEZONE
            }
        )
        raise InvalidInput(
            f"Check-in date cannot be in the past. "
            f"Today ({settings.PROPERTY_TIMEZONE}): {today_property}, Provided: {check_in_date}"
        )
    return check_in_date


def validate_stay(check_in: date, check_out: date, guest_count: int) -> int:
    """Validate a stay request and return its night count.

    Raises:
        InvalidInput: If a date is missing, the guest count is below one
            or the stay exceeds MAX_STAY_NIGHTS
        InvalidDateRange: If check-out is not after check-in
    """
    if check_in is None or check_out is None:
        raise InvalidInput("Check-in and check-out dates are required")
    if guest_count is None or guest_count < 1:
        raise InvalidInput("Guest count must be at least 1")
    nights = (check_out - check_in).days
    if nights <= 0:
        raise InvalidDateRange()
    if nights > settings.MAX_STAY_NIGHTS:
        raise InvalidInput(f"Stays are limited to {settings.MAX_STAY_NIGHTS} nights")
    return nights
