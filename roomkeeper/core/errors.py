"""Error taxonomy for the reservation core.

Every failure the core reports derives from ``ReservationError`` and carries a
stable ``code`` and the HTTP status the API layer answers with.
"""
from dataclasses import dataclass
from typing import ClassVar

from sqlalchemy.exc import DBAPIError, SQLAlchemyError


@dataclass(eq=False)
class ReservationError(Exception):
    code: str
    message: str

    status_code: ClassVar[int] = 500
    retryable: ClassVar[bool] = False

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message


class InvalidInput(ReservationError):
    status_code = 400

    def __init__(self, message: str = "Invalid input") -> None:
        super().__init__(code="invalid_input", message=message)


class InvalidDateRange(InvalidInput):
    def __init__(self, message: str = "Check-out date must be after check-in date") -> None:
        super().__init__(message)


class Unauthenticated(ReservationError):
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(code="unauthenticated", message=message)


class Unauthorized(ReservationError):
    status_code = 403

    def __init__(self, message: str = "Not authorized for this reservation") -> None:
        super().__init__(code="unauthorized", message=message)


class NotFound(ReservationError):
    status_code = 404

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(code="not_found", message=message)


class HotelNotFound(NotFound):
    def __init__(self, hotel_id: int) -> None:
        super().__init__(f"Hotel {hotel_id} not found")


class RoomNotFound(NotFound):
    def __init__(self, room_id: int) -> None:
        super().__init__(f"Room {room_id} not found")


class CategoryNotFound(NotFound):
    def __init__(self, category_id: int) -> None:
        super().__init__(f"Room category {category_id} not found")


class ReservationNotFound(NotFound):
    def __init__(self, reservation_id: int) -> None:
        super().__init__(f"Reservation {reservation_id} not found")


class RoomUnavailable(ReservationError):
    status_code = 409

    def __init__(self, message: str = "Room is not available for the selected dates") -> None:
        super().__init__(code="room_unavailable", message=message)


class AlreadyCancelled(ReservationError):
    status_code = 422

    def __init__(self, reservation_id: int) -> None:
        super().__init__(
            code="already_cancelled",
            message=f"Reservation {reservation_id} is already cancelled",
        )


class Conflict(ReservationError):
    status_code = 423
    retryable = True

    def __init__(self, message: str = "Another request is modifying this room, retry") -> None:
        super().__init__(code="conflict", message=message)


class StoreFailure(ReservationError):
    status_code = 503
    retryable = True

    def __init__(self, message: str = "Reservation store unavailable, retry") -> None:
        super().__init__(code="store_failure", message=message)


# SQLSTATEs raised when a concurrent writer holds or won the row:
# serialization_failure, deadlock_detected, lock_not_available
_CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def translate_store_error(exc: SQLAlchemyError) -> ReservationError:
    """Map a SQLAlchemy error onto ``Conflict`` or ``StoreFailure``."""
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in _CONFLICT_SQLSTATES:
            return Conflict()
        # SQLite reports a competing writer as "database is locked"
        if "database is locked" in str(orig).lower():
            return Conflict()
    return StoreFailure()
