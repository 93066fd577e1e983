"""Requester identity and reservation authorization.

Authentication happens upstream: the gateway forwards the authenticated
user's id and role in the ``X-Requester-Id`` and ``X-Requester-Role``
headers. The core only decides whether that requester may act on a
reservation.
"""
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Header

from .config import settings
from .errors import Unauthenticated, Unauthorized


@dataclass(frozen=True)
class Requester:
    id: int
    role: str

    @property
    def is_elevated(self) -> bool:
        return is_elevated_role(self.role)


def is_elevated_role(role: Optional[str]) -> bool:
    return bool(role) and role.upper() in settings.elevated_role_set


def can_manage_reservation(requester_id: int, requester_role: Optional[str], reservation) -> bool:
    """Owner of the reservation or an elevated role (admin, manager)."""
    return reservation.guest_id == requester_id or is_elevated_role(requester_role)


Authorizer = Callable[[int, Optional[str], object], bool]


async def get_requester(
    x_requester_id: Optional[str] = Header(None, alias="X-Requester-Id", description="Authenticated user id"),
    x_requester_role: str = Header("CUSTOMER", alias="X-Requester-Role", description="Authenticated user role"),
) -> Requester:
    """FastAPI dependency resolving the requester forwarded by the gateway."""
    if not x_requester_id:
        raise Unauthenticated()
    try:
        requester_id = int(x_requester_id)
    except ValueError:
        raise Unauthenticated("Invalid requester id") from None
    return Requester(id=requester_id, role=x_requester_role.upper())


async def require_elevated(requester: Requester = Depends(get_requester)) -> Requester:
    if not requester.is_elevated:
        raise Unauthorized("Insufficient permissions")
    return requester
