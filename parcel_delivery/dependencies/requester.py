"""
Requester identity for FastAPI routes

Authentication is done upstream (API gateway); the gateway forwards the
authenticated user as X-User-Id / X-User-Role headers.
"""

from typing import Optional

from fastapi import Request
from pydantic import BaseModel

from parcel_delivery.core.config import config
from parcel_delivery.core.errors import ErrorResponse


class Requester(BaseModel):
    user_id: str
    role: str = "CUSTOMER"

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    @property
    def is_courier(self) -> bool:
        return self.role == "COURIER"


def get_optional_requester(request: Request) -> Optional[Requester]:
    user_id = request.headers.get(config.user_id_header)
    if not user_id:
        return None
    role = (request.headers.get(config.user_role_header) or "CUSTOMER").upper()
    return Requester(user_id=user_id, role=role)


def get_requester(request: Request) -> Requester:
    """Identity of the caller; 401 when the gateway did not forward one"""
    requester = get_optional_requester(request)
    if requester is None:
        raise ErrorResponse(f"Missing {config.user_id_header} header", status_code=401)
    return requester


def require_role(requester: Requester, *roles: str) -> None:
    if requester.role not in roles:
        raise ErrorResponse("Access denied", status_code=403, details={"requiredRoles": list(roles)})
