from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Role(str, Enum):
    MEMBER = "MEMBER"
    VALIDATOR = "VALIDATOR"
    ADMIN = "ADMIN"


class MemberStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PENDING = "PENDING"


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"


# Roles allowed to consume authorization codes
VALIDATING_ROLES: frozenset[Role] = frozenset({Role.VALIDATOR, Role.ADMIN})

# Valid state transitions for entry and change requests
REQUEST_TRANSITIONS: dict[RequestStatus, list[RequestStatus]] = {
    RequestStatus.PENDING: [RequestStatus.APPROVED, RequestStatus.DENIED],
    RequestStatus.APPROVED: [],
    RequestStatus.DENIED: [],
}


class ApiResponse(BaseModel, Generic[T]):
    """Envelope returned by every endpoint, errors included."""

    success: bool
    message: Optional[str] = None
    data: Optional[T] = None


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    """Check whether a request may move from ``current`` to ``target``."""
    return target in REQUEST_TRANSITIONS.get(current, [])
