"""Entry request and change request schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import RequestStatus, Role
from .members import UserSummary


# ---------------------------------------------------------------------------
# Entry requests
# ---------------------------------------------------------------------------

class EntryRequestCreate(BaseModel):
    hub_code: str = Field(..., min_length=1, max_length=32, description="Shareable hub code")
    role: Role = Role.MEMBER


class EntryRequestUpdate(BaseModel):
    role: Optional[Role] = None


class EntryRequestResponse(BaseModel):
    id: uuid.UUID
    hub_code: str
    role: Role
    status: RequestStatus
    requested_at: datetime
    updated_at: Optional[datetime] = None
    user: UserSummary


# ---------------------------------------------------------------------------
# Change requests
# ---------------------------------------------------------------------------

class ReviewRequest(BaseModel):
    approved: bool


class ChangeRequestRead(BaseModel):
    """Raw change request, as returned right after create/update."""
    id: uuid.UUID
    user_id: uuid.UUID
    organization_id: uuid.UUID
    new_face_image_id: str
    status: RequestStatus
    requested_at: datetime
    updated_at: Optional[datetime] = None


class ChangeRequestResponse(BaseModel):
    id: uuid.UUID
    status: RequestStatus
    requested_at: datetime
    organization_id: uuid.UUID
    user_full_name: str
    current_face_url: Optional[str] = None
    new_face_url: Optional[str] = None
