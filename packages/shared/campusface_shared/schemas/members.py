"""Membership and user projection schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from .common import MemberStatus, Role


class UserSummary(BaseModel):
    """Public view of a user account, with a signed face URL when available."""
    id: uuid.UUID
    full_name: str
    email: Optional[str] = None
    document: Optional[str] = None
    face_image_url: Optional[str] = None
    created_at: Optional[datetime] = None


class MemberResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    role: Role
    status: MemberStatus
    joined_at: datetime
    user: UserSummary

    model_config = {"from_attributes": True}


class MemberUpdate(BaseModel):
    """Administrative change of role and/or status."""
    role: Optional[Role] = None
    status: Optional[MemberStatus] = None


class MemberListResponse(BaseModel):
    data: list[MemberResponse]
