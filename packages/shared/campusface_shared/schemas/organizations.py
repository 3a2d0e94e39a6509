"""Organization (hub) schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    hub_code: str = Field(
        ...,
        min_length=3,
        max_length=32,
        pattern=r"^[A-Za-z0-9_-]+$",
        description="Shareable code members use to request entry",
    )
    description: str = ""


class OrganizationResponse(BaseModel):
    id: uuid.UUID
    name: str
    hub_code: str
    description: str = ""
    member_ids: list[str] = []
    validator_ids: list[str] = []
    admin_ids: list[str] = []
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
