"""
Authorization code schemas.

Covers: code generation/validation requests and responses, the admin
view of stored codes and its partial update.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .members import MemberResponse

CODE_LENGTH = 6


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class GenerateCodeRequest(BaseModel):
    organization_id: uuid.UUID


class ValidateCodeRequest(BaseModel):
    code: str = Field(
        ...,
        min_length=CODE_LENGTH,
        max_length=CODE_LENGTH,
        pattern=r"^[0-9]{6}$",
        description="The 6-digit code shown by the member",
    )


class AuthCodeUpdate(BaseModel):
    """Administrative override. Omitted fields keep their stored value."""
    valid: Optional[bool] = None
    expiration_time: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class GeneratedCodeResponse(BaseModel):
    code: str
    expiration_time: datetime


class ValidationResult(BaseModel):
    valid: bool
    message: str
    member: Optional[MemberResponse] = None


class AuthCodeResponse(BaseModel):
    id: uuid.UUID
    code: str
    user_id: uuid.UUID
    organization_id: uuid.UUID
    expiration_time: datetime
    valid: bool
