"""Authorization code model (single-use, short-lived)."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class AuthCode(UUIDMixin, SQLModel, table=True):
    __tablename__ = "auth_codes"
    __table_args__ = (
        sa.Index("ix_auth_codes_user_org_valid", "user_id", "org_id", "valid"),
    )

    code: str = Field(nullable=False, index=True, max_length=6)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    expiration_time: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    valid: bool = Field(default=True, nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
