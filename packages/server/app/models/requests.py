"""Entry request and change request models.

Both tables carry a partial unique index so the database itself rejects a
second PENDING request for the same (user, organization).
"""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow

_PENDING = sa.text("status = 'PENDING'")


class EntryRequest(UUIDMixin, SQLModel, table=True):
    __tablename__ = "entry_requests"
    __table_args__ = (
        sa.Index(
            "uq_entry_requests_pending",
            "user_id",
            "org_id",
            unique=True,
            postgresql_where=_PENDING,
            sqlite_where=_PENDING,
        ),
    )

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    hub_code: str = Field(nullable=False)
    role: str = Field(nullable=False, default="MEMBER")
    status: str = Field(nullable=False, default="PENDING")  # PENDING | APPROVED | DENIED
    requested_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
    updated_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))


class ChangeRequest(UUIDMixin, SQLModel, table=True):
    __tablename__ = "change_requests"
    __table_args__ = (
        sa.Index(
            "uq_change_requests_pending",
            "user_id",
            "org_id",
            unique=True,
            postgresql_where=_PENDING,
            sqlite_where=_PENDING,
        ),
    )

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    new_face_image_id: str = Field(nullable=False)
    status: str = Field(nullable=False, default="PENDING")
    requested_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
    updated_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
