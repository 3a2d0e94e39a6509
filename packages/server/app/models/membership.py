"""User-Organization membership."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Membership(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organization_members"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "org_id", name="uq_organization_members_user_org"),
    )

    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    role: str = Field(nullable=False, default="MEMBER")  # MEMBER | VALIDATOR | ADMIN
    status: str = Field(nullable=False, default="ACTIVE")  # ACTIVE | INACTIVE | PENDING
    face_image_id: Optional[str] = None  # overrides the account photo inside this org
