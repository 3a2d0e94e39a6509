"""Organization (hub) model."""

from typing import List

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
    hub_code: str = Field(unique=True, nullable=False, index=True)
    description: str = Field(default="", nullable=False)
    # Role-specific directory lists (user ids as strings)
    member_ids: List[str] = Field(default_factory=list, sa_type=sa.JSON, nullable=False)
    validator_ids: List[str] = Field(default_factory=list, sa_type=sa.JSON, nullable=False)
    admin_ids: List[str] = Field(default_factory=list, sa_type=sa.JSON, nullable=False)
