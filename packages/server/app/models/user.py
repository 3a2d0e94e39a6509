"""User model."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    full_name: str = Field(nullable=False)
    email: Optional[str] = Field(default=None, unique=True, index=True)
    document: Optional[str] = None
    face_image_id: Optional[str] = None  # image host public id of the account photo
