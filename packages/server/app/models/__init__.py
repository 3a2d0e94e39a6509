# Table models, imported here so SQLModel.metadata is complete for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .membership import Membership  # noqa: F401
from .access_code import AuthCode  # noqa: F401
from .requests import EntryRequest, ChangeRequest  # noqa: F401
