"""Initial CampusFace schema: hubs, users, memberships, codes and requests.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)
PENDING_ONLY = sa.text("status = 'PENDING'")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # organizations (hubs) with the role-specific directory lists
    op.create_table(
        "organizations",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("hub_code", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("member_ids", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("validator_ids", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("admin_ids", sa.JSON(), nullable=False, server_default="[]"),
        *_timestamps(),
    )
    op.create_index("ix_organizations_hub_code", "organizations", ["hub_code"], unique=True)
    op.create_index("ix_organizations_name", "organizations", ["name"])

    # users
    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("document", sa.Text(), nullable=True),
        sa.Column("face_image_id", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # organization_members
    op.create_table(
        "organization_members",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("org_id", UUID, sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default="MEMBER"),
        sa.Column("status", sa.Text(), nullable=False, server_default="ACTIVE"),
        sa.Column("face_image_id", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "org_id", name="uq_organization_members_user_org"),
    )
    op.create_index("ix_organization_members_org_id", "organization_members", ["org_id"])
    op.create_index("ix_organization_members_user_id", "organization_members", ["user_id"])

    # auth_codes
    op.create_table(
        "auth_codes",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("code", sa.String(6), nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("org_id", UUID, sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("expiration_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_auth_codes_code", "auth_codes", ["code"])
    op.create_index("ix_auth_codes_org_id", "auth_codes", ["org_id"])
    op.create_index("ix_auth_codes_user_org_valid", "auth_codes", ["user_id", "org_id", "valid"])

    # entry_requests: at most one PENDING per (user, org)
    op.create_table(
        "entry_requests",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("org_id", UUID, sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("hub_code", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default="MEMBER"),
        sa.Column("status", sa.Text(), nullable=False, server_default="PENDING"),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_entry_requests_user_id", "entry_requests", ["user_id"])
    op.create_index("ix_entry_requests_org_id", "entry_requests", ["org_id"])
    op.create_index(
        "uq_entry_requests_pending",
        "entry_requests",
        ["user_id", "org_id"],
        unique=True,
        postgresql_where=PENDING_ONLY,
    )

    # change_requests: at most one PENDING per (user, org)
    op.create_table(
        "change_requests",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("org_id", UUID, sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("new_face_image_id", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="PENDING"),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_change_requests_user_id", "change_requests", ["user_id"])
    op.create_index("ix_change_requests_org_id", "change_requests", ["org_id"])
    op.create_index(
        "uq_change_requests_pending",
        "change_requests",
        ["user_id", "org_id"],
        unique=True,
        postgresql_where=PENDING_ONLY,
    )


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for table in (
        "change_requests",
        "entry_requests",
        "auth_codes",
        "organization_members",
        "users",
        "organizations",
    ):
        op.drop_table(table)
