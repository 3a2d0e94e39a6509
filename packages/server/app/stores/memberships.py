"""
Membership store: one record per (user, organization).
"""

from __future__ import annotations

import uuid
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import AlreadyMember
from app.models.base import utcnow
from app.models.membership import Membership
from campusface_shared.schemas.common import MemberStatus, Role


async def find_membership(
    user_id: uuid.UUID, org_id: uuid.UUID, session: AsyncSession
) -> Optional[Membership]:
    result = await session.execute(
        select(Membership).where(
            Membership.user_id == user_id, Membership.org_id == org_id
        )
    )
    return result.scalar_one_or_none()


async def get_membership(
    membership_id: uuid.UUID, session: AsyncSession
) -> Optional[Membership]:
    return await session.get(Membership, membership_id)


async def list_org_memberships(
    org_id: uuid.UUID, session: AsyncSession
) -> Sequence[Membership]:
    result = await session.execute(
        select(Membership)
        .where(Membership.org_id == org_id)
        .order_by(Membership.created_at)
    )
    return result.scalars().all()


async def find_admin_org_ids(user_id: uuid.UUID, session: AsyncSession) -> list[uuid.UUID]:
    """Organizations where the user is an ACTIVE ADMIN."""
    result = await session.execute(
        select(Membership.org_id).where(
            Membership.user_id == user_id,
            Membership.role == Role.ADMIN.value,
            Membership.status == MemberStatus.ACTIVE.value,
        )
    )
    return list(result.scalars().all())


async def create_membership(membership: Membership, session: AsyncSession) -> Membership:
    """Insert a membership; the unique (user, org) constraint decides races."""
    session.add(membership)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise AlreadyMember()
    return membership


async def update_face_image_id(
    membership_id: uuid.UUID, face_image_id: Optional[str], session: AsyncSession
) -> None:
    await session.execute(
        sa.update(Membership)
        .where(Membership.id == membership_id)
        .values(face_image_id=face_image_id, updated_at=utcnow())
        .execution_options(synchronize_session="evaluate")
    )


async def save_membership(membership: Membership, session: AsyncSession) -> Membership:
    membership.updated_at = utcnow()
    session.add(membership)
    await session.flush()
    return membership
