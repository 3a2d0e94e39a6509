"""
Member service: membership projections and administrative updates.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFound
from app.core.images import ImageHost
from app.core.sync import DirectorySync
from app.models.base import as_utc
from app.models.membership import Membership
from app.models.user import User
from app.services import organizations as org_service
from app.stores import memberships as membership_store
from campusface_shared.schemas.common import MemberStatus, Role
from campusface_shared.schemas.members import MemberResponse, MemberUpdate, UserSummary

log = structlog.get_logger()


def face_url(images: ImageHost, public_id: Optional[str]) -> Optional[str]:
    """Signed URL for an image host id, or None when there is no image."""
    return images.signed_url(public_id) if public_id else None


def user_summary(
    user: User, images: ImageHost, face_image_id: Optional[str] = None
) -> UserSummary:
    return UserSummary(
        id=user.id,
        full_name=user.full_name,
        email=user.email,
        document=user.document,
        face_image_url=face_url(images, face_image_id or user.face_image_id),
        created_at=as_utc(user.created_at),
    )


def member_response(member: Membership, user: User, images: ImageHost) -> MemberResponse:
    """The membership photo overrides the account photo when set."""
    return MemberResponse(
        id=member.id,
        organization_id=member.org_id,
        role=Role(member.role),
        status=MemberStatus(member.status),
        joined_at=as_utc(member.created_at),
        user=user_summary(user, images, member.face_image_id),
    )


async def get_member(
    membership_id: uuid.UUID, session: AsyncSession, images: ImageHost
) -> MemberResponse:
    member = await membership_store.get_membership(membership_id, session)
    if not member:
        raise NotFound("Member not found")
    user = await session.get(User, member.user_id)
    if not user:
        raise NotFound("User not found")
    return member_response(member, user, images)


async def list_members(
    org_id: uuid.UUID, session: AsyncSession, images: ImageHost
) -> list[MemberResponse]:
    members = await membership_store.list_org_memberships(org_id, session)
    items = []
    for member in members:
        user = await session.get(User, member.user_id)
        if user:
            items.append(member_response(member, user, images))
    return items


async def update_member(
    membership_id: uuid.UUID,
    req: MemberUpdate,
    admin_user_id: uuid.UUID,
    session: AsyncSession,
    images: ImageHost,
    sync: DirectorySync,
) -> MemberResponse:
    """Change a member's role and/or status (ADMIN of the same org only)."""
    member = await membership_store.get_membership(membership_id, session)
    if not member:
        raise NotFound("Member not found")
    await org_service.require_active_admin(admin_user_id, member.org_id, session)

    if req.role is not None and req.role.value != member.role:
        old_role = Role(member.role)
        await org_service.remove_from_directory(member.org_id, old_role, member.user_id, session)
        await org_service.add_to_directory(member.org_id, req.role, member.user_id, session)
        member.role = req.role.value
    if req.status is not None:
        member.status = req.status.value

    await membership_store.save_membership(member, session)
    await session.commit()
    log.info(
        "member.updated",
        member_id=str(member.id),
        org_id=str(member.org_id),
        role=member.role,
        status=member.status,
    )
    await sync.notify_member_synced(member.org_id, member.user_id, reason="membership.updated")

    user = await session.get(User, member.user_id)
    if not user:
        raise NotFound("User not found")
    return member_response(member, user, images)
