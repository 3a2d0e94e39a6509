"""
Membership endpoints.

GET    /api/v1/members/organization/{organizationId}  - List members of an org (Admin)
GET    /api/v1/members/{memberId}                     - Get one membership
PUT    /api/v1/members/{memberId}                     - Change role/status (Admin)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.database import get_session
from app.core.images import ImageHost, get_image_host
from app.core.sync import DirectorySync, get_directory_sync
from app.models.user import User
from app.services import members as member_service
from app.services import organizations as org_service
from campusface_shared.schemas.common import ApiResponse
from campusface_shared.schemas.members import MemberResponse, MemberUpdate

router = APIRouter()


@router.get(
    "/organization/{organization_id}", response_model=ApiResponse[list[MemberResponse]]
)
async def list_members(
    organization_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
):
    await org_service.get_org(organization_id, session)
    await org_service.require_active_admin(user.id, organization_id, session)
    data = await member_service.list_members(organization_id, session, images)
    return ApiResponse(success=True, message="Members retrieved", data=data)


@router.get("/{member_id}", response_model=ApiResponse[MemberResponse])
async def get_member(
    member_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
):
    data = await member_service.get_member(member_id, session, images)
    return ApiResponse(success=True, message="Member retrieved", data=data)


@router.put("/{member_id}", response_model=ApiResponse[MemberResponse])
async def update_member(
    member_id: uuid.UUID,
    body: MemberUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
    sync: DirectorySync = Depends(get_directory_sync),
):
    data = await member_service.update_member(member_id, body, user.id, session, images, sync)
    return ApiResponse(success=True, message="Member updated", data=data)
