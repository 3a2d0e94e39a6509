"""
Organization (hub) endpoints.

POST   /api/v1/organizations              - Create a hub; the caller becomes its ADMIN
GET    /api/v1/organizations/{hubCode}    - Look up a hub by its shareable code
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.database import get_session
from app.core.sync import DirectorySync, get_directory_sync
from app.models.organization import Organization
from app.models.user import User
from app.services import organizations as org_service
from campusface_shared.schemas.common import ApiResponse
from campusface_shared.schemas.organizations import OrganizationCreate, OrganizationResponse

router = APIRouter()


def _to_response(org: Organization) -> OrganizationResponse:
    return OrganizationResponse.model_validate(org)


@router.post("", response_model=ApiResponse[OrganizationResponse], status_code=201)
async def create_org(
    body: OrganizationCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    sync: DirectorySync = Depends(get_directory_sync),
):
    org = await org_service.create_org(
        body.name, body.hub_code, user.id, session, description=body.description
    )
    await session.commit()
    await sync.notify_member_synced(org.id, user.id, reason="membership.created")
    return ApiResponse(success=True, message="Organization created", data=_to_response(org))


@router.get("/{hub_code}", response_model=ApiResponse[OrganizationResponse])
async def get_org(
    hub_code: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.get_org_by_hub_code(hub_code, session)
    return ApiResponse(success=True, message="Organization retrieved", data=_to_response(org))
