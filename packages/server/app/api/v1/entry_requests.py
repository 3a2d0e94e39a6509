"""
Entry request endpoints.

POST   /api/v1/entry-requests/create                     - Ask to join a hub
GET    /api/v1/entry-requests/organization/{hubCode}     - Pending requests of a hub (Admin)
POST   /api/v1/entry-requests/{requestId}/approve        - Approve (Admin)
POST   /api/v1/entry-requests/{requestId}/reject         - Reject (Admin)
GET    /api/v1/entry-requests/my-requests                - Caller's requests
GET    /api/v1/entry-requests/{requestId}                - Get one request
PUT    /api/v1/entry-requests/{requestId}                - Change the requested role
DELETE /api/v1/entry-requests/{requestId}                - Delete a request
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
from app.services import entry_requests as entry_service
from campusface_shared.schemas.common import ApiResponse
from campusface_shared.schemas.requests import (
    EntryRequestCreate,
    EntryRequestResponse,
    EntryRequestUpdate,
)

router = APIRouter()


@router.post("/create", response_model=ApiResponse[EntryRequestResponse], status_code=201)
async def create_request(
    body: EntryRequestCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
):
    data = await entry_service.create_request(user.id, body, session, images)
    return ApiResponse(success=True, message="Entry request created", data=data)


@router.get(
    "/organization/{hub_code}", response_model=ApiResponse[list[EntryRequestResponse]]
)
async def list_pending_requests(
    hub_code: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
):
    data = await entry_service.list_pending_requests(
        hub_code, session, images, reviewer_id=user.id
    )
    return ApiResponse(success=True, message="Pending requests retrieved", data=data)


@router.post("/{request_id}/approve", response_model=ApiResponse[None])
async def approve_request(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    sync: DirectorySync = Depends(get_directory_sync),
):
    """Approve a pending request; the requester becomes an ACTIVE member."""
    await entry_service.approve_request(request_id, session, sync, reviewer_id=user.id)
    return ApiResponse(success=True, message="Entry request approved")


@router.post("/{request_id}/reject", response_model=ApiResponse[None])
async def reject_request(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await entry_service.reject_request(request_id, session, reviewer_id=user.id)
    return ApiResponse(success=True, message="Entry request rejected")


@router.get("/my-requests", response_model=ApiResponse[list[EntryRequestResponse]])
async def list_my_requests(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
):
    data = await entry_service.list_user_requests(user.id, session, images)
    return ApiResponse(success=True, message="Requests retrieved", data=data)


@router.get("/{request_id}", response_model=ApiResponse[EntryRequestResponse])
async def get_request(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
):
    data = await entry_service.get_request_by_id(request_id, session, images)
    return ApiResponse(success=True, message="Request retrieved", data=data)


@router.put("/{request_id}", response_model=ApiResponse[EntryRequestResponse])
async def update_request(
    request_id: uuid.UUID,
    body: EntryRequestUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
):
    data = await entry_service.update_request(
        request_id, body.role, session, images, actor_id=user.id
    )
    return ApiResponse(success=True, message="Entry request updated", data=data)


@router.delete("/{request_id}", response_model=ApiResponse[None])
async def delete_request(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await entry_service.delete_request(request_id, session, actor_id=user.id)
    return ApiResponse(success=True, message="Entry request deleted")
