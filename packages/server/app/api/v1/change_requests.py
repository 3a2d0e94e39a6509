"""
Face change request endpoints.

POST   /api/v1/change-requests                                - Propose a new photo (multipart)
GET    /api/v1/change-requests/organization/{organizationId}  - Pending requests (Admin)
POST   /api/v1/change-requests/{requestId}/review             - Approve or reject (Admin)
GET    /api/v1/change-requests/my-requests                    - Caller's requests
GET    /api/v1/change-requests/{requestId}                    - Get one request
PUT    /api/v1/change-requests/{requestId}                    - Replace the photo (multipart)
DELETE /api/v1/change-requests/{requestId}                    - Delete a request
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.database import get_session
from app.core.images import ImageHost, ImagePreprocessor, get_image_host, get_preprocessor
from app.core.sync import DirectorySync, get_directory_sync
from app.models.user import User
from app.services import change_requests as change_service
from campusface_shared.schemas.common import ApiResponse
from campusface_shared.schemas.requests import (
    ChangeRequestRead,
    ChangeRequestResponse,
    ReviewRequest,
)

router = APIRouter()


@router.post("", response_model=ApiResponse[ChangeRequestRead], status_code=201)
async def create_request(
    organization_id: uuid.UUID = Form(..., alias="organizationId"),
    image: UploadFile = File(...),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
    preprocessor: ImagePreprocessor = Depends(get_preprocessor),
):
    data = await change_service.create_request(
        user.id, organization_id, await image.read(), session, images, preprocessor
    )
    return ApiResponse(success=True, message="Face change request created", data=data)


@router.get(
    "/organization/{organization_id}",
    response_model=ApiResponse[list[ChangeRequestResponse]],
)
async def list_pending_requests(
    organization_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
):
    data = await change_service.list_pending_requests(
        organization_id, session, images, reviewer_id=user.id
    )
    return ApiResponse(success=True, message="Pending requests retrieved", data=data)


@router.post("/{request_id}/review", response_model=ApiResponse[ChangeRequestRead])
async def review_request(
    request_id: uuid.UUID,
    body: ReviewRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
    sync: DirectorySync = Depends(get_directory_sync),
):
    """Approve (photo becomes the member's face) or reject (photo is discarded)."""
    data = await change_service.review_request(
        request_id, user.id, body.approved, session, images, sync
    )
    message = "Face change approved" if body.approved else "Face change rejected"
    return ApiResponse(success=True, message=message, data=data)


@router.get("/my-requests", response_model=ApiResponse[list[ChangeRequestResponse]])
async def list_my_requests(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
):
    data = await change_service.list_user_requests(user.id, session, images)
    return ApiResponse(success=True, message="Requests retrieved", data=data)


@router.get("/{request_id}", response_model=ApiResponse[ChangeRequestResponse])
async def get_request(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
):
    data = await change_service.get_request_by_id(request_id, session, images)
    return ApiResponse(success=True, message="Request retrieved", data=data)


@router.put("/{request_id}", response_model=ApiResponse[ChangeRequestRead])
async def update_request(
    request_id: uuid.UUID,
    image: UploadFile = File(...),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
    preprocessor: ImagePreprocessor = Depends(get_preprocessor),
):
    data = await change_service.update_request(
        request_id, await image.read(), session, images, preprocessor, actor_id=user.id
    )
    return ApiResponse(success=True, message="Face change request updated", data=data)


@router.delete("/{request_id}", response_model=ApiResponse[None])
async def delete_request(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
):
    await change_service.delete_request(request_id, session, images, actor_id=user.id)
    return ApiResponse(success=True, message="Face change request deleted")
