"""
Authorization code endpoints.

POST   /api/v1/validate/qr-code/generate         - Issue a code for the caller
POST   /api/v1/validate/qr-code                  - Consume a code (VALIDATOR/ADMIN)
GET    /api/v1/validate/codes                    - Codes of orgs the caller administers
GET    /api/v1/validate/codes/{codeId}           - Get a stored code (Admin)
PUT    /api/v1/validate/codes/{codeId}           - Override valid/expiration (Admin)
DELETE /api/v1/validate/codes/{codeId}           - Delete a code (Admin)
POST   /api/v1/validate/codes/{codeId}/invalidate - Invalidate a code (Admin)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.database import get_session
from app.core.images import ImageHost, get_image_host
from app.models.user import User
from app.services import access_codes as code_service
from campusface_shared.schemas.access_codes import (
    AuthCodeResponse,
    AuthCodeUpdate,
    GenerateCodeRequest,
    GeneratedCodeResponse,
    ValidateCodeRequest,
    ValidationResult,
)
from campusface_shared.schemas.common import ApiResponse

router = APIRouter()


@router.post("/qr-code/generate", response_model=ApiResponse[GeneratedCodeResponse])
async def generate_code(
    body: GenerateCodeRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Issue a fresh code; any earlier code of the caller in this org stops working."""
    data = await code_service.generate_code(user.id, body.organization_id, session)
    return ApiResponse(success=True, message="Code generated successfully", data=data)


@router.post(
    "/qr-code",
    response_model=ApiResponse[ValidationResult],
    responses={422: {"model": ApiResponse[ValidationResult]}},
)
async def validate_code(
    body: ValidateCodeRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    images: ImageHost = Depends(get_image_host),
):
    """Consume a code. A rejected code is answered with 422 and ``valid=false``."""
    result = await code_service.validate_code(body.code, user.id, session, images)
    envelope = ApiResponse(success=result.valid, message=result.message, data=result)
    if not result.valid:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=envelope.model_dump(mode="json"),
        )
    return envelope


@router.get("/codes", response_model=ApiResponse[list[AuthCodeResponse]])
async def list_codes(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    data = await code_service.list_codes(session, admin_user_id=user.id)
    return ApiResponse(success=True, message="Codes retrieved", data=data)


@router.get("/codes/{code_id}", response_model=ApiResponse[AuthCodeResponse])
async def get_code(
    code_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    data = await code_service.get_code(code_id, session, admin_user_id=user.id)
    return ApiResponse(success=True, message="Code retrieved", data=data)


@router.put("/codes/{code_id}", response_model=ApiResponse[AuthCodeResponse])
async def update_code(
    code_id: uuid.UUID,
    body: AuthCodeUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    data = await code_service.update_code(code_id, body, session, admin_user_id=user.id)
    return ApiResponse(success=True, message="Code updated", data=data)


@router.delete("/codes/{code_id}", response_model=ApiResponse[None])
async def delete_code(
    code_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await code_service.delete_code(code_id, session, admin_user_id=user.id)
    return ApiResponse(success=True, message="Code deleted")


@router.post("/codes/{code_id}/invalidate", response_model=ApiResponse[None])
async def invalidate_code(
    code_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await code_service.invalidate_code_manual(code_id, session, admin_user_id=user.id)
    return ApiResponse(success=True, message="Code invalidated")
