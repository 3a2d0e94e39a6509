"""
API v1 Router

Every route answers with the ApiResponse envelope.
"""

from fastapi import APIRouter

from campusface_shared.schemas.common import ApiResponse

from . import access_codes, change_requests, entry_requests, members, organizations

router = APIRouter()

router.include_router(access_codes.router, prefix="/validate", tags=["Access Codes"])
router.include_router(entry_requests.router, prefix="/entry-requests", tags=["Entry Requests"])
router.include_router(change_requests.router, prefix="/change-requests", tags=["Change Requests"])
router.include_router(members.router, prefix="/members", tags=["Members"])
router.include_router(organizations.router, prefix="/organizations", tags=["Organizations"])


@router.get("/", tags=["API"])
async def api_root():
    """API root - returns version and available endpoints."""
    return ApiResponse(
        success=True,
        message="CampusFace API v1",
        data={
            "version": "0.1.0",
            "endpoints": [
                "/validate",
                "/entry-requests",
                "/change-requests",
                "/members",
                "/organizations",
            ],
        },
    )
