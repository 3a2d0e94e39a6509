"""
Change request service: members propose a new face photo for one
organization, administrators of that organization review it.

Images are stored on the external host; only the host's public id is kept
in the database. Deleting a proposed image is always best-effort.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    AlreadyProcessed,
    DuplicatePending,
    InactiveMember,
    NotFound,
    NotMember,
    UpstreamFailure,
)
from app.core.images import ImageHost, ImagePreprocessor
from app.core.sync import DirectorySync
from app.models.base import as_utc, utcnow
from app.models.membership import Membership
from app.models.requests import ChangeRequest
from app.models.user import User
from app.services import organizations as org_service
from app.services.members import face_url
from app.stores import memberships as membership_store
from app.stores import requests as request_store
from campusface_shared.schemas.common import MemberStatus, RequestStatus, can_transition
from campusface_shared.schemas.requests import ChangeRequestRead, ChangeRequestResponse

log = structlog.get_logger()


def _to_read(request: ChangeRequest) -> ChangeRequestRead:
    return ChangeRequestRead(
        id=request.id,
        user_id=request.user_id,
        organization_id=request.org_id,
        new_face_image_id=request.new_face_image_id,
        status=RequestStatus(request.status),
        requested_at=as_utc(request.requested_at),
        updated_at=as_utc(request.updated_at),
    )


def _to_response(
    request: ChangeRequest, user: User, member: Optional[Membership], images: ImageHost
) -> ChangeRequestResponse:
    current = (member.face_image_id if member else None) or user.face_image_id
    return ChangeRequestResponse(
        id=request.id,
        status=RequestStatus(request.status),
        requested_at=as_utc(request.requested_at),
        organization_id=request.org_id,
        user_full_name=user.full_name,
        current_face_url=face_url(images, current),
        new_face_url=face_url(images, request.new_face_image_id),
    )


async def _discard_image(images: ImageHost, public_id: Optional[str]) -> None:
    if not public_id:
        return
    try:
        await images.delete(public_id)
    except UpstreamFailure as exc:
        log.warning("change_request.image_delete_failed", public_id=public_id, error=exc.detail)


async def _upload(
    image_bytes: bytes, images: ImageHost, preprocessor: ImagePreprocessor
) -> str:
    processed = await preprocessor.process(image_bytes)
    result = await images.upload(processed)
    return result["public_id"]


async def _get_request_or_404(request_id: uuid.UUID, session: AsyncSession) -> ChangeRequest:
    request = await request_store.get_request(ChangeRequest, request_id, session)
    if not request:
        raise NotFound("Change request not found")
    return request


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def create_request(
    user_id: uuid.UUID,
    org_id: uuid.UUID,
    image_bytes: bytes,
    session: AsyncSession,
    images: ImageHost,
    preprocessor: ImagePreprocessor,
) -> ChangeRequestRead:
    member = await membership_store.find_membership(user_id, org_id, session)
    if member is None:
        raise NotMember()
    if member.status != MemberStatus.ACTIVE.value:
        raise InactiveMember()

    if await request_store.find_pending_for_user(ChangeRequest, user_id, org_id, session):
        raise DuplicatePending(
            "You already have a pending face change request for this organization"
        )

    public_id = await _upload(image_bytes, images, preprocessor)
    try:
        request = await request_store.insert_pending(
            ChangeRequest(
                user_id=user_id,
                org_id=org_id,
                new_face_image_id=public_id,
                requested_at=utcnow(),
            ),
            session,
        )
    except DuplicatePending:
        await _discard_image(images, public_id)
        raise

    log.info(
        "change_request.created",
        request_id=str(request.id),
        user_id=str(user_id),
        org_id=str(org_id),
    )
    return _to_read(request)


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


async def review_request(
    request_id: uuid.UUID,
    admin_user_id: uuid.UUID,
    approved: bool,
    session: AsyncSession,
    images: ImageHost,
    sync: DirectorySync,
) -> ChangeRequestRead:
    request = await _get_request_or_404(request_id, session)
    target = RequestStatus.APPROVED if approved else RequestStatus.DENIED
    if not can_transition(RequestStatus(request.status), target):
        raise AlreadyProcessed("This request has already been reviewed")

    await org_service.require_active_admin(
        admin_user_id,
        request.org_id,
        session,
        detail="Only ADMINs of this organization can review requests",
    )

    if approved:
        member = await membership_store.find_membership(
            request.user_id, request.org_id, session
        )
        if member is None:
            raise NotFound("Member not found")
        if not await request_store.update_status(
            ChangeRequest, request.id, RequestStatus.APPROVED, session
        ):
            raise AlreadyProcessed("This request has already been reviewed")
        await membership_store.update_face_image_id(
            member.id, request.new_face_image_id, session
        )
        await session.commit()
        log.info(
            "change_request.approved",
            request_id=str(request.id),
            member_id=str(member.id),
            reviewer_id=str(admin_user_id),
        )
        await sync.notify_member_synced(
            request.org_id, request.user_id, reason="face_image.changed"
        )
    else:
        if not await request_store.update_status(
            ChangeRequest, request.id, RequestStatus.DENIED, session
        ):
            raise AlreadyProcessed("This request has already been reviewed")
        # The photo is only discarded once the rejection is durable
        await session.commit()
        await _discard_image(images, request.new_face_image_id)
        log.info(
            "change_request.rejected",
            request_id=str(request.id),
            reviewer_id=str(admin_user_id),
        )

    return _to_read(request)


# ---------------------------------------------------------------------------
# Edit & delete
# ---------------------------------------------------------------------------


async def update_request(
    request_id: uuid.UUID,
    image_bytes: bytes,
    session: AsyncSession,
    images: ImageHost,
    preprocessor: ImagePreprocessor,
    actor_id: Optional[uuid.UUID] = None,
) -> ChangeRequestRead:
    """Replace the proposed photo of a PENDING request."""
    request = await _get_request_or_404(request_id, session)
    if request.status != RequestStatus.PENDING.value:
        raise AlreadyProcessed("Only pending requests can be edited")
    if actor_id is not None and actor_id != request.user_id:
        await org_service.require_active_admin(actor_id, request.org_id, session)

    # Validate the new photo before touching the old one
    processed = await preprocessor.process(image_bytes)
    await _discard_image(images, request.new_face_image_id)
    result = await images.upload(processed)

    request.new_face_image_id = result["public_id"]
    request = await request_store.save_request(request, session)
    log.info("change_request.updated", request_id=str(request.id))
    return _to_read(request)


async def delete_request(
    request_id: uuid.UUID,
    session: AsyncSession,
    images: ImageHost,
    actor_id: Optional[uuid.UUID] = None,
) -> None:
    request = await _get_request_or_404(request_id, session)
    if actor_id is not None and actor_id != request.user_id:
        await org_service.require_active_admin(actor_id, request.org_id, session)

    # Approved photos are in use by the membership; denied ones are already gone
    if request.status == RequestStatus.PENDING.value:
        await _discard_image(images, request.new_face_image_id)

    await request_store.delete_request(ChangeRequest, request_id, session)
    log.info("change_request.deleted", request_id=str(request_id), status=request.status)


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------


async def list_pending_requests(
    org_id: uuid.UUID,
    session: AsyncSession,
    images: ImageHost,
    reviewer_id: Optional[uuid.UUID] = None,
) -> list[ChangeRequestResponse]:
    """Pending requests of an org; rows whose user or membership vanished are skipped."""
    await org_service.get_org(org_id, session)
    if reviewer_id is not None:
        await org_service.require_active_admin(reviewer_id, org_id, session)

    requests = await request_store.find_by_org_and_status(
        ChangeRequest, org_id, RequestStatus.PENDING, session
    )
    items = []
    for req in requests:
        user = await session.get(User, req.user_id)
        member = await membership_store.find_membership(req.user_id, req.org_id, session)
        if user and member:
            items.append(_to_response(req, user, member, images))
    return items


async def list_user_requests(
    user_id: uuid.UUID, session: AsyncSession, images: ImageHost
) -> list[ChangeRequestResponse]:
    user = await session.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    requests = await request_store.find_by_user(ChangeRequest, user_id, session)
    items = []
    for req in requests:
        member = await membership_store.find_membership(user_id, req.org_id, session)
        if member:
            items.append(_to_response(req, user, member, images))
    return items


async def get_request_by_id(
    request_id: uuid.UUID, session: AsyncSession, images: ImageHost
) -> ChangeRequestResponse:
    request = await _get_request_or_404(request_id, session)
    user = await session.get(User, request.user_id)
    if not user:
        raise NotFound("User not found")
    member = await membership_store.find_membership(request.user_id, request.org_id, session)
    return _to_response(request, user, member, images)
