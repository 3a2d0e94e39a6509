"""
Entry request service: a user's application to join a hub with a role.

    PENDING → APPROVED   membership created + directory registration + sync
    PENDING → DENIED
    PENDING → PENDING    role edit
    any     → deleted
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AlreadyMember, AlreadyProcessed, DuplicatePending, NotFound
from app.core.images import ImageHost
from app.core.sync import DirectorySync
from app.models.base import as_utc, utcnow
from app.models.membership import Membership
from app.models.requests import EntryRequest
from app.models.user import User
from app.services import organizations as org_service
from app.services.members import user_summary
from app.stores import memberships as membership_store
from app.stores import requests as request_store
from campusface_shared.schemas.common import (
    MemberStatus,
    RequestStatus,
    Role,
    can_transition,
)
from campusface_shared.schemas.requests import EntryRequestCreate, EntryRequestResponse

log = structlog.get_logger()


def _to_response(
    request: EntryRequest, user: User, images: ImageHost
) -> EntryRequestResponse:
    return EntryRequestResponse(
        id=request.id,
        hub_code=request.hub_code,
        role=Role(request.role),
        status=RequestStatus(request.status),
        requested_at=as_utc(request.requested_at),
        updated_at=as_utc(request.updated_at),
        user=user_summary(user, images),
    )


async def _get_request_or_404(request_id: uuid.UUID, session: AsyncSession) -> EntryRequest:
    request = await request_store.get_request(EntryRequest, request_id, session)
    if not request:
        raise NotFound("Entry request not found")
    return request


async def _get_pending_or_raise(
    request_id: uuid.UUID,
    session: AsyncSession,
    detail: str,
    target: RequestStatus | None = None,
) -> EntryRequest:
    request = await _get_request_or_404(request_id, session)
    current = RequestStatus(request.status)
    allowed = can_transition(current, target) if target else current == RequestStatus.PENDING
    if not allowed:
        raise AlreadyProcessed(detail)
    return request


async def _ensure_owner_or_admin(
    request: EntryRequest, actor_id: Optional[uuid.UUID], session: AsyncSession
) -> None:
    if actor_id is None or actor_id == request.user_id:
        return
    await org_service.require_active_admin(actor_id, request.org_id, session)


# ---------------------------------------------------------------------------
# Create & read
# ---------------------------------------------------------------------------


async def create_request(
    user_id: uuid.UUID,
    data: EntryRequestCreate,
    session: AsyncSession,
    images: ImageHost,
) -> EntryRequestResponse:
    org = await org_service.get_org_by_hub_code(data.hub_code, session)

    if await membership_store.find_membership(user_id, org.id, session):
        raise AlreadyMember("You are already a member of this organization")

    if await request_store.find_pending_for_user(EntryRequest, user_id, org.id, session):
        raise DuplicatePending("You already have a pending request for this organization")

    user = await session.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    request = await request_store.insert_pending(
        EntryRequest(
            user_id=user_id,
            org_id=org.id,
            hub_code=org.hub_code,
            role=data.role.value,
            requested_at=utcnow(),
        ),
        session,
    )
    log.info(
        "entry_request.created",
        request_id=str(request.id),
        user_id=str(user_id),
        org_id=str(org.id),
        role=data.role.value,
    )
    return _to_response(request, user, images)


async def list_pending_requests(
    hub_code: str,
    session: AsyncSession,
    images: ImageHost,
    reviewer_id: Optional[uuid.UUID] = None,
) -> list[EntryRequestResponse]:
    """Pending requests of a hub; rows whose user vanished are skipped."""
    org = await org_service.get_org_by_hub_code(hub_code, session)
    if reviewer_id is not None:
        await org_service.require_active_admin(reviewer_id, org.id, session)

    requests = await request_store.find_by_org_and_status(
        EntryRequest, org.id, RequestStatus.PENDING, session
    )
    items = []
    for req in requests:
        user = await session.get(User, req.user_id)
        if user:
            items.append(_to_response(req, user, images))
    return items


async def list_user_requests(
    user_id: uuid.UUID, session: AsyncSession, images: ImageHost
) -> list[EntryRequestResponse]:
    user = await session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    requests = await request_store.find_by_user(EntryRequest, user_id, session)
    return [_to_response(req, user, images) for req in requests]


async def get_request_by_id(
    request_id: uuid.UUID, session: AsyncSession, images: ImageHost
) -> EntryRequestResponse:
    request = await _get_request_or_404(request_id, session)
    user = await session.get(User, request.user_id)
    if not user:
        raise NotFound("Entry request not found")
    return _to_response(request, user, images)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def approve_request(
    request_id: uuid.UUID,
    session: AsyncSession,
    sync: DirectorySync,
    reviewer_id: Optional[uuid.UUID] = None,
) -> None:
    """Materialize the membership.

    Membership, directory registration and status change share the session
    transaction and are committed together; the sync notice goes out only
    after that commit.
    """
    request = await _get_pending_or_raise(
        request_id, session, "This request has already been processed", RequestStatus.APPROVED
    )
    if reviewer_id is not None:
        await org_service.require_active_admin(reviewer_id, request.org_id, session)

    # Conditional on PENDING: a reviewer working from a stale read loses here
    if not await request_store.update_status(
        EntryRequest, request.id, RequestStatus.APPROVED, session
    ):
        raise AlreadyProcessed("This request has already been processed")

    role = Role(request.role)
    member = await membership_store.create_membership(
        Membership(
            org_id=request.org_id,
            user_id=request.user_id,
            role=role.value,
            status=MemberStatus.ACTIVE.value,
            face_image_id=None,
        ),
        session,
    )
    await org_service.add_to_directory(request.org_id, role, request.user_id, session)
    await session.commit()

    log.info(
        "entry_request.approved",
        request_id=str(request.id),
        member_id=str(member.id),
        org_id=str(request.org_id),
        role=role.value,
    )
    await sync.notify_member_synced(request.org_id, request.user_id, reason="membership.created")


async def reject_request(
    request_id: uuid.UUID,
    session: AsyncSession,
    reviewer_id: Optional[uuid.UUID] = None,
) -> None:
    request = await _get_pending_or_raise(
        request_id, session, "Request is not pending", RequestStatus.DENIED
    )
    if reviewer_id is not None:
        await org_service.require_active_admin(reviewer_id, request.org_id, session)

    if not await request_store.update_status(
        EntryRequest, request.id, RequestStatus.DENIED, session
    ):
        raise AlreadyProcessed("Request is not pending")
    log.info("entry_request.rejected", request_id=str(request.id), org_id=str(request.org_id))


async def update_request(
    request_id: uuid.UUID,
    role: Optional[Role],
    session: AsyncSession,
    images: ImageHost,
    actor_id: Optional[uuid.UUID] = None,
) -> EntryRequestResponse:
    """Edit the requested role; only PENDING requests are editable."""
    request = await _get_pending_or_raise(
        request_id, session, "Only pending requests can be edited"
    )
    await _ensure_owner_or_admin(request, actor_id, session)

    if role is not None:
        request.role = role.value
    request = await request_store.save_request(request, session)

    user = await session.get(User, request.user_id)
    if not user:
        raise NotFound("User not found")
    log.info("entry_request.updated", request_id=str(request.id), role=request.role)
    return _to_response(request, user, images)


async def delete_request(
    request_id: uuid.UUID,
    session: AsyncSession,
    actor_id: Optional[uuid.UUID] = None,
) -> None:
    """Delete a request in any state."""
    request = await _get_request_or_404(request_id, session)
    await _ensure_owner_or_admin(request, actor_id, session)
    await request_store.delete_request(EntryRequest, request_id, session)
    log.info("entry_request.deleted", request_id=str(request_id), status=request.status)
