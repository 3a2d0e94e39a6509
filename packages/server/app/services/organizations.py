"""
Organization service: hub lookup and the role-specific directory lists.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import Conflict, Forbidden, OrgNotFound
from app.models.membership import Membership
from app.models.organization import Organization
from app.stores import memberships as membership_store
from campusface_shared.schemas.common import MemberStatus, Role

log = structlog.get_logger()

# Each role is registered in exactly one directory list
ROLE_DIRECTORY_FIELDS: dict[Role, str] = {
    Role.MEMBER: "member_ids",
    Role.VALIDATOR: "validator_ids",
    Role.ADMIN: "admin_ids",
}


async def get_org(org_id: uuid.UUID, session: AsyncSession) -> Organization:
    """Get an org by id; raises 404 if not found."""
    org = await session.get(Organization, org_id)
    if not org:
        raise OrgNotFound()
    return org


async def get_org_by_hub_code(hub_code: str, session: AsyncSession) -> Organization:
    """Get an org by its shareable hub code; raises 404 if not found."""
    result = await session.execute(
        select(Organization).where(Organization.hub_code == hub_code)
    )
    org = result.scalar_one_or_none()
    if not org:
        raise OrgNotFound(f"No organization found with hub code {hub_code}")
    return org


async def _lock_org(org_id: uuid.UUID, session: AsyncSession) -> Organization:
    """Fresh copy of the org row, locked until the transaction ends."""
    result = await session.execute(
        select(Organization)
        .where(Organization.id == org_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    org = result.scalar_one_or_none()
    if not org:
        raise OrgNotFound()
    return org


async def add_to_directory(
    org_id: uuid.UUID, role: Role, user_id: uuid.UUID, session: AsyncSession
) -> Organization:
    """Register a user in the directory list for ``role``. Idempotent."""
    org = await _lock_org(org_id, session)
    field = ROLE_DIRECTORY_FIELDS[role]
    current = list(getattr(org, field) or [])
    if str(user_id) not in current:
        # Reassign (not append) so the JSON column is marked dirty
        setattr(org, field, [*current, str(user_id)])
        session.add(org)
        await session.flush()
        log.info("org.directory_added", org_id=str(org_id), user_id=str(user_id), role=role.value)
    return org


async def remove_from_directory(
    org_id: uuid.UUID, role: Role, user_id: uuid.UUID, session: AsyncSession
) -> Organization:
    org = await _lock_org(org_id, session)
    field = ROLE_DIRECTORY_FIELDS[role]
    current = list(getattr(org, field) or [])
    if str(user_id) in current:
        setattr(org, field, [uid for uid in current if uid != str(user_id)])
        session.add(org)
        await session.flush()
        log.info("org.directory_removed", org_id=str(org_id), user_id=str(user_id), role=role.value)
    return org


async def create_org(
    name: str,
    hub_code: str,
    creator_id: uuid.UUID,
    session: AsyncSession,
    description: str = "",
) -> Organization:
    """Create an org and make the creator an active administrator."""
    existing = await session.execute(
        select(Organization).where(Organization.hub_code == hub_code)
    )
    if existing.scalar_one_or_none():
        raise Conflict(f"Hub code {hub_code} is already taken")

    org = Organization(name=name, hub_code=hub_code, description=description)
    session.add(org)
    await session.flush()

    await membership_store.create_membership(
        Membership(
            org_id=org.id,
            user_id=creator_id,
            role=Role.ADMIN.value,
            status=MemberStatus.ACTIVE.value,
        ),
        session,
    )
    await add_to_directory(org.id, Role.ADMIN, creator_id, session)

    log.info("org.created", org_id=str(org.id), hub_code=hub_code, creator=str(creator_id))
    return org


async def require_active_admin(
    user_id: uuid.UUID, org_id: uuid.UUID, session: AsyncSession, detail: str | None = None
) -> Membership:
    """Return the caller's membership if it is an ACTIVE ADMIN, else raise 403."""
    member = await membership_store.find_membership(user_id, org_id, session)
    if (
        member is None
        or member.role != Role.ADMIN.value
        or member.status != MemberStatus.ACTIVE.value
    ):
        raise Forbidden(detail or "Only ADMINs of this organization can do this")
    return member
