"""
Authorization code service: generation, validation and admin CRUD.

Code lifecycle (all exits are terminal):
    CREATED(valid) → CONSUMED     validated by a VALIDATOR/ADMIN
    CREATED(valid) → EXPIRED      found past expiry at validation time or by the sweeper
    CREATED(valid) → SUPERSEDED   a newer code was generated for the same member
    CREATED(valid) → INVALIDATED  manual admin action
"""

from __future__ import annotations

import secrets
import uuid
from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.errors import Forbidden, InactiveMember, NotFound, NotMember
from app.core.images import ImageHost
from app.models.access_code import AuthCode
from app.models.base import as_utc, utcnow
from app.models.user import User
from app.services import organizations as org_service
from app.services.members import member_response
from app.stores import codes as code_store
from app.stores import memberships as membership_store
from campusface_shared.schemas.access_codes import (
    AuthCodeResponse,
    AuthCodeUpdate,
    GeneratedCodeResponse,
    ValidationResult,
)
from campusface_shared.schemas.common import VALIDATING_ROLES, MemberStatus, Role

log = structlog.get_logger()

CODE_MIN = 100000
CODE_MAX = 999999
MAX_GENERATION_ATTEMPTS = 5

MSG_UNKNOWN = "Invalid, unknown or already used code."
MSG_EXPIRED = "Code expired."
MSG_OWNER_GONE = "Code owner is no longer a member of this organization."
MSG_AUTHORIZED = "Acesso Autorizado!"


def new_code_value() -> str:
    """Uniform 6-digit value in [100000, 999999]."""
    return f"{secrets.randbelow(CODE_MAX - CODE_MIN + 1) + CODE_MIN:06d}"


async def _unused_code_value(session: AsyncSession) -> str:
    value = new_code_value()
    for _ in range(MAX_GENERATION_ATTEMPTS - 1):
        if await code_store.find_valid_by_code(value, session) is None:
            break
        value = new_code_value()
    return value


def _to_response(code: AuthCode) -> AuthCodeResponse:
    return AuthCodeResponse(
        id=code.id,
        code=code.code,
        user_id=code.user_id,
        organization_id=code.org_id,
        expiration_time=as_utc(code.expiration_time),
        valid=code.valid,
    )


# ---------------------------------------------------------------------------
# Generation & validation
# ---------------------------------------------------------------------------


async def generate_code(
    user_id: uuid.UUID, org_id: uuid.UUID, session: AsyncSession
) -> GeneratedCodeResponse:
    """Issue a fresh code for an ACTIVE member, superseding any previous one."""
    member = await membership_store.find_membership(user_id, org_id, session)
    if member is None:
        raise NotMember()
    if member.status != MemberStatus.ACTIVE.value:
        raise InactiveMember(
            f"Your membership in this organization is not active (status: {member.status})"
        )

    superseded = await code_store.invalidate_previous_codes(user_id, org_id, session)

    expiration_time = utcnow() + timedelta(minutes=get_settings().code_ttl_minutes)
    code = await code_store.create_code(
        AuthCode(
            code=await _unused_code_value(session),
            user_id=user_id,
            org_id=org_id,
            expiration_time=expiration_time,
            valid=True,
        ),
        session,
    )

    log.info(
        "code.generated",
        code_id=str(code.id),
        user_id=str(user_id),
        org_id=str(org_id),
        superseded=superseded,
    )
    return GeneratedCodeResponse(code=code.code, expiration_time=expiration_time)


async def validate_code(
    code_value: str,
    validator_user_id: uuid.UUID,
    session: AsyncSession,
    images: ImageHost,
) -> ValidationResult:
    """Consume a code on behalf of its organization.

    Unknown, expired and already-consumed codes are normal outcomes and come
    back as ``valid=False``. A caller without validation rights is an error.
    """
    auth_code = await code_store.find_valid_by_code(code_value, session)
    if auth_code is None:
        return ValidationResult(valid=False, message=MSG_UNKNOWN)

    if utcnow() > as_utc(auth_code.expiration_time):
        await code_store.invalidate_code(auth_code.id, session)
        log.info("code.expired", code_id=str(auth_code.id))
        return ValidationResult(valid=False, message=MSG_EXPIRED)

    validator = await membership_store.find_membership(
        validator_user_id, auth_code.org_id, session
    )
    if (
        validator is None
        or Role(validator.role) not in VALIDATING_ROLES
        or validator.status != MemberStatus.ACTIVE.value
    ):
        log.warning(
            "code.validation_forbidden",
            validator_id=str(validator_user_id),
            org_id=str(auth_code.org_id),
        )
        raise Forbidden("You do not have VALIDATOR permission in this organization")

    # Exactly one concurrent caller wins the conditional update
    if not await code_store.invalidate_code(auth_code.id, session):
        return ValidationResult(valid=False, message=MSG_UNKNOWN)

    owner = await membership_store.find_membership(
        auth_code.user_id, auth_code.org_id, session
    )
    user = await session.get(User, auth_code.user_id) if owner else None
    if owner is None or user is None:
        log.info("code.owner_missing", code_id=str(auth_code.id))
        return ValidationResult(valid=False, message=MSG_OWNER_GONE)

    log.info(
        "code.consumed",
        code_id=str(auth_code.id),
        org_id=str(auth_code.org_id),
        validator_id=str(validator_user_id),
    )
    return ValidationResult(
        valid=True,
        message=MSG_AUTHORIZED,
        member=member_response(owner, user, images),
    )


# ---------------------------------------------------------------------------
# Admin CRUD
# ---------------------------------------------------------------------------


async def _get_code_or_404(code_id: uuid.UUID, session: AsyncSession) -> AuthCode:
    code = await code_store.get_code(code_id, session)
    if not code:
        raise NotFound("Code not found")
    return code


async def _get_administered_code(
    code_id: uuid.UUID, session: AsyncSession, admin_user_id: Optional[uuid.UUID]
) -> AuthCode:
    code = await _get_code_or_404(code_id, session)
    if admin_user_id is not None:
        await org_service.require_active_admin(
            admin_user_id,
            code.org_id,
            session,
            detail="Only ADMINs of this organization can manage its codes",
        )
    return code


async def list_codes(
    session: AsyncSession, admin_user_id: Optional[uuid.UUID] = None
) -> list[AuthCodeResponse]:
    """Stored codes; with ``admin_user_id``, only those of orgs the caller administers."""
    org_ids = None
    if admin_user_id is not None:
        org_ids = await membership_store.find_admin_org_ids(admin_user_id, session)
    return [_to_response(c) for c in await code_store.list_codes(session, org_ids)]


async def get_code(
    code_id: uuid.UUID, session: AsyncSession, admin_user_id: Optional[uuid.UUID] = None
) -> AuthCodeResponse:
    return _to_response(await _get_administered_code(code_id, session, admin_user_id))


async def update_code(
    code_id: uuid.UUID,
    req: AuthCodeUpdate,
    session: AsyncSession,
    admin_user_id: Optional[uuid.UUID] = None,
) -> AuthCodeResponse:
    """Override ``valid``/``expiration_time``.

    Re-validating a code supersedes every other valid code of the same
    member so the one-active-code rule still holds.
    """
    code = await _get_administered_code(code_id, session, admin_user_id)

    if req.valid is True:
        await code_store.invalidate_previous_codes(
            code.user_id, code.org_id, session, keep_id=code.id
        )
    if req.valid is not None:
        code.valid = req.valid
    if req.expiration_time is not None:
        code.expiration_time = as_utc(req.expiration_time)

    await code_store.save_code(code, session)
    log.info("code.updated", code_id=str(code.id), valid=code.valid)
    return _to_response(code)


async def delete_code(
    code_id: uuid.UUID, session: AsyncSession, admin_user_id: Optional[uuid.UUID] = None
) -> None:
    await _get_administered_code(code_id, session, admin_user_id)
    await code_store.delete_code(code_id, session)
    log.info("code.deleted", code_id=str(code_id))


async def invalidate_code_manual(
    code_id: uuid.UUID, session: AsyncSession, admin_user_id: Optional[uuid.UUID] = None
) -> None:
    await _get_administered_code(code_id, session, admin_user_id)
    await code_store.invalidate_code(code_id, session)
    log.info("code.invalidated", code_id=str(code_id))
