"""
Request store: entry requests and change requests share one set of
functions, parameterised by the model class.
"""

from __future__ import annotations

import uuid
from typing import Optional, Sequence, Type, TypeVar, Union

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import DuplicatePending
from app.models.base import utcnow
from app.models.requests import ChangeRequest, EntryRequest
from campusface_shared.schemas.common import RequestStatus

RequestModel = TypeVar("RequestModel", EntryRequest, ChangeRequest)
AnyRequest = Union[EntryRequest, ChangeRequest]


async def get_request(
    model: Type[RequestModel], request_id: uuid.UUID, session: AsyncSession
) -> Optional[RequestModel]:
    return await session.get(model, request_id)


async def find_by_org_and_status(
    model: Type[RequestModel],
    org_id: uuid.UUID,
    status: RequestStatus,
    session: AsyncSession,
) -> Sequence[RequestModel]:
    result = await session.execute(
        select(model)
        .where(model.org_id == org_id, model.status == status.value)
        .order_by(model.requested_at)
    )
    return result.scalars().all()


async def find_pending_for_user(
    model: Type[RequestModel],
    user_id: uuid.UUID,
    org_id: uuid.UUID,
    session: AsyncSession,
) -> Optional[RequestModel]:
    result = await session.execute(
        select(model).where(
            model.user_id == user_id,
            model.org_id == org_id,
            model.status == RequestStatus.PENDING.value,
        )
    )
    return result.scalars().first()


async def find_by_user(
    model: Type[RequestModel], user_id: uuid.UUID, session: AsyncSession
) -> Sequence[RequestModel]:
    """All requests of a user, newest first."""
    result = await session.execute(
        select(model)
        .where(model.user_id == user_id)
        .order_by(model.requested_at.desc())
    )
    return result.scalars().all()


async def insert_pending(request: AnyRequest, session: AsyncSession) -> AnyRequest:
    """Insert a PENDING request; the partial unique index decides races."""
    request.status = RequestStatus.PENDING.value
    session.add(request)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise DuplicatePending()
    return request


async def save_request(request: AnyRequest, session: AsyncSession) -> AnyRequest:
    request.updated_at = utcnow()
    session.add(request)
    await session.flush()
    return request


async def update_status(
    model: Type[RequestModel],
    request_id: uuid.UUID,
    status: RequestStatus,
    session: AsyncSession,
) -> bool:
    """Decide a PENDING request. Returns True only for the call that decided it."""
    result = await session.execute(
        sa.update(model)
        .where(model.id == request_id, model.status == RequestStatus.PENDING.value)
        .values(status=status.value, updated_at=utcnow())
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount != 1:
        # Someone else decided it first; reload what they wrote
        await session.get(model, request_id, populate_existing=True)
        return False
    return True


async def delete_request(
    model: Type[RequestModel], request_id: uuid.UUID, session: AsyncSession
) -> None:
    request = await session.get(model, request_id)
    if request is not None:
        await session.delete(request)
        await session.flush()
