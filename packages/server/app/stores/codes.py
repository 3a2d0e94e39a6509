"""
Code store: persistence for authorization codes.

Invalidation is always a conditional UPDATE on ``valid = true`` so the
caller learns whether *its* call consumed the code.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.access_code import AuthCode


async def create_code(code: AuthCode, session: AsyncSession) -> AuthCode:
    session.add(code)
    await session.flush()
    return code


async def get_code(code_id: uuid.UUID, session: AsyncSession) -> Optional[AuthCode]:
    return await session.get(AuthCode, code_id)


async def find_valid_by_code(code: str, session: AsyncSession) -> Optional[AuthCode]:
    """Newest still-valid code with this value, if any."""
    result = await session.execute(
        select(AuthCode)
        .where(AuthCode.code == code, AuthCode.valid == True)  # noqa: E712
        .order_by(AuthCode.created_at.desc())
        .limit(1)
    )
    return result.scalars().first()


async def list_codes(
    session: AsyncSession, org_ids: Optional[Sequence[uuid.UUID]] = None
) -> Sequence[AuthCode]:
    stmt = select(AuthCode).order_by(AuthCode.created_at.desc())
    if org_ids is not None:
        stmt = stmt.where(AuthCode.org_id.in_(org_ids))
    result = await session.execute(stmt)
    return result.scalars().all()


async def save_code(code: AuthCode, session: AsyncSession) -> AuthCode:
    session.add(code)
    await session.flush()
    return code


async def invalidate_code(code_id: uuid.UUID, session: AsyncSession) -> bool:
    """Flip ``valid`` to false. Returns True only for the call that flipped it."""
    result = await session.execute(
        sa.update(AuthCode)
        .where(AuthCode.id == code_id, AuthCode.valid == True)  # noqa: E712
        .values(valid=False)
        .execution_options(synchronize_session="evaluate")
    )
    return result.rowcount == 1


async def invalidate_previous_codes(
    user_id: uuid.UUID,
    org_id: uuid.UUID,
    session: AsyncSession,
    *,
    keep_id: uuid.UUID | None = None,
) -> int:
    """Invalidate every valid code of (user, org), optionally sparing ``keep_id``."""
    stmt = sa.update(AuthCode).where(
        AuthCode.user_id == user_id,
        AuthCode.org_id == org_id,
        AuthCode.valid == True,  # noqa: E712
    )
    if keep_id is not None:
        stmt = stmt.where(AuthCode.id != keep_id)
    result = await session.execute(
        stmt.values(valid=False).execution_options(synchronize_session="evaluate")
    )
    return result.rowcount


async def delete_code(code_id: uuid.UUID, session: AsyncSession) -> None:
    code = await session.get(AuthCode, code_id)
    if code is not None:
        await session.delete(code)
        await session.flush()


async def find_expired_valid_codes(
    now: datetime, session: AsyncSession, limit: int = 500
) -> Sequence[AuthCode]:
    result = await session.execute(
        select(AuthCode)
        .where(AuthCode.valid == True, AuthCode.expiration_time < now)  # noqa: E712
        .order_by(AuthCode.expiration_time)
        .limit(limit)
    )
    return result.scalars().all()
