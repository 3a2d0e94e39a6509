"""
Shared fixtures: in-memory SQLite schema per test, a seeded campus, fake
collaborators for the image host / preprocessor / sync outbox, and an
httpx client bound to the ASGI app.
"""

from __future__ import annotations

import os

os.environ.setdefault("CF_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CF_LOG_FORMAT", "text")

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

import app.models  # noqa: F401
from app.core import database
from app.core.database import create_schema, get_session, make_engine, make_session_factory
from app.core.images import get_image_host, get_preprocessor
from app.core.sync import get_directory_sync
from app.main import app as fastapi_app
from app.models.membership import Membership
from app.models.organization import Organization
from app.models.user import User
from campusface_shared.schemas.common import MemberStatus, Role


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    eng = make_engine("sqlite+aiosqlite://")
    await create_schema(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    factory = make_session_factory(engine)
    # Background tasks open their own sessions through get_session_context
    monkeypatch.setattr(database, "async_session_factory", factory)
    return factory


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


# ---------------------------------------------------------------------------
# Seeded campus: one hub with an admin, a validator, an active and an
# inactive member, plus an outsider with no membership.
# ---------------------------------------------------------------------------

@pytest.fixture
async def campus(session_factory):
    async with session_factory() as s:
        admin = User(full_name="Ana Admin", email="ana@campus.dev")
        validator = User(full_name="Vitor Validator", email="vitor@campus.dev")
        member = User(
            full_name="Maria Member",
            email="maria@campus.dev",
            document="123.456.789-00",
            face_image_id="faces/maria-account",
        )
        inactive = User(full_name="Ivo Inactive", email="ivo@campus.dev")
        outsider = User(full_name="Otto Outsider", email="otto@campus.dev")
        s.add_all([admin, validator, member, inactive, outsider])
        await s.flush()

        org = Organization(
            name="Main Campus",
            hub_code="CAMPUS01",
            member_ids=[str(member.id), str(inactive.id)],
            validator_ids=[str(validator.id)],
            admin_ids=[str(admin.id)],
        )
        s.add(org)
        await s.flush()

        memberships = {}
        for key, user, role, status in [
            ("admin", admin, Role.ADMIN, MemberStatus.ACTIVE),
            ("validator", validator, Role.VALIDATOR, MemberStatus.ACTIVE),
            ("member", member, Role.MEMBER, MemberStatus.ACTIVE),
            ("inactive", inactive, Role.MEMBER, MemberStatus.INACTIVE),
        ]:
            m = Membership(org_id=org.id, user_id=user.id, role=role.value, status=status.value)
            s.add(m)
            memberships[key] = m
        await s.flush()
        await s.commit()

    return SimpleNamespace(
        org=org,
        admin=admin,
        validator=validator,
        member=member,
        inactive=inactive,
        outsider=outsider,
        memberships=memberships,
    )


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------

@pytest.fixture
def images():
    host = MagicMock()
    host.upload = AsyncMock(return_value={"public_id": "faces/new-photo", "version": 1})
    host.delete = AsyncMock(return_value=None)
    host.signed_url = MagicMock(side_effect=lambda public_id: f"https://img.test/{public_id}")
    return host


@pytest.fixture
def preprocessor():
    pre = MagicMock()
    pre.process = AsyncMock(return_value=b"normalized-jpeg")
    return pre


@pytest.fixture
def sync():
    outbox = MagicMock()
    outbox.notify_member_synced = AsyncMock(return_value=True)
    return outbox


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest.fixture
def auth():
    """Headers using the development shortcut: the bare user id as token."""

    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {user.id}"}

    return _headers


@pytest.fixture
async def client(session_factory, images, preprocessor, sync):
    async def _session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    fastapi_app.dependency_overrides[get_session] = _session
    fastapi_app.dependency_overrides[get_image_host] = lambda: images
    fastapi_app.dependency_overrides[get_preprocessor] = lambda: preprocessor
    fastapi_app.dependency_overrides[get_directory_sync] = lambda: sync
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()
