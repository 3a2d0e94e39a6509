"""
Tests for the authorization code lifecycle.

Covers:
- Generation (membership checks, format, expiry, single active code)
- Validation outcomes (unknown, expired, forbidden, consumed, owner gone)
- Single-use consumption, also under concurrent validators
- Administrative CRUD, its admin scoping and the re-validation policy
- The expiry sweeper
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlmodel import select

from app.core.errors import Forbidden, InactiveMember, NotFound, NotMember
from app.models.access_code import AuthCode
from app.models.base import as_utc, utcnow
from app.models.membership import Membership
from app.services import access_codes as code_service
from app.tasks.code_expiry import expire_stale_codes
from campusface_shared.schemas.access_codes import AuthCodeUpdate
from campusface_shared.schemas.common import MemberStatus, Role


async def _valid_codes(session, user_id, org_id) -> list[AuthCode]:
    result = await session.execute(
        select(AuthCode).where(
            AuthCode.user_id == user_id,
            AuthCode.org_id == org_id,
            AuthCode.valid == True,  # noqa: E712
        )
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class TestGenerateCode:
    def test_code_value_is_six_digits(self):
        for _ in range(200):
            value = code_service.new_code_value()
            assert len(value) == 6
            assert value.isdigit()
            assert 100000 <= int(value) <= 999999

    @pytest.mark.asyncio
    async def test_generate_for_active_member(self, session, campus):
        before = utcnow()
        resp = await code_service.generate_code(campus.member.id, campus.org.id, session)

        assert len(resp.code) == 6 and resp.code.isdigit()
        ttl = resp.expiration_time - before
        assert timedelta(minutes=4, seconds=59) <= ttl <= timedelta(minutes=5, seconds=5)
        assert not hasattr(resp, "user_id")

    @pytest.mark.asyncio
    async def test_generate_supersedes_previous_code(self, session, campus):
        first = await code_service.generate_code(campus.member.id, campus.org.id, session)
        second = await code_service.generate_code(campus.member.id, campus.org.id, session)

        valid = await _valid_codes(session, campus.member.id, campus.org.id)
        assert len(valid) == 1
        assert valid[0].code == second.code

        if first.code != second.code:
            result = await code_service.validate_code(
                first.code, campus.validator.id, session, AsyncMock()
            )
            assert result.valid is False

    @pytest.mark.asyncio
    async def test_generate_requires_membership(self, session, campus):
        with pytest.raises(NotMember) as exc:
            await code_service.generate_code(campus.outsider.id, campus.org.id, session)
        assert exc.value.status_code == 400
        assert exc.value.detail == "You are not a member of this organization"

    @pytest.mark.asyncio
    async def test_generate_requires_active_membership(self, session, campus):
        with pytest.raises(InactiveMember) as exc:
            await code_service.generate_code(campus.inactive.id, campus.org.id, session)
        assert "status: INACTIVE" in exc.value.detail


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestValidateCode:
    @pytest.mark.asyncio
    async def test_unknown_code(self, session, campus, images):
        result = await code_service.validate_code("123456", campus.validator.id, session, images)
        assert result.valid is False
        assert result.message == "Invalid, unknown or already used code."

    @pytest.mark.asyncio
    async def test_concurrent_validations_consume_once(self, session_factory, campus, images):
        async with session_factory() as s:
            gen = await code_service.generate_code(campus.member.id, campus.org.id, s)
            await s.commit()

        validators = [campus.validator.id, campus.admin.id] * 4
        async with contextlib.AsyncExitStack() as stack:
            sessions = [
                await stack.enter_async_context(session_factory()) for _ in validators
            ]
            results = await asyncio.gather(
                *(
                    code_service.validate_code(gen.code, user_id, s, images)
                    for user_id, s in zip(validators, sessions)
                )
            )
            for s in sessions:
                await s.commit()

        assert sum(r.valid for r in results) == 1
        assert {r.message for r in results if not r.valid} == {
            "Invalid, unknown or already used code."
        }
        assert result.member is None

    @pytest.mark.asyncio
    async def test_successful_validation_returns_member(self, session, campus, images):
        gen = await code_service.generate_code(campus.member.id, campus.org.id, session)

        result = await code_service.validate_code(gen.code, campus.validator.id, session, images)

        assert result.valid is True
        assert result.message == "Acesso Autorizado!"
        assert result.member.user.id == campus.member.id
        assert result.member.user.full_name == "Maria Member"
        assert result.member.role == Role.MEMBER
        # No membership photo: the account photo is used
        assert result.member.user.face_image_url == "https://img.test/faces/maria-account"

    @pytest.mark.asyncio
    async def test_membership_photo_overrides_account_photo(self, session, campus, images):
        member = await session.get(Membership, campus.memberships["member"].id)
        member.face_image_id = "faces/maria-campus"
        await session.flush()
        gen = await code_service.generate_code(campus.member.id, campus.org.id, session)

        result = await code_service.validate_code(gen.code, campus.admin.id, session, images)

        assert result.member.user.face_image_url == "https://img.test/faces/maria-campus"

    @pytest.mark.asyncio
    async def test_code_is_single_use(self, session, campus, images):
        gen = await code_service.generate_code(campus.member.id, campus.org.id, session)

        first = await code_service.validate_code(gen.code, campus.validator.id, session, images)
        second = await code_service.validate_code(gen.code, campus.validator.id, session, images)

        assert first.valid is True
        assert second.valid is False
        assert second.message == "Invalid, unknown or already used code."

    @pytest.mark.asyncio
    async def test_losing_the_consume_race(self, session, campus, images):
        gen = await code_service.generate_code(campus.member.id, campus.org.id, session)

        with patch(
            "app.services.access_codes.code_store.invalidate_code",
            AsyncMock(return_value=False),
        ):
            result = await code_service.validate_code(
                gen.code, campus.validator.id, session, images
            )

        assert result.valid is False
        assert result.message == "Invalid, unknown or already used code."

    @pytest.mark.asyncio
    async def test_expired_code(self, session, campus, images):
        code = AuthCode(
            code="654321",
            user_id=campus.member.id,
            org_id=campus.org.id,
            expiration_time=utcnow() - timedelta(seconds=1),
            valid=True,
        )
        session.add(code)
        await session.flush()

        result = await code_service.validate_code("654321", campus.validator.id, session, images)
        assert result.valid is False
        assert result.message == "Code expired."

        stored = await session.get(AuthCode, code.id)
        assert stored.valid is False

        # Already invalidated: reported as unknown, not as expired again
        again = await code_service.validate_code("654321", campus.validator.id, session, images)
        assert again.message == "Invalid, unknown or already used code."

    @pytest.mark.asyncio
    async def test_plain_member_cannot_validate(self, session, campus, images):
        gen = await code_service.generate_code(campus.member.id, campus.org.id, session)

        with pytest.raises(Forbidden) as exc:
            await code_service.validate_code(gen.code, campus.member.id, session, images)
        assert exc.value.status_code == 403

        # The code survives a forbidden attempt
        valid = await _valid_codes(session, campus.member.id, campus.org.id)
        assert [c.code for c in valid] == [gen.code]

    @pytest.mark.asyncio
    async def test_outsider_cannot_validate(self, session, campus, images):
        gen = await code_service.generate_code(campus.member.id, campus.org.id, session)
        with pytest.raises(Forbidden):
            await code_service.validate_code(gen.code, campus.outsider.id, session, images)

    @pytest.mark.asyncio
    async def test_inactive_validator_cannot_validate(self, session, campus, images):
        validator = await session.get(Membership, campus.memberships["validator"].id)
        validator.status = MemberStatus.INACTIVE.value
        await session.flush()
        gen = await code_service.generate_code(campus.member.id, campus.org.id, session)

        with pytest.raises(Forbidden):
            await code_service.validate_code(gen.code, campus.validator.id, session, images)

    @pytest.mark.asyncio
    async def test_owner_no_longer_member(self, session, campus, images):
        gen = await code_service.generate_code(campus.member.id, campus.org.id, session)
        owner = await session.get(Membership, campus.memberships["member"].id)
        await session.delete(owner)
        await session.flush()

        result = await code_service.validate_code(gen.code, campus.validator.id, session, images)

        assert result.valid is False
        assert result.message == "Code owner is no longer a member of this organization."
        assert await _valid_codes(session, campus.member.id, campus.org.id) == []


# ---------------------------------------------------------------------------
# Administrative CRUD
# ---------------------------------------------------------------------------

class TestCodeAdministration:
    @pytest.mark.asyncio
    async def test_list_and_get(self, session, campus):
        await code_service.generate_code(campus.member.id, campus.org.id, session)
        codes = await code_service.list_codes(session)
        assert len(codes) == 1

        fetched = await code_service.get_code(codes[0].id, session)
        assert fetched.user_id == campus.member.id
        assert fetched.organization_id == campus.org.id
        assert fetched.valid is True

    @pytest.mark.asyncio
    async def test_missing_code_raises_not_found(self, session, campus):
        missing = uuid.uuid4()
        for op in (code_service.get_code, code_service.delete_code, code_service.invalidate_code_manual):
            with pytest.raises(NotFound) as exc:
                await op(missing, session)
            assert exc.value.detail == "Code not found"
        with pytest.raises(NotFound):
            await code_service.update_code(missing, AuthCodeUpdate(valid=False), session)

    @pytest.mark.asyncio
    async def test_manual_invalidate(self, session, campus, images):
        gen = await code_service.generate_code(campus.member.id, campus.org.id, session)
        code_id = (await code_service.list_codes(session))[0].id

        await code_service.invalidate_code_manual(code_id, session)

        result = await code_service.validate_code(gen.code, campus.validator.id, session, images)
        assert result.valid is False

    @pytest.mark.asyncio
    async def test_delete(self, session, campus):
        await code_service.generate_code(campus.member.id, campus.org.id, session)
        code_id = (await code_service.list_codes(session))[0].id

        await code_service.delete_code(code_id, session)

        assert await code_service.list_codes(session) == []

    @pytest.mark.asyncio
    async def test_revalidating_keeps_one_active_code(self, session, campus):
        await code_service.generate_code(campus.member.id, campus.org.id, session)
        old_id = next(
            c.id for c in await code_service.list_codes(session) if c.valid
        )
        await code_service.generate_code(campus.member.id, campus.org.id, session)

        updated = await code_service.update_code(old_id, AuthCodeUpdate(valid=True), session)

        assert updated.valid is True
        valid = await _valid_codes(session, campus.member.id, campus.org.id)
        assert [c.id for c in valid] == [old_id]

    @pytest.mark.asyncio
    async def test_update_expiration(self, session, campus):
        await code_service.generate_code(campus.member.id, campus.org.id, session)
        code_id = (await code_service.list_codes(session))[0].id
        new_exp = utcnow() + timedelta(hours=1)

        updated = await code_service.update_code(
            code_id, AuthCodeUpdate(expiration_time=new_exp), session
        )

        assert abs(updated.expiration_time - new_exp) < timedelta(seconds=1)
        assert updated.valid is True

    @pytest.mark.asyncio
    async def test_listing_is_scoped_to_administered_orgs(self, session, campus):
        await code_service.generate_code(campus.member.id, campus.org.id, session)

        assert len(await code_service.list_codes(session, admin_user_id=campus.admin.id)) == 1
        assert await code_service.list_codes(session, admin_user_id=campus.outsider.id) == []
        assert await code_service.list_codes(session, admin_user_id=campus.validator.id) == []

    @pytest.mark.asyncio
    async def test_non_admins_cannot_manage_codes(self, session, campus):
        await code_service.generate_code(campus.member.id, campus.org.id, session)
        code_id = (await code_service.list_codes(session))[0].id

        for user in (campus.outsider, campus.validator, campus.member):
            for op in (
                code_service.get_code,
                code_service.delete_code,
                code_service.invalidate_code_manual,
            ):
                with pytest.raises(Forbidden):
                    await op(code_id, session, admin_user_id=user.id)
            with pytest.raises(Forbidden):
                await code_service.update_code(
                    code_id, AuthCodeUpdate(valid=False), session, admin_user_id=user.id
                )

        stored = await code_service.get_code(code_id, session, admin_user_id=campus.admin.id)
        assert stored.valid is True


# ---------------------------------------------------------------------------
# Sweeper
# ---------------------------------------------------------------------------

class TestExpirySweeper:
    @pytest.mark.asyncio
    async def test_only_expired_valid_codes_are_invalidated(self, session, campus):
        now = utcnow()
        expired = AuthCode(
            code="111111", user_id=campus.member.id, org_id=campus.org.id,
            expiration_time=now - timedelta(minutes=1), valid=True,
        )
        fresh = AuthCode(
            code="222222", user_id=campus.validator.id, org_id=campus.org.id,
            expiration_time=now + timedelta(minutes=5), valid=True,
        )
        used = AuthCode(
            code="333333", user_id=campus.admin.id, org_id=campus.org.id,
            expiration_time=now - timedelta(minutes=1), valid=False,
        )
        session.add_all([expired, fresh, used])
        await session.commit()

        count = await expire_stale_codes({})

        assert count == 1
        for code in (expired, fresh, used):
            await session.refresh(code)
        assert expired.valid is False
        assert fresh.valid is True
        assert used.valid is False
        assert as_utc(fresh.expiration_time) > now
