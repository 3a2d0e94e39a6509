"""
Tests for face change requests: upload-once creation, review outcomes,
best-effort image cleanup and the read projections.
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, patch

import pytest

from app.core.errors import (
    AlreadyProcessed,
    DuplicatePending,
    Forbidden,
    InactiveMember,
    InvalidImage,
    NotFound,
    NotMember,
    UpstreamFailure,
)
from app.models.membership import Membership
from app.models.requests import ChangeRequest
from app.services import change_requests as change_service
from campusface_shared.schemas.common import RequestStatus

RAW = b"raw-upload-bytes"


async def _create(session, campus, images, preprocessor):
    return await change_service.create_request(
        campus.member.id, campus.org.id, RAW, session, images, preprocessor
    )


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

class TestCreateChangeRequest:
    @pytest.mark.asyncio
    async def test_create_uploads_once(self, session, campus, images, preprocessor):
        resp = await _create(session, campus, images, preprocessor)

        preprocessor.process.assert_awaited_once_with(RAW)
        images.upload.assert_awaited_once_with(b"normalized-jpeg")
        assert resp.new_face_image_id == "faces/new-photo"
        assert resp.status == RequestStatus.PENDING
        assert resp.organization_id == campus.org.id

    @pytest.mark.asyncio
    async def test_requires_membership(self, session, campus, images, preprocessor):
        with pytest.raises(NotMember):
            await change_service.create_request(
                campus.outsider.id, campus.org.id, RAW, session, images, preprocessor
            )
        images.upload.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_requires_active_membership(self, session, campus, images, preprocessor):
        with pytest.raises(InactiveMember):
            await change_service.create_request(
                campus.inactive.id, campus.org.id, RAW, session, images, preprocessor
            )

    @pytest.mark.asyncio
    async def test_duplicate_pending_does_not_upload(self, session, campus, images, preprocessor):
        await _create(session, campus, images, preprocessor)
        with pytest.raises(DuplicatePending):
            await _create(session, campus, images, preprocessor)
        assert images.upload.await_count == 1

    @pytest.mark.asyncio
    async def test_invalid_image(self, session, campus, images, preprocessor):
        preprocessor.process.side_effect = InvalidImage("Unsupported or corrupt image")
        with pytest.raises(InvalidImage) as exc:
            await _create(session, campus, images, preprocessor)
        assert exc.value.status_code == 422
        images.upload.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upload_failure(self, session, campus, images, preprocessor):
        images.upload.side_effect = UpstreamFailure()
        with pytest.raises(UpstreamFailure) as exc:
            await _create(session, campus, images, preprocessor)
        assert exc.value.status_code == 502
        assert await change_service.list_user_requests(campus.member.id, session, images) == []

    @pytest.mark.asyncio
    async def test_race_lost_discards_uploaded_image(self, session, campus, images, preprocessor):
        with patch(
            "app.services.change_requests.request_store.insert_pending",
            AsyncMock(side_effect=DuplicatePending()),
        ):
            with pytest.raises(DuplicatePending):
                await _create(session, campus, images, preprocessor)

        images.delete.assert_awaited_once_with("faces/new-photo")


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------

class TestReviewChangeRequest:
    @pytest.mark.asyncio
    async def test_approve_sets_membership_photo(
        self, session, campus, images, preprocessor, sync
    ):
        req = await _create(session, campus, images, preprocessor)

        result = await change_service.review_request(
            req.id, campus.admin.id, True, session, images, sync
        )

        assert result.status == RequestStatus.APPROVED
        member = await session.get(Membership, campus.memberships["member"].id)
        assert member.face_image_id == "faces/new-photo"
        images.delete.assert_not_awaited()
        sync.notify_member_synced.assert_awaited_once_with(
            campus.org.id, campus.member.id, reason="face_image.changed"
        )

    @pytest.mark.asyncio
    async def test_reject_deletes_proposed_photo(
        self, session, campus, images, preprocessor, sync
    ):
        req = await _create(session, campus, images, preprocessor)

        result = await change_service.review_request(
            req.id, campus.admin.id, False, session, images, sync
        )

        assert result.status == RequestStatus.DENIED
        images.delete.assert_awaited_once_with("faces/new-photo")
        member = await session.get(Membership, campus.memberships["member"].id)
        assert member.face_image_id is None
        sync.notify_member_synced.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reject_survives_delete_failure(
        self, session, campus, images, preprocessor, sync
    ):
        req = await _create(session, campus, images, preprocessor)
        images.delete.side_effect = UpstreamFailure()

        result = await change_service.review_request(
            req.id, campus.admin.id, False, session, images, sync
        )

        assert result.status == RequestStatus.DENIED

    @pytest.mark.asyncio
    async def test_only_active_admins_review(self, session, campus, images, preprocessor, sync):
        req = await _create(session, campus, images, preprocessor)

        for reviewer in (campus.validator, campus.member, campus.outsider):
            with pytest.raises(Forbidden):
                await change_service.review_request(
                    req.id, reviewer.id, True, session, images, sync
                )

    @pytest.mark.asyncio
    async def test_review_twice_fails(self, session, campus, images, preprocessor, sync):
        req = await _create(session, campus, images, preprocessor)
        await change_service.review_request(req.id, campus.admin.id, True, session, images, sync)

        with pytest.raises(AlreadyProcessed):
            await change_service.review_request(
                req.id, campus.admin.id, False, session, images, sync
            )

    @pytest.mark.asyncio
    async def test_stale_reject_keeps_approved_photo(
        self, session, session_factory, campus, images, preprocessor, sync
    ):
        req = await _create(session, campus, images, preprocessor)
        await session.commit()

        async with session_factory() as stale:
            assert (await stale.get(ChangeRequest, req.id)).status == RequestStatus.PENDING.value

            await change_service.review_request(
                req.id, campus.admin.id, True, session, images, sync
            )

            with pytest.raises(AlreadyProcessed):
                await change_service.review_request(
                    req.id, campus.admin.id, False, stale, images, sync
                )

        images.delete.assert_not_awaited()
        async with session_factory() as fresh:
            stored = await fresh.get(ChangeRequest, req.id)
            assert stored.status == RequestStatus.APPROVED.value
            member = await fresh.get(Membership, campus.memberships["member"].id)
            assert member.face_image_id == "faces/new-photo"

    @pytest.mark.asyncio
    async def test_stale_approve_after_reject_is_refused(
        self, session, session_factory, campus, images, preprocessor, sync
    ):
        req = await _create(session, campus, images, preprocessor)
        await session.commit()

        async with session_factory() as stale:
            await stale.get(ChangeRequest, req.id)
            await change_service.review_request(
                req.id, campus.admin.id, False, session, images, sync
            )

            with pytest.raises(AlreadyProcessed):
                await change_service.review_request(
                    req.id, campus.admin.id, True, stale, images, sync
                )

        sync.notify_member_synced.assert_not_awaited()
        async with session_factory() as fresh:
            member = await fresh.get(Membership, campus.memberships["member"].id)
            assert member.face_image_id is None
            stored = await fresh.get(ChangeRequest, req.id)
            assert stored.status == RequestStatus.DENIED.value

    @pytest.mark.asyncio
    async def test_approve_when_member_left(self, session, campus, images, preprocessor, sync):
        req = await _create(session, campus, images, preprocessor)
        member = await session.get(Membership, campus.memberships["member"].id)
        await session.delete(member)
        await session.flush()

        with pytest.raises(NotFound):
            await change_service.review_request(
                req.id, campus.admin.id, True, session, images, sync
            )

    @pytest.mark.asyncio
    async def test_review_missing_request(self, session, campus, images, sync):
        with pytest.raises(NotFound):
            await change_service.review_request(
                uuid.uuid4(), campus.admin.id, True, session, images, sync
            )


# ---------------------------------------------------------------------------
# Edit / delete
# ---------------------------------------------------------------------------

class TestEditChangeRequest:
    @pytest.mark.asyncio
    async def test_update_replaces_photo(self, session, campus, images, preprocessor):
        req = await _create(session, campus, images, preprocessor)
        images.upload.return_value = {"public_id": "faces/second-photo", "version": 2}

        updated = await change_service.update_request(
            req.id, b"another", session, images, preprocessor, actor_id=campus.member.id
        )

        assert updated.new_face_image_id == "faces/second-photo"
        assert updated.updated_at is not None
        images.delete.assert_awaited_once_with("faces/new-photo")

    @pytest.mark.asyncio
    async def test_update_rejects_bad_image_before_deleting(
        self, session, campus, images, preprocessor
    ):
        req = await _create(session, campus, images, preprocessor)
        preprocessor.process.side_effect = InvalidImage()

        with pytest.raises(InvalidImage):
            await change_service.update_request(req.id, b"junk", session, images, preprocessor)
        images.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_decided_request_fails(
        self, session, campus, images, preprocessor, sync
    ):
        req = await _create(session, campus, images, preprocessor)
        await change_service.review_request(req.id, campus.admin.id, True, session, images, sync)

        with pytest.raises(AlreadyProcessed):
            await change_service.update_request(req.id, b"x", session, images, preprocessor)

    @pytest.mark.asyncio
    async def test_delete_pending_discards_photo(self, session, campus, images, preprocessor):
        req = await _create(session, campus, images, preprocessor)

        await change_service.delete_request(req.id, session, images, actor_id=campus.member.id)

        assert await session.get(ChangeRequest, req.id) is None
        images.delete.assert_awaited_once_with("faces/new-photo")

    @pytest.mark.asyncio
    async def test_delete_approved_keeps_photo(self, session, campus, images, preprocessor, sync):
        req = await _create(session, campus, images, preprocessor)
        await change_service.review_request(req.id, campus.admin.id, True, session, images, sync)

        await change_service.delete_request(req.id, session, images)

        images.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_missing(self, session, campus, images):
        with pytest.raises(NotFound):
            await change_service.delete_request(uuid.uuid4(), session, images)


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------

class TestChangeRequestQueries:
    @pytest.mark.asyncio
    async def test_pending_projection(self, session, campus, images, preprocessor):
        await _create(session, campus, images, preprocessor)

        pending = await change_service.list_pending_requests(
            campus.org.id, session, images, reviewer_id=campus.admin.id
        )

        assert len(pending) == 1
        item = pending[0]
        assert item.user_full_name == "Maria Member"
        assert item.current_face_url == "https://img.test/faces/maria-account"
        assert item.new_face_url == "https://img.test/faces/new-photo"

    @pytest.mark.asyncio
    async def test_pending_drops_rows_without_member(self, session, campus, images, preprocessor):
        await _create(session, campus, images, preprocessor)
        member = await session.get(Membership, campus.memberships["member"].id)
        await session.delete(member)
        await session.flush()

        assert await change_service.list_pending_requests(campus.org.id, session, images) == []

    @pytest.mark.asyncio
    async def test_pending_requires_admin(self, session, campus, images):
        with pytest.raises(Forbidden):
            await change_service.list_pending_requests(
                campus.org.id, session, images, reviewer_id=campus.validator.id
            )

    @pytest.mark.asyncio
    async def test_my_requests(self, session, campus, images, preprocessor, sync):
        req = await _create(session, campus, images, preprocessor)
        await change_service.review_request(req.id, campus.admin.id, True, session, images, sync)

        mine = await change_service.list_user_requests(campus.member.id, session, images)

        assert [r.id for r in mine] == [req.id]
        # After approval the membership photo is the current one
        assert mine[0].current_face_url == "https://img.test/faces/new-photo"

    @pytest.mark.asyncio
    async def test_get_by_id(self, session, campus, images, preprocessor):
        req = await _create(session, campus, images, preprocessor)

        fetched = await change_service.get_request_by_id(req.id, session, images)
        assert fetched.id == req.id

        with pytest.raises(NotFound):
            await change_service.get_request_by_id(uuid.uuid4(), session, images)
