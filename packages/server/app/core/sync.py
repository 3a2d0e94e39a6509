"""
Directory sync outbox.

Membership changes are announced to the external directory through a
Redis list (the outbox) plus a pub/sub channel for live listeners. The
request path only enqueues; ``app.tasks.directory_sync`` delivers.
Enqueue failures are logged and never undo the membership change.
"""

from __future__ import annotations

import json
import uuid
from typing import Any

import redis.asyncio as redis
import structlog

from app.core.config import Settings, get_settings
from app.models.base import utcnow

log = structlog.get_logger()

OUTBOX_RETENTION_SECONDS = 7 * 86400

_redis_pool: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Get or create the Redis connection."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None


def build_message(
    org_id: uuid.UUID, user_id: uuid.UUID, reason: str
) -> dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "type": "member.sync",
        "reason": reason,
        "org_id": str(org_id),
        "user_id": str(user_id),
        "enqueued_at": utcnow().isoformat(),
    }


class DirectorySync:
    """Fire-and-forget notifier for membership changes."""

    def __init__(self, client: redis.Redis | None = None, settings: Settings | None = None):
        self._client = client
        self._settings = settings or get_settings()

    async def _redis(self) -> redis.Redis:
        return self._client if self._client is not None else await get_redis()

    async def notify_member_synced(
        self,
        org_id: uuid.UUID,
        user_id: uuid.UUID,
        reason: str = "membership.changed",
    ) -> bool:
        """Enqueue a sync message. Returns False when the outbox is unreachable."""
        message = build_message(org_id, user_id, reason)
        payload = json.dumps(message)
        try:
            client = await self._redis()
            async with client.pipeline() as pipe:
                pipe.lpush(self._settings.sync_queue_key, payload)
                pipe.expire(self._settings.sync_queue_key, OUTBOX_RETENTION_SECONDS)
                pipe.publish(self._settings.sync_channel, payload)
                await pipe.execute()
        except (redis.RedisError, OSError) as exc:
            log.warning(
                "sync.enqueue_failed",
                org_id=str(org_id),
                user_id=str(user_id),
                reason=reason,
                error=str(exc),
            )
            return False

        log.info("sync.enqueued", org_id=str(org_id), user_id=str(user_id), reason=reason)
        return True


def get_directory_sync() -> DirectorySync:
    """FastAPI dependency."""
    return DirectorySync()
