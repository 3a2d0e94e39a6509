"""
Background task: deliver queued directory-sync messages.

Messages are pushed on the left of the outbox list by the request path and
popped from the right here, so delivery is FIFO. A message that cannot be
delivered is pushed back on the right and the batch stops, keeping order.
"""

from __future__ import annotations

import json

import httpx
import redis.asyncio as redis
import structlog

from app.core.config import get_settings
from app.core.sync import get_redis

log = structlog.get_logger()

BATCH_SIZE = 100


async def deliver_sync_notifications(ctx: dict) -> int:
    """Drain up to BATCH_SIZE messages from the outbox.

    ``ctx`` may carry ``redis`` and ``http`` clients; otherwise the shared
    pool and a short-lived httpx client are used. Returns the number of
    messages delivered.
    """
    settings = get_settings()
    if not settings.directory_sync_url:
        log.debug("directory_sync.disabled")
        return 0

    client: redis.Redis = ctx.get("redis") or await get_redis()
    http: httpx.AsyncClient | None = ctx.get("http")
    owns_http = http is None
    if owns_http:
        http = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.directory_sync_timeout_seconds)
        )

    delivered = 0
    try:
        for _ in range(BATCH_SIZE):
            raw = await client.rpop(settings.sync_queue_key)
            if raw is None:
                break
            try:
                message = json.loads(raw)
            except (TypeError, ValueError):
                log.error("directory_sync.bad_message", raw=str(raw)[:200])
                continue

            try:
                resp = await http.post(settings.directory_sync_url, json=message)
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                await client.rpush(settings.sync_queue_key, raw)
                log.warning(
                    "directory_sync.delivery_failed",
                    message_id=message.get("id"),
                    error=str(exc),
                )
                break
            delivered += 1
    finally:
        if owns_http:
            await http.aclose()

    if delivered:
        log.info("directory_sync.batch_delivered", count=delivered)
    return delivered
