"""
ARQ background task: invalidate authorization codes past their expiry.

Validation already expires codes lazily; the sweep keeps the table honest
for codes nobody tries to use. Scheduled to run every minute.
"""

from __future__ import annotations

import structlog

from app.core.database import get_session_context
from app.models.base import utcnow
from app.stores import codes as code_store
from app.tasks.directory_sync import deliver_sync_notifications

log = structlog.get_logger()


async def expire_stale_codes(ctx: dict) -> int:
    """Invalidate valid codes whose expiration_time has passed.

    Returns the number of codes invalidated by this run.
    """
    now = utcnow()
    count = 0

    async with get_session_context() as session:
        codes = await code_store.find_expired_valid_codes(now, session)
        for code in codes:
            # Conditional: a code consumed meanwhile is not counted
            if await code_store.invalidate_code(code.id, session):
                count += 1

    if count:
        log.info("code_expiry.batch_expired", count=count)
    return count


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [expire_stale_codes, deliver_sync_notifications]
    cron_jobs = [
        # Every minute
        {
            "coroutine": expire_stale_codes,
            "minute": None,
            "second": 0,
        },
        {
            "coroutine": deliver_sync_notifications,
            "minute": None,
            "second": 30,
        },
    ]
