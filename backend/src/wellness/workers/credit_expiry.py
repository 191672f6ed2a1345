"""Credit expiry worker.

Runs once a day to mark credits whose expiration has passed as expired and
record an ``expired`` ledger entry for each. Running it twice is harmless:
credits already marked are skipped.
"""
from typing import Optional

import structlog

from wellness.config import settings
from wellness.database import AsyncSessionLocal
from wellness.services.credit_service import CreditService

logger = structlog.get_logger(__name__)


async def expire_credits(ctx: Optional[dict] = None) -> dict[str, int]:
    """
    Expire every unused credit whose expires_at has passed.

    Args:
        ctx: ARQ context (unused)

    Returns:
        Dict with the number of credits expired
    """
    async with AsyncSessionLocal() as db:
        try:
            expired_count = await CreditService(db).expire_old_credits()
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error("credit_expiry_failed", error=str(e))
            raise

    logger.info("credit_expiry_completed", expired_count=expired_count)
    return {"expired_count": expired_count}


# ARQ Worker Configuration
# This configuration would be used by ARQ to schedule the worker

class WorkerSettings:
    """
    ARQ worker settings for the credit expiry sweep.

    Schedule:
    - Expiry sweep: Daily at ``settings.expiry_sweep_hour`` UTC

    Usage:
        arq wellness.workers.credit_expiry.WorkerSettings
    """

    functions = [
        expire_credits,
    ]

    cron_jobs = [
        {
            "function": expire_credits,
            "cron": f"0 {settings.expiry_sweep_hour} * * *",
            "timeout": 600,  # 10 minutes timeout
        },
    ]
