"""
arq worker for the billing calendar and reassignment timeouts

Run with: arq nannygold.worker.WorkerSettings
"""

import logging
from typing import Any

from arq.connections import RedisSettings
from arq.cron import cron

from nannygold.config import settings
from nannygold.db import models  # noqa: F401
from nannygold.db.database import AsyncSessionLocal
from nannygold.services.billing import BillingSweepService
from nannygold.services.reassignment import ReassignmentService
from nannygold.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def get_redis_settings() -> RedisSettings:
    """Redis settings for the arq worker"""
    if settings.redis_url:
        return RedisSettings.from_dsn(str(settings.redis_url))
    return RedisSettings()


async def authorize_upcoming_period_task(ctx: dict[str, Any]) -> dict[str, Any]:
    """Monthly on the 25th: hold next month's amount on every long-term booking"""
    logger.info(f"Authorization sweep started (job {ctx.get('job_id', 'cron')})")
    async with AsyncSessionLocal() as db:
        return await BillingSweepService(db).authorize_upcoming_period()


async def capture_due_authorizations_task(ctx: dict[str, Any]) -> dict[str, Any]:
    """Daily: capture holds once they pass the minimum hold period"""
    logger.info(f"Capture sweep started (job {ctx.get('job_id', 'cron')})")
    async with AsyncSessionLocal() as db:
        return await BillingSweepService(db).capture_due_authorizations()


async def retry_failed_authorizations_task(ctx: dict[str, Any]) -> dict[str, Any]:
    async with AsyncSessionLocal() as db:
        return await BillingSweepService(db).retry_failed_authorizations()


async def expire_stale_reassignments_task(ctx: dict[str, Any]) -> dict[str, int]:
    async with AsyncSessionLocal() as db:
        return await ReassignmentService(db).expire_stale_reassignments()


async def startup(ctx: dict[str, Any]) -> None:
    setup_logging()
    if not settings.is_payments_configured():
        logger.warning("Paystack not configured; billing sweeps will record gateway errors")


class WorkerSettings:
    """arq worker settings"""

    functions = [
        authorize_upcoming_period_task,
        capture_due_authorizations_task,
        retry_failed_authorizations_task,
        expire_stale_reassignments_task,
    ]
    redis_settings = get_redis_settings()
    on_startup = startup

    job_timeout = 1800
    keep_result = 3600
    max_tries = 1

    cron_jobs = [
        cron(
            authorize_upcoming_period_task,
            day=settings.authorization_day_of_month, hour=2, minute=0,
        ),
        cron(capture_due_authorizations_task, hour=3, minute=0),
        cron(retry_failed_authorizations_task, hour=4, minute=0),
        cron(expire_stale_reassignments_task, minute=15),
    ]
