from __future__ import annotations

from datetime import datetime, timezone

import structlog

from entitlement_service.core.config import get_settings
from entitlement_service.db.session import SessionLocal
from entitlement_service.subscriptions.expiry import DEFAULT_SWEEP_TIERS, ExpiryService
from entitlement_service.workers.asyncio_runner import run_async_job
from entitlement_service.workers.celery_app import SUBSCRIPTIONS_QUEUE, celery_app

logger = structlog.get_logger(__name__)
SWEEP_TASK_NAME = "entitlement_service.workers.tasks.subscription_expiry.run_subscription_expiry_sweep"
SWEEP_SCHEDULE_NAME = "subscription-expiry-sweep"


async def run_subscription_expiry_sweep_async() -> dict[str, object]:
    now_utc = datetime.now(timezone.utc)
    result = await ExpiryService.expire_due_batch(
        SessionLocal,
        now_utc=now_utc,
        tiers=DEFAULT_SWEEP_TIERS,
    )

    summary: dict[str, object] = {
        "demoted_total": result.demoted_total,
        "demoted_by_tier": result.demoted_by_tier,
        "errors_by_tier": result.errors_by_tier,
    }
    if result.errors_by_tier:
        logger.warning("subscription_expiry_sweep_partial_failure", **summary)
    return summary


@celery_app.task(name=SWEEP_TASK_NAME)
def run_subscription_expiry_sweep() -> dict[str, object]:
    return run_async_job(run_subscription_expiry_sweep_async(), job_name="subscription_expiry_sweep")


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        SWEEP_SCHEDULE_NAME: {
            "task": SWEEP_TASK_NAME,
            "schedule": get_settings().subscription_expiry_sweep_interval_seconds,
            "options": {"queue": SUBSCRIPTIONS_QUEUE},
        },
    }
)
