from celery import Celery

from entitlement_service.core.config import get_settings

SUBSCRIPTIONS_QUEUE = "q_subscriptions"

settings = get_settings()

celery_app = Celery(
    "entitlement_service",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "entitlement_service.workers.tasks.subscription_expiry",
    ],
)

celery_app.conf.update(
    task_default_queue=SUBSCRIPTIONS_QUEUE,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    result_expires=settings.subscription_expiry_sweep_interval_seconds * 6,
    timezone="UTC",
    enable_utc=True,
)
