from entitlement_service.workers.tasks.subscription_expiry import run_subscription_expiry_sweep

__all__ = [
    "run_subscription_expiry_sweep",
]
