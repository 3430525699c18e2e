from entitlement_service.db.repo.promo_repo import PromoRepo
from entitlement_service.db.repo.subscription_history_repo import SubscriptionHistoryRepo
from entitlement_service.db.repo.subscription_status_repo import SubscriptionStatusRepo

__all__ = [
    "PromoRepo",
    "SubscriptionHistoryRepo",
    "SubscriptionStatusRepo",
]
