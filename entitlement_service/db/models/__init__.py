from entitlement_service.db.models.promo_codes import PromoCode
from entitlement_service.db.models.promo_redemptions import PromoRedemption
from entitlement_service.db.models.subscription_history import SubscriptionHistory
from entitlement_service.db.models.subscription_status import UserSubscriptionStatus

__all__ = [
    "PromoCode",
    "PromoRedemption",
    "SubscriptionHistory",
    "UserSubscriptionStatus",
]
