from __future__ import annotations

from entitlement_service.subscriptions.types import PROMO_GRANT_TIER

PRODUCT_SUBSCRIPTION_TYPES: dict[str, str] = {
    "zappod_basic_plan": "basic_monthly",
    "zappod_yearly_basic_plan": "basic_yearly",
}


def subscription_type_for_product(product_id: str | None) -> str:
    if product_id is None:
        return PROMO_GRANT_TIER
    return PRODUCT_SUBSCRIPTION_TYPES.get(product_id, PROMO_GRANT_TIER)
