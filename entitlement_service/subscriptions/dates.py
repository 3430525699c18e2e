"""Date Extension Rule shared by promo redemption and receipt handling.

All functions here are pure: the caller supplies ``now_utc`` and the current
entitlement snapshot, nothing reads the wall clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from entitlement_service.db.models.subscription_status import UserSubscriptionStatus
from entitlement_service.subscriptions.types import BASIC_FAMILY, FREE_TIER, TRIAL_TIER


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_subscription_type(value: str | None) -> str:
    return (value or FREE_TIER).strip().lower()


def is_basic_family(subscription_type: str | None) -> bool:
    return normalize_subscription_type(subscription_type) in BASIC_FAMILY


def resolve_extension_base(
    current: UserSubscriptionStatus | None,
    *,
    now_utc: datetime,
) -> datetime:
    now_utc = as_utc(now_utc)
    if current is None:
        return now_utc

    subscription_type = normalize_subscription_type(current.subscription_type)
    if subscription_type == TRIAL_TIER and current.trial_end_date is not None:
        return as_utc(current.trial_end_date)
    if is_basic_family(subscription_type):
        if current.subscription_end_date is not None:
            return as_utc(current.subscription_end_date)
        return now_utc
    return now_utc


def add_calendar_days(base: datetime, days: int) -> datetime:
    # UTC has no DST shifts, so whole-day timedelta keeps the wall-clock time.
    return as_utc(base) + timedelta(days=days)


def compute_extended_end_date(
    current: UserSubscriptionStatus | None,
    bonus_days: int | None,
    *,
    now_utc: datetime,
) -> datetime:
    days = bonus_days if isinstance(bonus_days, int) and bonus_days > 0 else 0
    base = resolve_extension_base(current, now_utc=now_utc)
    return add_calendar_days(base, days)
