from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

SUBSCRIPTION_TYPES = ("free", "trial", "basic", "basic_monthly", "basic_yearly", "unknown")
BASIC_FAMILY = frozenset({"basic", "basic_monthly", "basic_yearly"})
FREE_TIER = "free"
TRIAL_TIER = "trial"
PROMO_GRANT_TIER = "basic"


@dataclass(slots=True)
class RedeemResult:
    user_id: UUID
    promo_code: str
    bonus_days: int
    subscription_end_date: datetime


@dataclass(slots=True)
class ExpiryResult:
    user_id: UUID
    demoted: bool
    subscription_type: str
    is_subscribed: bool
    subscription_end_date: datetime | None
    updated_at: datetime


@dataclass(slots=True)
class BatchExpiryResult:
    demoted_by_tier: dict[str, int] = field(default_factory=dict)
    errors_by_tier: dict[str, str] = field(default_factory=dict)

    @property
    def demoted_total(self) -> int:
        return sum(self.demoted_by_tier.values())


@dataclass(slots=True)
class TrialTransitionResult:
    user_id: UUID
    transitioned: bool


@dataclass(frozen=True, slots=True)
class ReceiptTransaction:
    product_id: str | None
    purchase_date_ms: int
    expires_date_ms: int


@dataclass(slots=True)
class ReconcileResult:
    user_id: UUID
    outcome: str
    subscription_type: str
    subscription_start_date: datetime | None = None
    subscription_end_date: datetime | None = None
    environment: str | None = None
