from __future__ import annotations

from sqlalchemy import CheckConstraint

from entitlement_service.db.models import (  # noqa: F401
    PromoCode,
    PromoRedemption,
    SubscriptionHistory,
    UserSubscriptionStatus,
)
from entitlement_service.db.models.base import Base


def test_all_tables_registered() -> None:
    assert set(Base.metadata.tables) == {
        "user_subscription_status",
        "promo_codes",
        "promo_redemptions",
        "subscription_history",
    }


def test_critical_constraints_present() -> None:
    status = Base.metadata.tables["user_subscription_status"]
    status_checks = {
        constraint.name for constraint in status.constraints if isinstance(constraint, CheckConstraint)
    }
    assert "ck_user_subscription_status_type" in status_checks
    assert "ck_user_subscription_status_paid_tier_is_subscribed" in status_checks
    assert "idx_user_subscription_status_type_end" in {index.name for index in status.indexes}

    promo_codes = Base.metadata.tables["promo_codes"]
    promo_checks = {
        constraint.name
        for constraint in promo_codes.constraints
        if isinstance(constraint, CheckConstraint)
    }
    assert "ck_promo_codes_current_usage_non_negative" in promo_checks
    assert "ck_promo_codes_max_usage_positive" in promo_checks
    assert promo_codes.c.code.unique is True


def test_redemption_ledger_unique_per_category_except_test() -> None:
    redemptions = Base.metadata.tables["promo_redemptions"]
    indexes = {index.name: index for index in redemptions.indexes}

    ledger_index = indexes["uq_promo_redemptions_user_category"]
    assert ledger_index.unique is True
    assert [column.name for column in ledger_index.columns] == ["user_id", "category"]
    assert str(ledger_index.dialect_options["postgresql"]["where"]) == "category <> 'test'"
