from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from entitlement_service.db.models.promo_codes import PromoCode
from entitlement_service.db.models.promo_redemptions import PromoRedemption
from entitlement_service.db.session import SessionLocal
from entitlement_service.subscriptions.errors import (
    PromoAlreadyRedeemedError,
    PromoUsageExhaustedError,
)
from entitlement_service.subscriptions.redemption import RedemptionService
from tests.integration.entitlement_fixtures import create_promo_code, create_status, load_status

UTC = timezone.utc


@pytest.mark.asyncio
async def test_redeem_extends_trial_and_persists_every_step() -> None:
    now_utc = datetime.now(UTC)
    user_id = uuid4()
    trial_end = now_utc + timedelta(days=5)
    await create_promo_code("WELCOME30", bonus_days=30, max_usage=10)
    await create_status(user_id, now_utc=now_utc, subscription_type="trial", trial_end_date=trial_end)

    result = await RedemptionService.redeem(
        SessionLocal, code="WELCOME30", user_id=user_id, now_utc=now_utc
    )

    assert result.subscription_end_date == trial_end + timedelta(days=30)
    status = await load_status(user_id)
    assert status is not None
    assert status.subscription_type == "basic"
    assert status.is_subscribed is True
    assert status.subscription_end_date == trial_end + timedelta(days=30)
    assert status.bonus_end_date == status.subscription_end_date

    async with SessionLocal() as session:
        usage = await session.scalar(select(PromoCode.current_usage).where(PromoCode.code == "WELCOME30"))
        redemptions = await session.scalar(select(func.count()).select_from(PromoRedemption))
    assert usage == 1
    assert redemptions == 1


@pytest.mark.asyncio
async def test_concurrent_same_category_redemptions_record_one_row() -> None:
    now_utc = datetime.now(UTC)
    user_id = uuid4()
    await create_promo_code("LAUNCH_A", category="launch")
    await create_promo_code("LAUNCH_B", category="launch")

    results = await asyncio.gather(
        RedemptionService.redeem(SessionLocal, code="LAUNCH_A", user_id=user_id, now_utc=now_utc),
        RedemptionService.redeem(SessionLocal, code="LAUNCH_B", user_id=user_id, now_utc=now_utc),
        return_exceptions=True,
    )

    successes = [item for item in results if not isinstance(item, Exception)]
    failures = [item for item in results if isinstance(item, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], PromoAlreadyRedeemedError)

    async with SessionLocal() as session:
        redemptions = await session.scalar(
            select(func.count()).select_from(PromoRedemption).where(PromoRedemption.user_id == user_id)
        )
        total_usage = await session.scalar(select(func.sum(PromoCode.current_usage)))
    assert redemptions == 1
    assert total_usage == 1


@pytest.mark.asyncio
async def test_test_category_can_be_redeemed_repeatedly() -> None:
    now_utc = datetime.now(UTC)
    user_id = uuid4()
    await create_promo_code("QA_ONLY", category="test", bonus_days=1)

    await RedemptionService.redeem(SessionLocal, code="QA_ONLY", user_id=user_id, now_utc=now_utc)
    result = await RedemptionService.redeem(
        SessionLocal, code="QA_ONLY", user_id=user_id, now_utc=now_utc
    )

    assert result.subscription_end_date == now_utc + timedelta(days=2)


@pytest.mark.asyncio
async def test_exhausted_code_leaves_store_untouched() -> None:
    now_utc = datetime.now(UTC)
    user_id = uuid4()
    await create_promo_code("LIMITED", max_usage=5, current_usage=5)

    with pytest.raises(PromoUsageExhaustedError):
        await RedemptionService.redeem(SessionLocal, code="LIMITED", user_id=user_id, now_utc=now_utc)

    assert await load_status(user_id) is None
    async with SessionLocal() as session:
        usage = await session.scalar(select(PromoCode.current_usage).where(PromoCode.code == "LIMITED"))
    assert usage == 5
