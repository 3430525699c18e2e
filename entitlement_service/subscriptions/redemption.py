from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from entitlement_service.db.models.promo_codes import PromoCode
from entitlement_service.db.models.promo_redemptions import (
    EXEMPT_REDEMPTION_CATEGORY,
    PromoRedemption,
)
from entitlement_service.db.repo.promo_repo import PromoRepo
from entitlement_service.db.repo.subscription_status_repo import SubscriptionStatusRepo
from entitlement_service.services.identity_sync import build_user_metadata, sync_identity_metadata
from entitlement_service.subscriptions.dates import as_utc, compute_extended_end_date
from entitlement_service.subscriptions.errors import (
    InvalidRequestError,
    PromoAlreadyRedeemedError,
    PromoCodeNotFoundError,
    PromoExpiredError,
    PromoInactiveError,
    PromoUsageExhaustedError,
    RedemptionRecordError,
    StoreFetchError,
    SubscriptionUpsertError,
    UsageUpdateError,
)
from entitlement_service.subscriptions.types import PROMO_GRANT_TIER, RedeemResult

logger = structlog.get_logger(__name__)
UNIQUE_VIOLATION_SQLSTATE = "23505"
REDEEM_REJECTIONS = (
    PromoCodeNotFoundError,
    PromoInactiveError,
    PromoExpiredError,
    PromoUsageExhaustedError,
    PromoAlreadyRedeemedError,
)


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        sqlstate = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if sqlstate == UNIQUE_VIOLATION_SQLSTATE:
            return True
    return False


def has_usage_left(promo_code: PromoCode) -> bool:
    if promo_code.max_usage is None:
        return True
    return (promo_code.current_usage or 0) < promo_code.max_usage


class RedemptionService:
    @staticmethod
    def _validate_code(promo_code: PromoCode, *, now_utc: datetime) -> None:
        if not promo_code.is_active:
            raise PromoInactiveError
        if promo_code.expires_at is not None and as_utc(promo_code.expires_at) < now_utc:
            raise PromoExpiredError
        if not has_usage_left(promo_code):
            raise PromoUsageExhaustedError

    @staticmethod
    async def _load_and_validate(
        session_factory: async_sessionmaker[AsyncSession],
        *,
        code: str,
        user_id: UUID,
        now_utc: datetime,
    ) -> PromoCode:
        try:
            async with session_factory() as session:
                promo_code = await PromoRepo.get_code(session, code)
                if promo_code is None:
                    raise PromoCodeNotFoundError
                RedemptionService._validate_code(promo_code, now_utc=now_utc)

                if promo_code.category != EXEMPT_REDEMPTION_CATEGORY:
                    already_redeemed = await PromoRepo.has_redemption_for_category(
                        session,
                        user_id=user_id,
                        category=promo_code.category,
                    )
                    if already_redeemed:
                        raise PromoAlreadyRedeemedError
        except SQLAlchemyError as exc:
            raise StoreFetchError(f"Failed to load promo code: {exc}") from exc
        return promo_code

    @staticmethod
    async def _record_redemption(
        session_factory: async_sessionmaker[AsyncSession],
        *,
        promo_code: PromoCode,
        user_id: UUID,
        now_utc: datetime,
    ) -> None:
        try:
            async with session_factory.begin() as session:
                await PromoRepo.create_redemption(
                    session,
                    redemption=PromoRedemption(
                        id=uuid4(),
                        user_id=user_id,
                        promo_code=promo_code.code,
                        category=promo_code.category,
                        created_at=now_utc,
                    ),
                )
        except IntegrityError as exc:
            if is_unique_violation(exc):
                raise PromoAlreadyRedeemedError from exc
            raise RedemptionRecordError(f"Failed to record redemption: {exc}") from exc
        except SQLAlchemyError as exc:
            raise RedemptionRecordError(f"Failed to record redemption: {exc}") from exc

    @staticmethod
    async def _increment_usage(
        session_factory: async_sessionmaker[AsyncSession],
        *,
        code: str,
    ) -> int:
        try:
            async with session_factory.begin() as session:
                usage = await PromoRepo.increment_usage(session, code=code)
        except SQLAlchemyError as exc:
            raise UsageUpdateError(f"Failed to update code usage: {exc}") from exc
        if usage is None:
            raise UsageUpdateError("Failed to update code usage: code row is gone")
        return usage

    @staticmethod
    async def _extend_subscription(
        session_factory: async_sessionmaker[AsyncSession],
        *,
        user_id: UUID,
        bonus_days: int,
        now_utc: datetime,
    ) -> datetime:
        try:
            async with session_factory() as session:
                current = await SubscriptionStatusRepo.get_by_user_id(session, user_id)
        except SQLAlchemyError as exc:
            raise StoreFetchError(f"Failed to fetch subscription: {exc}") from exc

        new_end = compute_extended_end_date(current, bonus_days, now_utc=now_utc)
        try:
            async with session_factory.begin() as session:
                await SubscriptionStatusRepo.upsert(
                    session,
                    user_id=user_id,
                    values={
                        "subscription_type": PROMO_GRANT_TIER,
                        "is_subscribed": True,
                        "subscription_end_date": new_end,
                        "bonus_end_date": new_end,
                        "updated_at": now_utc,
                    },
                )
        except SQLAlchemyError as exc:
            raise SubscriptionUpsertError(f"Failed to upsert subscription: {exc}") from exc
        return new_end

    @staticmethod
    async def redeem(
        session_factory: async_sessionmaker[AsyncSession],
        *,
        code: str,
        user_id: UUID,
        now_utc: datetime | None = None,
    ) -> RedeemResult:
        """Apply a promo code to the user's entitlement.

        Checks run before any write. The writes (ledger row, usage counter,
        entitlement upsert) each commit on their own; a later failure does
        not undo an earlier step. The ledger's unique index turns a lost
        race into ``PromoAlreadyRedeemedError``.
        """
        now_utc = as_utc(now_utc or datetime.now(timezone.utc))
        if not code or not code.strip():
            raise InvalidRequestError("Missing code or user_id")

        try:
            promo_code = await RedemptionService._load_and_validate(
                session_factory,
                code=code,
                user_id=user_id,
                now_utc=now_utc,
            )
        except REDEEM_REJECTIONS as exc:
            logger.info(
                "promo_redeem_rejected",
                user_id=str(user_id),
                promo_code=code,
                reason=exc.code,
            )
            raise

        try:
            await RedemptionService._record_redemption(
                session_factory,
                promo_code=promo_code,
                user_id=user_id,
                now_utc=now_utc,
            )
        except PromoAlreadyRedeemedError:
            logger.info(
                "promo_redeem_rejected",
                user_id=str(user_id),
                promo_code=code,
                reason="already_redeemed",
                race=True,
            )
            raise

        usage = await RedemptionService._increment_usage(session_factory, code=promo_code.code)
        bonus_days = promo_code.bonus_days or 0
        new_end = await RedemptionService._extend_subscription(
            session_factory,
            user_id=user_id,
            bonus_days=bonus_days,
            now_utc=now_utc,
        )

        await sync_identity_metadata(
            user_id=user_id,
            metadata=build_user_metadata(
                subscription_type=PROMO_GRANT_TIER,
                is_subscribed=True,
                subscription_end_date=new_end,
                updated_at=now_utc,
            ),
        )
        logger.info(
            "promo_code_redeemed",
            user_id=str(user_id),
            promo_code=promo_code.code,
            category=promo_code.category,
            bonus_days=bonus_days,
            current_usage=usage,
            subscription_end_date=new_end.isoformat(),
        )
        return RedeemResult(
            user_id=user_id,
            promo_code=promo_code.code,
            bonus_days=bonus_days,
            subscription_end_date=new_end,
        )
