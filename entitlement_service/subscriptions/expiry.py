from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from entitlement_service.db.repo.subscription_status_repo import SubscriptionStatusRepo
from entitlement_service.services.identity_sync import build_user_metadata, sync_identity_metadata
from entitlement_service.subscriptions.dates import (
    as_utc,
    is_basic_family,
    normalize_subscription_type,
)
from entitlement_service.subscriptions.errors import (
    InvalidRequestError,
    NotEligibleError,
    StoreFetchError,
    StoreUpdateError,
    SubscriptionNotFoundError,
)
from entitlement_service.subscriptions.types import (
    BASIC_FAMILY,
    FREE_TIER,
    BatchExpiryResult,
    ExpiryResult,
    TrialTransitionResult,
)

logger = structlog.get_logger(__name__)

# Trials leave through transition_trial_to_free, never through the sweep.
DEFAULT_SWEEP_TIERS = ("basic", "basic_monthly", "basic_yearly")


def is_expiry_eligible(
    subscription_type: str | None,
    subscription_end_date: datetime | None,
    *,
    now_utc: datetime,
) -> bool:
    if not is_basic_family(subscription_type):
        return False
    # A basic-family row without an end date is treated as already expired.
    if subscription_end_date is None:
        return True
    return as_utc(subscription_end_date) <= as_utc(now_utc)


class ExpiryService:
    @staticmethod
    def _not_eligible(
        subscription_type: str | None,
        subscription_end_date: datetime | None,
    ) -> NotEligibleError:
        return NotEligibleError(
            details={
                "subscription_type": normalize_subscription_type(subscription_type),
                "subscription_end_date": (
                    subscription_end_date.isoformat() if subscription_end_date is not None else None
                ),
            }
        )

    @staticmethod
    async def expire_if_due(
        session_factory: async_sessionmaker[AsyncSession],
        *,
        user_id: UUID,
        now_utc: datetime | None = None,
    ) -> ExpiryResult:
        now_utc = as_utc(now_utc or datetime.now(timezone.utc))

        try:
            async with session_factory() as session:
                current = await SubscriptionStatusRepo.get_by_user_id(session, user_id)
        except SQLAlchemyError as exc:
            raise StoreFetchError(str(exc)) from exc
        if current is None:
            raise SubscriptionNotFoundError

        if not is_expiry_eligible(
            current.subscription_type,
            current.subscription_end_date,
            now_utc=now_utc,
        ):
            logger.info(
                "subscription_expiry_not_eligible",
                user_id=str(user_id),
                subscription_type=current.subscription_type,
            )
            raise ExpiryService._not_eligible(
                current.subscription_type, current.subscription_end_date
            )

        try:
            async with session_factory.begin() as session:
                updated = await SubscriptionStatusRepo.demote_expired_user(
                    session,
                    user_id=user_id,
                    subscription_types=BASIC_FAMILY,
                    now_utc=now_utc,
                )
        except SQLAlchemyError as exc:
            raise StoreUpdateError(str(exc)) from exc
        if updated is None:
            # Row changed between read and update, e.g. a redemption extended it.
            raise ExpiryService._not_eligible(
                current.subscription_type, current.subscription_end_date
            )

        await sync_identity_metadata(
            user_id=user_id,
            metadata=build_user_metadata(
                subscription_type=FREE_TIER,
                is_subscribed=False,
                updated_at=now_utc,
            ),
        )
        logger.info(
            "subscription_demoted",
            user_id=str(user_id),
            previous_type=normalize_subscription_type(current.subscription_type),
        )
        return ExpiryResult(
            user_id=user_id,
            demoted=True,
            subscription_type=updated.subscription_type,
            is_subscribed=updated.is_subscribed,
            subscription_end_date=updated.subscription_end_date,
            updated_at=updated.updated_at,
        )

    @staticmethod
    async def expire_due_batch(
        session_factory: async_sessionmaker[AsyncSession],
        *,
        now_utc: datetime | None = None,
        tiers: Iterable[str] | None = None,
    ) -> BatchExpiryResult:
        now_utc = as_utc(now_utc or datetime.now(timezone.utc))
        resolved_tiers = [
            normalize_subscription_type(tier) for tier in (tiers or DEFAULT_SWEEP_TIERS)
        ]
        unknown = sorted(set(resolved_tiers) - BASIC_FAMILY)
        if unknown:
            raise InvalidRequestError(f"Unsupported tiers: {', '.join(unknown)}")

        result = BatchExpiryResult()
        for tier in dict.fromkeys(resolved_tiers):
            try:
                async with session_factory.begin() as session:
                    demoted = await SubscriptionStatusRepo.demote_expired_tier(
                        session,
                        subscription_type=tier,
                        now_utc=now_utc,
                    )
            except (SQLAlchemyError, OSError) as exc:
                result.errors_by_tier[tier] = str(exc)
                logger.warning("subscription_expiry_sweep_tier_failed", tier=tier, error=str(exc))
                continue
            result.demoted_by_tier[tier] = demoted

        logger.info(
            "subscription_expiry_sweep_finished",
            demoted_by_tier=result.demoted_by_tier,
            failed_tiers=sorted(result.errors_by_tier),
        )
        return result

    @staticmethod
    async def transition_trial_to_free(
        session_factory: async_sessionmaker[AsyncSession],
        *,
        user_id: UUID,
        now_utc: datetime | None = None,
    ) -> TrialTransitionResult:
        now_utc = as_utc(now_utc or datetime.now(timezone.utc))
        try:
            async with session_factory.begin() as session:
                updated_rows = await SubscriptionStatusRepo.transition_trial_to_free(
                    session,
                    user_id=user_id,
                    now_utc=now_utc,
                )
        except SQLAlchemyError as exc:
            raise StoreUpdateError(str(exc)) from exc

        transitioned = updated_rows > 0
        if transitioned:
            await sync_identity_metadata(
                user_id=user_id,
                metadata=build_user_metadata(
                    subscription_type=FREE_TIER,
                    is_subscribed=False,
                    updated_at=now_utc,
                ),
            )
        logger.info("trial_transition_finished", user_id=str(user_id), transitioned=transitioned)
        return TrialTransitionResult(user_id=user_id, transitioned=transitioned)
