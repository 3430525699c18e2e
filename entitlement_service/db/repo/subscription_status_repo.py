from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, or_, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from entitlement_service.db.models.subscription_status import UserSubscriptionStatus


class SubscriptionStatusRepo:
    @staticmethod
    async def get_by_user_id(
        session: AsyncSession, user_id: UUID
    ) -> UserSubscriptionStatus | None:
        return await session.get(UserSubscriptionStatus, user_id)

    @staticmethod
    async def upsert(
        session: AsyncSession,
        *,
        user_id: UUID,
        values: dict[str, object],
    ) -> None:
        stmt = pg_insert(UserSubscriptionStatus).values(user_id=user_id, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserSubscriptionStatus.user_id],
            set_=values,
        )
        await session.execute(stmt)

    @staticmethod
    async def demote_expired_user(
        session: AsyncSession,
        *,
        user_id: UUID,
        subscription_types: Iterable[str],
        now_utc: datetime,
    ) -> UserSubscriptionStatus | None:
        # Re-checks eligibility in the UPDATE so a concurrent extension is never demoted.
        stmt = (
            update(UserSubscriptionStatus)
            .where(
                UserSubscriptionStatus.user_id == user_id,
                func.lower(UserSubscriptionStatus.subscription_type).in_(tuple(subscription_types)),
                or_(
                    UserSubscriptionStatus.subscription_end_date.is_(None),
                    UserSubscriptionStatus.subscription_end_date <= now_utc,
                ),
            )
            .values(
                subscription_type="free",
                is_subscribed=False,
                subscription_end_date=None,
                bonus_end_date=None,
                updated_at=now_utc,
            )
            .returning(UserSubscriptionStatus)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def demote_expired_tier(
        session: AsyncSession,
        *,
        subscription_type: str,
        now_utc: datetime,
    ) -> int:
        stmt = (
            update(UserSubscriptionStatus)
            .where(
                UserSubscriptionStatus.subscription_type == subscription_type,
                UserSubscriptionStatus.subscription_end_date.is_not(None),
                UserSubscriptionStatus.subscription_end_date < now_utc,
            )
            .values(
                subscription_type="free",
                is_subscribed=False,
                subscription_end_date=None,
                bonus_end_date=None,
                updated_at=now_utc,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return int(getattr(result, "rowcount", 0) or 0)

    @staticmethod
    async def transition_trial_to_free(
        session: AsyncSession,
        *,
        user_id: UUID,
        now_utc: datetime,
    ) -> int:
        stmt = (
            update(UserSubscriptionStatus)
            .where(
                UserSubscriptionStatus.user_id == user_id,
                UserSubscriptionStatus.subscription_type == "trial",
            )
            .values(subscription_type="free", is_subscribed=False, updated_at=now_utc)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return int(getattr(result, "rowcount", 0) or 0)
