from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from entitlement_service.db.models.promo_codes import PromoCode
from entitlement_service.db.models.promo_redemptions import PromoRedemption


class PromoRepo:
    @staticmethod
    async def get_code(session: AsyncSession, code: str) -> PromoCode | None:
        stmt = select(PromoCode).where(PromoCode.code == code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def has_redemption_for_category(
        session: AsyncSession,
        *,
        user_id: UUID,
        category: str,
    ) -> bool:
        stmt = (
            select(PromoRedemption.id)
            .where(
                PromoRedemption.user_id == user_id,
                PromoRedemption.category == category,
            )
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def create_redemption(
        session: AsyncSession, *, redemption: PromoRedemption
    ) -> PromoRedemption:
        session.add(redemption)
        await session.flush()
        return redemption

    @staticmethod
    async def increment_usage(session: AsyncSession, *, code: str) -> int | None:
        stmt = (
            update(PromoCode)
            .where(PromoCode.code == code)
            .values(current_usage=PromoCode.current_usage + 1)
            .returning(PromoCode.current_usage)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
