from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from entitlement_service.db.models.subscription_history import SubscriptionHistory


class SubscriptionHistoryRepo:
    @staticmethod
    async def create(session: AsyncSession, *, entry: SubscriptionHistory) -> SubscriptionHistory:
        session.add(entry)
        await session.flush()
        return entry
