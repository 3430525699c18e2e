from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from entitlement_service.db.models.subscription_history import SubscriptionHistory
from entitlement_service.db.repo.subscription_history_repo import SubscriptionHistoryRepo
from entitlement_service.db.repo.subscription_status_repo import SubscriptionStatusRepo
from entitlement_service.services.identity_sync import build_user_metadata, sync_identity_metadata
from entitlement_service.subscriptions.dates import as_utc
from entitlement_service.subscriptions.errors import InvalidRequestError, StoreUpdateError
from entitlement_service.subscriptions.receipts.apple_client import AppleReceiptClient
from entitlement_service.subscriptions.receipts.products import subscription_type_for_product
from entitlement_service.subscriptions.receipts.status_codes import raise_for_apple_status
from entitlement_service.subscriptions.receipts.transactions import (
    millis_to_datetime,
    parse_transactions,
    select_latest_transaction,
)
from entitlement_service.subscriptions.types import FREE_TIER, ReconcileResult

logger = structlog.get_logger(__name__)
OUTCOME_ACTIVE = "active"
OUTCOME_EXPIRED = "expired"
OUTCOME_NO_ACTIVE_TRANSACTIONS = "no_active_transactions"
HISTORY_STATUS_ACTIVE = "active"
PAYMENT_METHOD_APPLE = "apple"


class ReceiptReconciliationService:
    @staticmethod
    async def _demote_to_free(
        session_factory: async_sessionmaker[AsyncSession],
        *,
        user_id: UUID,
        now_utc: datetime,
    ) -> None:
        try:
            async with session_factory.begin() as session:
                await SubscriptionStatusRepo.upsert(
                    session,
                    user_id=user_id,
                    values={
                        "subscription_type": FREE_TIER,
                        "is_subscribed": False,
                        "subscription_start_date": None,
                        "subscription_end_date": None,
                        "updated_at": now_utc,
                    },
                )
        except SQLAlchemyError as exc:
            raise StoreUpdateError(str(exc)) from exc

    @staticmethod
    async def _activate(
        session_factory: async_sessionmaker[AsyncSession],
        *,
        user_id: UUID,
        subscription_type: str,
        start_date: datetime,
        end_date: datetime,
        now_utc: datetime,
    ) -> None:
        try:
            async with session_factory.begin() as session:
                await SubscriptionStatusRepo.upsert(
                    session,
                    user_id=user_id,
                    values={
                        "subscription_type": subscription_type,
                        "is_subscribed": True,
                        "subscription_start_date": start_date,
                        "subscription_end_date": end_date,
                        "updated_at": now_utc,
                    },
                )
                await SubscriptionHistoryRepo.create(
                    session,
                    entry=SubscriptionHistory(
                        user_id=user_id,
                        subscription_type=subscription_type,
                        start_date=start_date,
                        end_date=end_date,
                        status=HISTORY_STATUS_ACTIVE,
                        payment_method=PAYMENT_METHOD_APPLE,
                        created_at=now_utc,
                    ),
                )
        except SQLAlchemyError as exc:
            raise StoreUpdateError(str(exc)) from exc

    @staticmethod
    async def reconcile(
        session_factory: async_sessionmaker[AsyncSession],
        *,
        receipt_data: str,
        user_id: UUID,
        client: AppleReceiptClient,
        now_utc: datetime | None = None,
    ) -> ReconcileResult:
        if not receipt_data or not receipt_data.strip():
            raise InvalidRequestError("Missing receiptData or userId")

        verification = await client.verify(receipt_data)
        now_utc = as_utc(now_utc or datetime.now(timezone.utc))
        if verification.status != 0:
            logger.warning(
                "apple_receipt_rejected",
                user_id=str(user_id),
                apple_status=verification.status,
                environment=verification.environment,
            )
        raise_for_apple_status(verification.status)

        latest = select_latest_transaction(parse_transactions(verification.body))
        if latest is None or millis_to_datetime(latest.expires_date_ms) <= now_utc:
            outcome = OUTCOME_NO_ACTIVE_TRANSACTIONS if latest is None else OUTCOME_EXPIRED
            await ReceiptReconciliationService._demote_to_free(
                session_factory,
                user_id=user_id,
                now_utc=now_utc,
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
                "apple_receipt_reconciled",
                user_id=str(user_id),
                outcome=outcome,
                environment=verification.environment,
            )
            return ReconcileResult(
                user_id=user_id,
                outcome=outcome,
                subscription_type=FREE_TIER,
                environment=verification.environment,
            )

        subscription_type = subscription_type_for_product(latest.product_id)
        start_date = millis_to_datetime(latest.purchase_date_ms)
        end_date = millis_to_datetime(latest.expires_date_ms)
        await ReceiptReconciliationService._activate(
            session_factory,
            user_id=user_id,
            subscription_type=subscription_type,
            start_date=start_date,
            end_date=end_date,
            now_utc=now_utc,
        )
        await sync_identity_metadata(
            user_id=user_id,
            metadata=build_user_metadata(
                subscription_type=subscription_type,
                is_subscribed=True,
                subscription_start_date=start_date,
                subscription_end_date=end_date,
                updated_at=now_utc,
            ),
        )
        logger.info(
            "apple_receipt_reconciled",
            user_id=str(user_id),
            outcome=OUTCOME_ACTIVE,
            subscription_type=subscription_type,
            product_id=latest.product_id,
            environment=verification.environment,
        )
        return ReconcileResult(
            user_id=user_id,
            outcome=OUTCOME_ACTIVE,
            subscription_type=subscription_type,
            subscription_start_date=start_date,
            subscription_end_date=end_date,
            environment=verification.environment,
        )
