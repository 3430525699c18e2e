from __future__ import annotations

import structlog
from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from entitlement_service.core.config import get_settings
from entitlement_service.db.session import SessionLocal
from entitlement_service.services.internal_auth import is_internal_request_authenticated
from entitlement_service.subscriptions.errors import (
    NotEligibleError,
    StoreUpdateError,
    SubscriptionError,
    UnauthorizedError,
)
from entitlement_service.subscriptions.expiry import ExpiryService
from entitlement_service.subscriptions.receipts.apple_client import AppleReceiptClient
from entitlement_service.subscriptions.receipts.service import ReceiptReconciliationService
from entitlement_service.subscriptions.redemption import RedemptionService

from .internal_subscriptions_helpers import (
    error_response,
    parse_payload,
    preflight_response,
    server_error_response,
    success_response,
)
from .internal_subscriptions_models import (
    ExpireDueRequest,
    ExpireSubscriptionRequest,
    RedeemCodeRequest,
    TrialTransitionRequest,
    VerifyReceiptRequest,
)

router = APIRouter(tags=["internal", "subscriptions"])
logger = structlog.get_logger(__name__)

REDEEM_CODE_PATH = "/internal/subscriptions/redeem-code"
EXPIRE_PATH = "/internal/subscriptions/expire"
EXPIRE_DUE_PATH = "/internal/subscriptions/expire-due"
TRIAL_TRANSITION_PATH = "/internal/subscriptions/transition-trial"
VERIFY_APPLE_PATH = "/internal/subscriptions/verify-apple"


def build_apple_client() -> AppleReceiptClient:
    return AppleReceiptClient.from_settings(get_settings())


def _assert_internal_access(request: Request) -> None:
    settings = get_settings()
    if not is_internal_request_authenticated(
        request,
        expected_secret=settings.internal_edge_secret,
    ):
        logger.warning("internal_subscriptions_auth_failed", path=request.url.path)
        raise UnauthorizedError


async def _preflight() -> Response:
    return preflight_response()


for _path in (
    REDEEM_CODE_PATH,
    EXPIRE_PATH,
    EXPIRE_DUE_PATH,
    TRIAL_TRANSITION_PATH,
    VERIFY_APPLE_PATH,
):
    router.add_api_route(_path, _preflight, methods=["OPTIONS"], include_in_schema=False)


@router.post(REDEEM_CODE_PATH)
async def redeem_code(request: Request) -> JSONResponse:
    try:
        _assert_internal_access(request)
        payload = await parse_payload(
            request,
            RedeemCodeRequest,
            invalid_message="Missing code or user_id",
        )
        result = await RedemptionService.redeem(
            SessionLocal,
            code=payload.code,
            user_id=payload.user_id,
        )
    except SubscriptionError as exc:
        return error_response(exc)
    except Exception as exc:
        return server_error_response(exc, endpoint="redeem_code")

    return success_response(
        bonus_days=result.bonus_days,
        subscription_end_date=result.subscription_end_date,
    )


@router.post(EXPIRE_PATH)
async def expire_subscription(request: Request) -> JSONResponse:
    try:
        _assert_internal_access(request)
        payload = await parse_payload(
            request,
            ExpireSubscriptionRequest,
            invalid_message="Require userId (UUID)",
        )
        result = await ExpiryService.expire_if_due(SessionLocal, user_id=payload.user_id)
    except SubscriptionError as exc:
        return error_response(exc)
    except Exception as exc:
        return server_error_response(exc, endpoint="expire_subscription")

    return success_response(
        demoted=result.demoted,
        new_state={
            "subscription_type": result.subscription_type,
            "is_subscribed": result.is_subscribed,
            "subscription_end_date": result.subscription_end_date,
            "updated_at": result.updated_at,
        },
    )


@router.post(EXPIRE_DUE_PATH)
async def expire_due_subscriptions(request: Request) -> JSONResponse:
    try:
        _assert_internal_access(request)
        payload = await parse_payload(
            request,
            ExpireDueRequest,
            invalid_message="tiers must be a non-empty list of subscription types",
            allow_empty=True,
        )
        result = await ExpiryService.expire_due_batch(SessionLocal, tiers=payload.tiers)
    except SubscriptionError as exc:
        return error_response(exc)
    except Exception as exc:
        return server_error_response(exc, endpoint="expire_due_subscriptions")

    if result.errors_by_tier:
        return error_response(
            StoreUpdateError("One or more tiers failed to expire"),
            demoted_by_tier=result.demoted_by_tier,
            errors_by_tier=result.errors_by_tier,
        )
    return success_response(
        demoted_by_tier=result.demoted_by_tier,
        demoted_total=result.demoted_total,
    )


@router.post(TRIAL_TRANSITION_PATH)
async def transition_trial(request: Request) -> JSONResponse:
    try:
        _assert_internal_access(request)
        payload = await parse_payload(
            request,
            TrialTransitionRequest,
            invalid_message="Missing userId",
        )
        result = await ExpiryService.transition_trial_to_free(SessionLocal, user_id=payload.user_id)
    except SubscriptionError as exc:
        return error_response(exc)
    except Exception as exc:
        return server_error_response(exc, endpoint="transition_trial")

    if not result.transitioned:
        return error_response(
            NotEligibleError("Transition allowed only for trial subscriptions"),
            transitioned=False,
        )
    return success_response(transitioned=True)


@router.post(VERIFY_APPLE_PATH)
async def verify_apple_subscription(request: Request) -> JSONResponse:
    try:
        _assert_internal_access(request)
        payload = await parse_payload(
            request,
            VerifyReceiptRequest,
            invalid_message="Missing receiptData or userId",
        )
        result = await ReceiptReconciliationService.reconcile(
            SessionLocal,
            receipt_data=payload.receipt_data,
            user_id=payload.user_id,
            client=build_apple_client(),
        )
    except SubscriptionError as exc:
        return error_response(exc)
    except Exception as exc:
        return server_error_response(exc, endpoint="verify_apple_subscription")

    return success_response(
        status=result.outcome,
        subscription_type=result.subscription_type,
        subscription_start_date=result.subscription_start_date,
        subscription_end_date=result.subscription_end_date,
        environment=result.environment,
    )
