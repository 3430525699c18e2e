from __future__ import annotations


class SubscriptionError(Exception):
    code = "server_error"
    status_code = 500
    default_message = "Unexpected server error"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, object] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class InvalidRequestError(SubscriptionError):
    code = "invalid_request"
    status_code = 422
    default_message = "Invalid request"


class UnauthorizedError(SubscriptionError):
    code = "unauthorized"
    status_code = 401
    default_message = "unauthorized"


class SubscriptionNotFoundError(SubscriptionError):
    code = "not_found"
    status_code = 404
    default_message = "No subscription row for user"


class PromoCodeNotFoundError(SubscriptionError):
    code = "code_not_found"
    status_code = 404
    default_message = "Invalid code"


class PromoInactiveError(SubscriptionError):
    code = "inactive_code"
    status_code = 409
    default_message = "Code inactive"


class PromoExpiredError(SubscriptionError):
    code = "expired_code"
    status_code = 410
    default_message = "Code expired"


class PromoUsageExhaustedError(SubscriptionError):
    code = "usage_exhausted"
    status_code = 409
    default_message = "Code usage exhausted"


class PromoAlreadyRedeemedError(SubscriptionError):
    code = "already_redeemed"
    status_code = 409
    default_message = "User already redeemed this category"


class NotEligibleError(SubscriptionError):
    code = "not_eligible"
    status_code = 409
    default_message = "Transition allowed only for expired basic/basic_monthly/basic_yearly"


class StoreFetchError(SubscriptionError):
    code = "fetch_failed"
    status_code = 500
    default_message = "Failed to fetch subscription"


class StoreUpdateError(SubscriptionError):
    code = "update_failed"
    status_code = 500
    default_message = "Failed to update subscription"


class RedemptionRecordError(SubscriptionError):
    code = "redemption_failed"
    status_code = 500
    default_message = "Failed to record redemption"


class UsageUpdateError(SubscriptionError):
    code = "usage_update_failed"
    status_code = 500
    default_message = "Failed to update code usage"


class SubscriptionUpsertError(SubscriptionError):
    code = "subscription_update_failed"
    status_code = 500
    default_message = "Failed to upsert subscription"


class ReceiptVerificationError(SubscriptionError):
    code = "apple_verify_failed"
    status_code = 400
    default_message = "Receipt invalid"

    def __init__(
        self,
        message: str | None = None,
        *,
        apple_status: int | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        self.apple_status = apple_status
        if apple_status is not None:
            details = {**(details or {}), "apple_status": apple_status}
        super().__init__(message, details=details)


class AppleNoResponseError(ReceiptVerificationError):
    code = "apple_no_response"
    status_code = 502
    default_message = "Receipt verification endpoint returned no usable status"


class AppleBadReceiptError(ReceiptVerificationError):
    code = "apple_bad_receipt"
    status_code = 422
    default_message = "Receipt data is malformed"


class AppleAuthFailedError(ReceiptVerificationError):
    code = "apple_auth_failed"
    status_code = 401
    default_message = "Receipt could not be authenticated"


class AppleSharedSecretMismatchError(ReceiptVerificationError):
    code = "apple_shared_secret_mismatch"
    status_code = 500
    default_message = "Shared secret does not match the account"


class AppleUnavailableError(ReceiptVerificationError):
    code = "apple_unavailable"
    status_code = 503
    default_message = "Receipt server is temporarily unavailable"


class AppleAccountRevokedError(ReceiptVerificationError):
    code = "apple_account_revoked"
    status_code = 410
    default_message = "Account not found or revoked"


class AppleInternalError(ReceiptVerificationError):
    code = "apple_internal_error"
    status_code = 502
    default_message = "Receipt server internal error"
