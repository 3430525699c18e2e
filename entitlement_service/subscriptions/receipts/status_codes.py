from __future__ import annotations

from entitlement_service.subscriptions.errors import (
    AppleAccountRevokedError,
    AppleAuthFailedError,
    AppleBadReceiptError,
    AppleInternalError,
    AppleSharedSecretMismatchError,
    AppleUnavailableError,
    ReceiptVerificationError,
)

STATUS_OK = 0
STATUS_SANDBOX_RECEIPT = 21007
INTERNAL_ERROR_STATUS_RANGE = range(21100, 21200)

APPLE_STATUS_ERRORS: dict[int, type[ReceiptVerificationError]] = {
    21000: AppleBadReceiptError,
    21002: AppleBadReceiptError,
    21003: AppleAuthFailedError,
    21004: AppleSharedSecretMismatchError,
    21005: AppleUnavailableError,
    21010: AppleAccountRevokedError,
}


def error_for_apple_status(status: int) -> type[ReceiptVerificationError]:
    if status in APPLE_STATUS_ERRORS:
        return APPLE_STATUS_ERRORS[status]
    if status in INTERNAL_ERROR_STATUS_RANGE:
        return AppleInternalError
    return ReceiptVerificationError


def raise_for_apple_status(status: int) -> None:
    if status == STATUS_OK:
        return
    raise error_for_apple_status(status)(apple_status=status)
