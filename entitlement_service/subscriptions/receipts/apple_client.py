from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from entitlement_service.core.config import Settings, get_settings
from entitlement_service.subscriptions.errors import AppleNoResponseError
from entitlement_service.subscriptions.receipts.status_codes import STATUS_SANDBOX_RECEIPT

logger = structlog.get_logger(__name__)
ENVIRONMENT_PRODUCTION = "production"
ENVIRONMENT_SANDBOX = "sandbox"


@dataclass(frozen=True, slots=True)
class AppleVerification:
    status: int
    body: dict[str, Any]
    environment: str


def _extract_status(body: dict[str, Any]) -> int:
    status = body.get("status")
    if isinstance(status, bool):
        raise AppleNoResponseError
    if isinstance(status, int):
        return status
    if isinstance(status, str) and status.strip().lstrip("-").isdigit():
        return int(status.strip())
    raise AppleNoResponseError


class AppleReceiptClient:
    """Client for the App Store ``verifyReceipt`` endpoint.

    The production endpoint is tried first. A ``21007`` status means the
    receipt belongs to the sandbox, and the identical payload is posted once
    to the sandbox endpoint. No other status is retried.
    """

    def __init__(
        self,
        *,
        shared_secret: str,
        production_url: str,
        sandbox_url: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.shared_secret = shared_secret
        self.production_url = production_url
        self.sandbox_url = sandbox_url
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> AppleReceiptClient:
        settings = settings or get_settings()
        return cls(
            shared_secret=settings.apple_shared_secret,
            production_url=settings.apple_production_verify_url,
            sandbox_url=settings.apple_sandbox_verify_url,
            timeout=settings.apple_verify_timeout_seconds,
        )

    def build_payload(self, receipt_data: str) -> dict[str, Any]:
        return {
            "receipt-data": receipt_data,
            "password": self.shared_secret,
            "exclude-old-transactions": True,
        }

    async def _post(
        self,
        client: httpx.AsyncClient,
        *,
        url: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            response = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("apple_receipt_request_failed", url=url, error=str(exc))
            raise AppleNoResponseError(f"Receipt verification request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            logger.warning(
                "apple_receipt_response_unreadable",
                url=url,
                http_status=response.status_code,
            )
            raise AppleNoResponseError from exc
        if not isinstance(body, dict):
            raise AppleNoResponseError
        return body

    async def verify(self, receipt_data: str) -> AppleVerification:
        payload = self.build_payload(receipt_data)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            body = await self._post(client, url=self.production_url, payload=payload)
            status = _extract_status(body)
            environment = ENVIRONMENT_PRODUCTION

            if status == STATUS_SANDBOX_RECEIPT:
                logger.info("apple_receipt_sandbox_retry")
                body = await self._post(client, url=self.sandbox_url, payload=payload)
                status = _extract_status(body)
                environment = ENVIRONMENT_SANDBOX

        return AppleVerification(status=status, body=body, environment=environment)
