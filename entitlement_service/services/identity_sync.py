from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

import httpx
import structlog

from entitlement_service.core.config import get_settings

logger = structlog.get_logger(__name__)
IDENTITY_SYNC_TIMEOUT_SECONDS = 5.0


def _json_value(value: object) -> object:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def build_user_metadata(**fields: object) -> dict[str, Any]:
    return {key: _json_value(value) for key, value in fields.items()}


async def sync_identity_metadata(*, user_id: UUID, metadata: dict[str, Any]) -> bool:
    """Mirror derived entitlement fields onto the identity store's user metadata.

    Gated by ``SYNC_AUTH_METADATA``. Returns False when disabled or when delivery
    fails; failures are logged and never propagate to the caller.
    """
    settings = get_settings()
    if not settings.sync_auth_metadata:
        return False

    base_url = settings.identity_admin_url.rstrip("/")
    url = f"{base_url}/admin/users/{user_id}"
    headers = {
        "Authorization": f"Bearer {settings.identity_service_key}",
        "apikey": settings.identity_service_key,
    }
    try:
        async with httpx.AsyncClient(timeout=IDENTITY_SYNC_TIMEOUT_SECONDS) as client:
            response = await client.put(url, json={"user_metadata": metadata}, headers=headers)
            response.raise_for_status()
    except Exception:
        logger.warning(
            "identity_metadata_sync_failed",
            user_id=str(user_id),
            exc_info=True,
        )
        return False

    logger.info("identity_metadata_synced", user_id=str(user_id))
    return True
