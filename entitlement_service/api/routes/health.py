from __future__ import annotations

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import select, text

from entitlement_service.db.models.subscription_status import UserSubscriptionStatus
from entitlement_service.db.session import SessionLocal

router = APIRouter(tags=["health"])

OK = {"status": "ok"}


def _failed(error: str) -> dict[str, str]:
    return {"status": "failed", "error": error}


async def _check_database() -> dict[str, str]:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        return _failed("database_unavailable")
    return dict(OK)


async def _check_entitlement_table() -> dict[str, str]:
    """Fails when the connection works but the entitlement schema is missing."""
    try:
        async with SessionLocal() as session:
            await session.execute(select(UserSubscriptionStatus.user_id).limit(1))
    except Exception:
        return _failed("entitlement_table_unavailable")
    return dict(OK)


def _respond(checks: dict[str, dict[str, str]], *, ok: str, failed: str) -> JSONResponse:
    passed = all(check["status"] == "ok" for check in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if passed else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": ok if passed else failed, "checks": checks},
    )


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}


@router.get("/health")
async def health() -> JSONResponse:
    database = await _check_database()
    checks = {"database": database}
    # Without a connection the table check would only repeat the same error.
    if database["status"] == "ok":
        checks["user_subscription_status"] = await _check_entitlement_table()
    return _respond(checks, ok="ok", failed="degraded")


@router.get("/ready")
async def ready() -> JSONResponse:
    return _respond({"database": await _check_database()}, ok="ready", failed="not_ready")
