from __future__ import annotations

import pytest
from sqlalchemy import text

from entitlement_service.core.integration_db_safety import assert_safe_integration_db
from entitlement_service.db.models.base import Base
from entitlement_service.db.session import engine

TRUNCATE_TABLES = (
    "promo_redemptions",
    "promo_codes",
    "subscription_history",
    "user_subscription_status",
)

TRUNCATE_SQL = f"TRUNCATE TABLE {', '.join(TRUNCATE_TABLES)} RESTART IDENTITY CASCADE"


@pytest.fixture(scope="session", autouse=True)
def guard_integration_db_target() -> None:
    try:
        assert_safe_integration_db(engine.url.render_as_string(hide_password=False))
    except RuntimeError as exc:
        pytest.skip(str(exc))


@pytest.fixture(autouse=True)
async def cleanup_db() -> None:
    # Dispose pooled connections between tests to avoid cross-event-loop asyncpg reuse.
    await engine.dispose()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"Postgres is required for integration tests: {exc}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text(TRUNCATE_SQL))

    yield

    await engine.dispose()
