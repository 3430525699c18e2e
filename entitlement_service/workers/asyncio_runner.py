from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from entitlement_service.db.session import dispose_engine

T = TypeVar("T")
logger = structlog.get_logger(__name__)


async def _run_job(awaitable: Awaitable[T], *, job_name: str) -> T:
    # asyncpg connections are bound to the loop that opened them; each job gets a fresh pool.
    await dispose_engine()
    started_at = time.monotonic()
    try:
        result = await awaitable
    except Exception:
        logger.exception(
            "async_job_failed",
            job=job_name,
            duration_ms=round((time.monotonic() - started_at) * 1000),
        )
        raise
    finally:
        await dispose_engine()

    logger.info(
        "async_job_finished",
        job=job_name,
        duration_ms=round((time.monotonic() - started_at) * 1000),
    )
    return result


def run_async_job(awaitable: Awaitable[T], *, job_name: str) -> T:
    return asyncio.run(_run_job(awaitable, job_name=job_name))
