from __future__ import annotations

from typing import Any
from uuid import UUID

import pytest

from entitlement_service.subscriptions import expiry, redemption
from entitlement_service.subscriptions.receipts import service as receipt_service
from tests.subscriptions.store_fixtures import InMemoryStore


@pytest.fixture
def store(monkeypatch: pytest.MonkeyPatch) -> InMemoryStore:
    in_memory = InMemoryStore()
    in_memory.install(monkeypatch)
    return in_memory


@pytest.fixture(autouse=True)
def identity_sync_calls(monkeypatch: pytest.MonkeyPatch) -> list[tuple[UUID, dict[str, Any]]]:
    calls: list[tuple[UUID, dict[str, Any]]] = []

    async def _fake_sync(*, user_id: UUID, metadata: dict[str, Any]) -> bool:
        calls.append((user_id, metadata))
        return True

    for module in (redemption, expiry, receipt_service):
        monkeypatch.setattr(module, "sync_identity_metadata", _fake_sync)
    return calls
