from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from entitlement_service.db.repo.subscription_status_repo import SubscriptionStatusRepo
from entitlement_service.subscriptions.errors import (
    InvalidRequestError,
    NotEligibleError,
    StoreFetchError,
    StoreUpdateError,
    SubscriptionNotFoundError,
)
from entitlement_service.subscriptions.expiry import ExpiryService, is_expiry_eligible
from tests.subscriptions.store_fixtures import InMemoryStore

UTC = timezone.utc
NOW_UTC = datetime(2024, 6, 1, 9, 0, tzinfo=UTC)


async def test_expire_demotes_lapsed_monthly_plan(store: InMemoryStore, identity_sync_calls) -> None:
    user_id = uuid4()
    store.add_status(
        user_id,
        subscription_type="basic_monthly",
        is_subscribed=True,
        subscription_end_date=NOW_UTC - timedelta(days=1),
        bonus_end_date=NOW_UTC - timedelta(days=1),
    )

    result = await ExpiryService.expire_if_due(
        store.session_factory, user_id=user_id, now_utc=NOW_UTC
    )

    assert result.demoted is True
    assert result.subscription_type == "free"
    assert result.is_subscribed is False
    assert result.subscription_end_date is None
    assert result.updated_at == NOW_UTC

    status = store.statuses[user_id]
    assert status.subscription_type == "free"
    assert status.bonus_end_date is None
    assert identity_sync_calls[0][1]["subscription_type"] == "free"


async def test_expire_treats_missing_end_date_as_lapsed(store: InMemoryStore) -> None:
    user_id = uuid4()
    store.add_status(user_id, subscription_type="basic", is_subscribed=True)

    result = await ExpiryService.expire_if_due(
        store.session_factory, user_id=user_id, now_utc=NOW_UTC
    )

    assert result.demoted is True


async def test_expire_matches_tier_case_insensitively(store: InMemoryStore) -> None:
    user_id = uuid4()
    store.add_status(
        user_id,
        subscription_type="Basic_Yearly",
        is_subscribed=True,
        subscription_end_date=NOW_UTC - timedelta(minutes=1),
    )

    result = await ExpiryService.expire_if_due(
        store.session_factory, user_id=user_id, now_utc=NOW_UTC
    )

    assert result.demoted is True


async def test_expire_rejects_active_plan(store: InMemoryStore) -> None:
    user_id = uuid4()
    end = NOW_UTC + timedelta(days=3)
    store.add_status(
        user_id,
        subscription_type="basic",
        is_subscribed=True,
        subscription_end_date=end,
    )

    with pytest.raises(NotEligibleError) as exc_info:
        await ExpiryService.expire_if_due(store.session_factory, user_id=user_id, now_utc=NOW_UTC)

    assert exc_info.value.status_code == 409
    assert exc_info.value.details == {
        "subscription_type": "basic",
        "subscription_end_date": end.isoformat(),
    }
    assert store.statuses[user_id].subscription_type == "basic"
    assert store.writes == []


@pytest.mark.parametrize("subscription_type", ["trial", "free", "unknown"])
async def test_expire_ignores_non_basic_tiers(store: InMemoryStore, subscription_type: str) -> None:
    user_id = uuid4()
    store.add_status(
        user_id,
        subscription_type=subscription_type,
        subscription_end_date=NOW_UTC - timedelta(days=30),
    )

    with pytest.raises(NotEligibleError):
        await ExpiryService.expire_if_due(store.session_factory, user_id=user_id, now_utc=NOW_UTC)

    assert store.statuses[user_id].subscription_type == subscription_type


async def test_expire_unknown_user(store: InMemoryStore) -> None:
    with pytest.raises(SubscriptionNotFoundError):
        await ExpiryService.expire_if_due(store.session_factory, user_id=uuid4(), now_utc=NOW_UTC)


async def test_expire_fetch_failure(store: InMemoryStore) -> None:
    store.failures["get_by_user_id"] = OperationalError("SELECT", {}, Exception("down"))

    with pytest.raises(StoreFetchError):
        await ExpiryService.expire_if_due(store.session_factory, user_id=uuid4(), now_utc=NOW_UTC)


async def test_expire_update_failure(store: InMemoryStore) -> None:
    user_id = uuid4()
    store.add_status(user_id, subscription_type="basic", subscription_end_date=NOW_UTC)
    store.failures["demote_expired_user"] = OperationalError("UPDATE", {}, Exception("lock"))

    with pytest.raises(StoreUpdateError) as exc_info:
        await ExpiryService.expire_if_due(store.session_factory, user_id=user_id, now_utc=NOW_UTC)

    assert exc_info.value.code == "update_failed"


async def test_expire_skips_row_extended_after_read(
    store: InMemoryStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    user_id = uuid4()
    row = store.add_status(
        user_id,
        subscription_type="basic",
        is_subscribed=True,
        subscription_end_date=NOW_UTC - timedelta(days=1),
    )
    original_demote = store.demote_expired_user

    async def _extended_then_demote(session, **kwargs):
        row.subscription_end_date = NOW_UTC + timedelta(days=30)
        return await original_demote(session, **kwargs)

    monkeypatch.setattr(SubscriptionStatusRepo, "demote_expired_user", _extended_then_demote)

    with pytest.raises(NotEligibleError):
        await ExpiryService.expire_if_due(store.session_factory, user_id=user_id, now_utc=NOW_UTC)

    assert row.subscription_type == "basic"
    assert row.is_subscribed is True


async def test_batch_demotes_per_tier(store: InMemoryStore) -> None:
    lapsed = NOW_UTC - timedelta(hours=1)
    store.add_status(uuid4(), subscription_type="basic", subscription_end_date=lapsed)
    store.add_status(uuid4(), subscription_type="basic_monthly", subscription_end_date=lapsed)
    store.add_status(uuid4(), subscription_type="basic_monthly", subscription_end_date=lapsed)
    store.add_status(
        uuid4(),
        subscription_type="basic_yearly",
        subscription_end_date=NOW_UTC + timedelta(days=1),
    )
    untouched = store.add_status(uuid4(), subscription_type="basic")

    result = await ExpiryService.expire_due_batch(store.session_factory, now_utc=NOW_UTC)

    assert result.demoted_by_tier == {"basic": 1, "basic_monthly": 2, "basic_yearly": 0}
    assert result.errors_by_tier == {}
    assert result.demoted_total == 3
    assert untouched.subscription_type == "basic"
    assert store.transactions == 3


async def test_batch_continues_after_tier_failure(store: InMemoryStore) -> None:
    lapsed = NOW_UTC - timedelta(hours=1)
    store.add_status(uuid4(), subscription_type="basic_monthly", subscription_end_date=lapsed)
    store.add_status(uuid4(), subscription_type="basic_yearly", subscription_end_date=lapsed)
    store.failures["demote_expired_tier:basic_monthly"] = OperationalError(
        "UPDATE", {}, Exception("statement timeout")
    )

    result = await ExpiryService.expire_due_batch(store.session_factory, now_utc=NOW_UTC)

    assert result.demoted_by_tier == {"basic": 0, "basic_yearly": 1}
    assert list(result.errors_by_tier) == ["basic_monthly"]
    assert "statement timeout" in result.errors_by_tier["basic_monthly"]


async def test_batch_refuses_to_sweep_trials(store: InMemoryStore) -> None:
    user_id = uuid4()
    store.add_status(
        user_id,
        subscription_type="trial",
        is_subscribed=True,
        trial_end_date=NOW_UTC - timedelta(days=1),
    )

    with pytest.raises(InvalidRequestError) as exc_info:
        await ExpiryService.expire_due_batch(
            store.session_factory,
            now_utc=NOW_UTC,
            tiers=["trial", "TRIAL"],
        )

    assert exc_info.value.status_code == 422
    assert "trial" in exc_info.value.message
    assert store.statuses[user_id].subscription_type == "trial"
    assert store.statuses[user_id].is_subscribed is True
    assert store.transactions == 0


async def test_batch_rejects_unknown_tier(store: InMemoryStore) -> None:
    with pytest.raises(InvalidRequestError):
        await ExpiryService.expire_due_batch(
            store.session_factory, now_utc=NOW_UTC, tiers=["basic", "platinum"]
        )

    assert store.transactions == 0


async def test_trial_transition(store: InMemoryStore, identity_sync_calls) -> None:
    user_id = uuid4()
    store.add_status(user_id, subscription_type="trial", is_subscribed=True)

    result = await ExpiryService.transition_trial_to_free(
        store.session_factory, user_id=user_id, now_utc=NOW_UTC
    )

    assert result.transitioned is True
    assert store.statuses[user_id].subscription_type == "free"
    assert len(identity_sync_calls) == 1


async def test_trial_transition_ignores_other_tiers(store: InMemoryStore, identity_sync_calls) -> None:
    user_id = uuid4()
    store.add_status(user_id, subscription_type="basic", is_subscribed=True)

    result = await ExpiryService.transition_trial_to_free(
        store.session_factory, user_id=user_id, now_utc=NOW_UTC
    )

    assert result.transitioned is False
    assert store.statuses[user_id].subscription_type == "basic"
    assert identity_sync_calls == []


def test_is_expiry_eligible_boundary() -> None:
    assert is_expiry_eligible("basic", NOW_UTC, now_utc=NOW_UTC) is True
    assert is_expiry_eligible("basic", NOW_UTC + timedelta(seconds=1), now_utc=NOW_UTC) is False
    assert is_expiry_eligible(None, None, now_utc=NOW_UTC) is False
