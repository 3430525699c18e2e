from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from entitlement_service.subscriptions.types import ReceiptTransaction

EPOCH_UTC = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _as_millis(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _in_datetime_range(value: int) -> bool:
    try:
        millis_to_datetime(value)
    except OverflowError:
        return False
    return True


def _candidate_entries(body: dict[str, Any]) -> list[object]:
    latest = body.get("latest_receipt_info")
    if isinstance(latest, list) and latest:
        return latest

    receipt = body.get("receipt")
    in_app = receipt.get("in_app") if isinstance(receipt, dict) else None
    if isinstance(in_app, list):
        return in_app
    return []


def parse_transactions(body: dict[str, Any]) -> list[ReceiptTransaction]:
    transactions: list[ReceiptTransaction] = []
    for entry in _candidate_entries(body):
        if not isinstance(entry, dict):
            continue
        expires_ms = _as_millis(entry.get("expires_date_ms"))
        if expires_ms is None:
            continue
        purchase_ms = _as_millis(entry.get("purchase_date_ms")) or 0
        # Skip timestamps past the range datetime can hold.
        if not (_in_datetime_range(expires_ms) and _in_datetime_range(purchase_ms)):
            continue
        product_id = entry.get("product_id")
        transactions.append(
            ReceiptTransaction(
                product_id=str(product_id) if product_id is not None else None,
                purchase_date_ms=purchase_ms,
                expires_date_ms=expires_ms,
            )
        )
    return transactions


def select_latest_transaction(
    transactions: Iterable[ReceiptTransaction],
) -> ReceiptTransaction | None:
    return max(
        transactions,
        key=lambda item: (item.expires_date_ms, item.purchase_date_ms),
        default=None,
    )


def millis_to_datetime(value: int) -> datetime:
    return EPOCH_UTC + timedelta(milliseconds=value)
