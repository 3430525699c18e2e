from __future__ import annotations

import secrets

from fastapi import Request

INTERNAL_SECRET_HEADER = "X-Internal-Secret"


def is_valid_internal_secret(*, expected_secret: str, received_secret: str | None) -> bool:
    if not expected_secret or not received_secret:
        return False
    return secrets.compare_digest(expected_secret, received_secret)


def is_internal_request_authenticated(request: Request, *, expected_secret: str) -> bool:
    # An unset secret disables the gate.
    if not expected_secret:
        return True
    return is_valid_internal_secret(
        expected_secret=expected_secret,
        received_secret=request.headers.get(INTERNAL_SECRET_HEADER),
    )
