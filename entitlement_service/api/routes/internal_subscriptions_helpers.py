from __future__ import annotations

from typing import Any, TypeVar

import structlog
from fastapi import Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from entitlement_service.subscriptions.errors import InvalidRequestError, SubscriptionError

logger = structlog.get_logger(__name__)
ModelT = TypeVar("ModelT", bound=BaseModel)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": (
        "authorization, x-client-info, apikey, content-type, x-internal-secret"
    ),
}


def _envelope_response(status_code: int, body: dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body),
        headers=CORS_HEADERS,
    )


def success_response(**fields: Any) -> JSONResponse:
    return _envelope_response(200, {"success": True, "code": "ok", **fields})


def error_response(exc: SubscriptionError, **fields: Any) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "code": exc.code, "message": exc.message}
    if exc.details:
        body["details"] = exc.details
    body.update(fields)
    return _envelope_response(exc.status_code, body)


def server_error_response(exc: Exception, *, endpoint: str) -> JSONResponse:
    logger.exception("internal_subscriptions_unhandled_error", endpoint=endpoint)
    return _envelope_response(
        500,
        {"success": False, "code": "server_error", "message": str(exc) or type(exc).__name__},
    )


def preflight_response() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


async def parse_payload(
    request: Request,
    model: type[ModelT],
    *,
    invalid_message: str,
    allow_empty: bool = False,
) -> ModelT:
    body = await request.body()
    if not body.strip() and allow_empty:
        return model()
    try:
        raw = await request.json()
    except ValueError as exc:
        raise InvalidRequestError(invalid_message) from exc
    if not isinstance(raw, dict):
        raise InvalidRequestError(invalid_message)

    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise InvalidRequestError(invalid_message) from exc
