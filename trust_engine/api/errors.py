"""
Error envelope - Maps domain error kinds to HTTP responses.

Every TrustEngineError becomes ``{"error": {"kind", "message", ...}}``
with a status code chosen by kind. Storage failures and unexpected
exceptions are logged and answered with a generic ``internal_error``.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from trust_engine.domain.exceptions import RateLimited, StorageError, TrustEngineError, ValidationError

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[str, int] = {
    "validation_error": 422,
    "rate_limited": 429,
    "challenge_not_found": 404,
    "subject_not_found": 404,
    "proof_not_found": 404,
    "dispute_not_found": 404,
    "challenge_expired": 410,
    "challenge_already_consumed": 409,
    "invalid_challenge": 409,
    "not_eligible": 409,
    "unauthorized": 403,
    "external_fetch_error": 502,
    "external_fetch_timeout": 502,
}

_INTERNAL_ERROR = {"error": {"kind": "internal_error", "message": "Internal server error"}}


def error_body(exc: TrustEngineError) -> dict:
    body: dict = {"kind": exc.kind, "message": exc.message}
    if isinstance(exc, ValidationError):
        body["errors"] = exc.errors
    if isinstance(exc, RateLimited):
        body["remaining"] = exc.remaining
    return {"error": body}


async def trust_engine_error_handler(request: Request, exc: TrustEngineError) -> JSONResponse:
    if isinstance(exc, StorageError) or exc.kind not in STATUS_BY_KIND:
        logger.error("Request failed: path=%s kind=%s", request.url.path, exc.kind, exc_info=exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_INTERNAL_ERROR)
    headers = {"Retry-After": "60"} if isinstance(exc, RateLimited) else None
    return JSONResponse(status_code=STATUS_BY_KIND[exc.kind], content=error_body(exc), headers=headers)


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error: path=%s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_INTERNAL_ERROR)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TrustEngineError, trust_engine_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
