"""RFC 7807 Problem Details rendering for workflow errors."""
from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .domain_errors import DomainError

logger = logging.getLogger(__name__)

PROBLEM_TYPE_BASE = "https://api.vhc.local/problems"
PROBLEM_MEDIA_TYPE = "application/problem+json"


def _status_title(http_status: int) -> str:
    try:
        return HTTPStatus(http_status).phrase
    except ValueError:
        return "Domain Error"


def problem_response(
    *,
    http_status: int,
    code: str,
    detail: str,
    details: Any = None,
) -> JSONResponse:
    payload: dict[str, Any] = {
        "type": f"{PROBLEM_TYPE_BASE}/{code.lower()}",
        "title": _status_title(http_status),
        "status": http_status,
        "detail": detail,
        "code": code,
    }
    if details is not None:
        payload["details"] = jsonable_encoder(details)
    return JSONResponse(status_code=http_status, content=payload, media_type=PROBLEM_MEDIA_TYPE)


def build_problem_details_response(exc: DomainError) -> JSONResponse:
    """Render a DomainError with its stable code; clients branch on `code`, not on `detail`."""
    return problem_response(
        http_status=exc.http_status,
        code=exc.code,
        detail=exc.message,
        details=exc.details,
    )


async def domain_error_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s failed with %s", request.method, request.url.path, exc.code)
    return build_problem_details_response(exc)


async def request_validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body/query validation failures share the problem+json shape of domain errors."""
    return problem_response(
        http_status=422,
        code="REQUEST_VALIDATION_FAILED",
        detail="Request validation failed",
        details={"errors": exc.errors()},
    )
