# backend/vn_core/common/api/exceptions.py
from __future__ import annotations

import logging
import uuid
from typing import Any

from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, NotAuthenticated, PermissionDenied, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from vn_core.bonuses.errors import (
    BonusEngineError,
    ConcurrencyError,
    ConfigurationError,
    IntegrityViolation,
    MissingDataError,
)

logger = logging.getLogger(__name__)

_ENGINE_STATUS = {
    ConfigurationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    MissingDataError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ConcurrencyError: status.HTTP_409_CONFLICT,
    IntegrityViolation: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def ensure_request_id(request) -> str:
    """
    Ensures request has a stable request_id attribute and returns it.
    """
    rid = getattr(request, "request_id", None) if request is not None else None
    if not rid:
        rid = uuid.uuid4().hex
        if request is not None:
            setattr(request, "request_id", rid)
    return rid


def build_error_envelope(*, request=None, code: str, message: str, details: Any = None) -> dict[str, Any]:
    """
    Canonical error envelope.
    """
    rid = ensure_request_id(request)
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": rid,
        }
    }


def _code_for(exc: Exception, http_status: int) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, NotAuthenticated):
        return "not_authenticated"
    if isinstance(exc, PermissionDenied):
        return "permission_denied"
    if isinstance(exc, Http404):
        return "not_found"
    if isinstance(exc, APIException):
        return getattr(exc, "default_code", "api_error") or "api_error"
    if http_status >= 500:
        return "server_error"
    return "error"


def _engine_error_response(exc: BonusEngineError, request) -> Response:
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    for klass, st in _ENGINE_STATUS.items():
        if isinstance(exc, klass):
            http_status = st
            break

    if http_status >= 500:
        logger.error("bonus engine failure: %s", exc, exc_info=exc)
    else:
        logger.warning("bonus engine rejected request: %s", exc)

    return Response(
        build_error_envelope(
            request=request,
            code=exc.default_code,
            message=exc.message,
            details=exc.as_dict(),
        ),
        status=http_status,
    )


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    request = context.get("request")

    if isinstance(exc, BonusEngineError):
        return _engine_error_response(exc, request)

    response = drf_exception_handler(exc, context)

    # Truly unhandled error
    if response is None:
        logger.exception("unhandled API error", exc_info=exc)
        return Response(
            build_error_envelope(
                request=request,
                code="server_error",
                message="Unexpected server error.",
                details=None,
            ),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    http_status = response.status_code
    code = _code_for(exc, http_status)

    data = response.data

    # 1) {"detail": "..."} only -> message=detail, details=None
    # 2) {"detail": "...", ...} -> message=detail, details={...without detail}
    # 3) otherwise -> message="Request failed.", details=data
    message = "Request failed."
    details = data

    if isinstance(data, dict) and "detail" in data:
        message = str(data.get("detail"))
        rest = {k: v for k, v in data.items() if k != "detail"}
        details = rest or None

    return Response(
        build_error_envelope(
            request=request,
            code=code,
            message=message,
            details=details,
        ),
        status=http_status,
        headers=response.headers,
    )
