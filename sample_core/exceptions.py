# sample_core/exceptions.py
"""
Engine error taxonomy and the DRF exception handler that renders it.

- PreconditionFailed: caller asked for something the current state does not allow.
- Conflict: a one-time event already happened (lost race, safe to treat as done).
- IntegrityFailure: stored bytes disagree with their recorded hash. Fail closed.
- RoleForbidden: the actor's role does not cover the action.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, NotAuthenticated, PermissionDenied, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class EngineError(APIException):
    """
    Base for domain errors. Keeps the raw structured context next to the
    DRF-normalized detail so service callers can inspect it without string parsing.
    """

    def __init__(self, message=None, code=None, **context: Any):
        self.message = str(message or self.default_detail)
        self.context = context
        detail = {"detail": self.message, **context} if context else self.message
        super().__init__(detail=detail, code=code or self.default_code)

    def __str__(self) -> str:
        return self.message


class PreconditionFailed(EngineError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Precondition not met."
    default_code = "precondition_failed"


class Conflict(EngineError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict."
    default_code = "conflict"


class IntegrityFailure(EngineError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Stored document failed its integrity check."
    default_code = "integrity_failure"


class RoleForbidden(PermissionDenied):
    default_detail = "Your role does not permit this action."
    default_code = "role_forbidden"

    def __init__(self, message=None, code=None, **context: Any):
        self.message = str(message or self.default_detail)
        self.context = context
        detail = {"detail": self.message, **context} if context else self.message
        super().__init__(detail=detail, code=code or self.default_code)

    def __str__(self) -> str:
        return self.message


# ===============================================================
# Error envelope
# ===============================================================

def ensure_request_id(request) -> str:
    rid = getattr(request, "request_id", None) if request is not None else None
    if not rid:
        rid = uuid.uuid4().hex
        if request is not None:
            setattr(request, "request_id", rid)
    return rid


def build_error_envelope(*, request=None, code: str, message: str, details: Any = None) -> dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": ensure_request_id(request),
        }
    }


def _code_for(exc: Exception, http_status: int) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, NotAuthenticated):
        return "not_authenticated"
    if isinstance(exc, RoleForbidden):
        return "role_forbidden"
    if isinstance(exc, PermissionDenied):
        return "permission_denied"
    if isinstance(exc, Http404):
        return "not_found"
    if isinstance(exc, APIException):
        return getattr(exc, "default_code", "api_error") or "api_error"
    if http_status >= 500:
        return "server_error"
    return "error"


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    request = context.get("request")
    response = drf_exception_handler(exc, context)

    if response is None:
        logger.exception("Unhandled API error", exc_info=exc)
        return Response(
            build_error_envelope(
                request=request,
                code="server_error",
                message="Unexpected server error.",
            ),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    http_status = response.status_code
    code = _code_for(exc, http_status)
    data = response.data

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
