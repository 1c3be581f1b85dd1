"""Domain error base class and the DRF exception handler.

Every business-rule failure raised by the service layer derives from
``DomainError`` and carries a stable ``code`` plus the HTTP status the API
layer should answer with.  ``api_exception_handler`` renders both domain
errors and DRF's own exceptions in a single envelope::

    {"type": "client_error", "errors": [{"code": ..., "detail": ..., "attr": null}]}
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = structlog.get_logger(__name__)


class DomainError(Exception):
    """Base class for typed, user-facing business errors."""

    code = "domain_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: Optional[str] = None) -> None:
        self.detail = detail or self.__class__.__doc__ or self.code
        super().__init__(self.detail)


def _error_type(status_code: int) -> str:
    return "server_error" if status_code >= 500 else "client_error"


def _flatten_validation(detail: Any, attr: Optional[str] = None) -> List[Dict[str, Any]]:
    if isinstance(detail, dict):
        errors: List[Dict[str, Any]] = []
        for key, value in detail.items():
            nested = key if attr is None else f"{attr}.{key}"
            if key == "non_field_errors":
                nested = attr
            errors.extend(_flatten_validation(value, nested))
        return errors
    if isinstance(detail, list):
        errors = []
        for index, value in enumerate(detail):
            nested = attr
            if isinstance(value, (dict, list)):
                nested = f"{attr}.{index}" if attr else str(index)
            errors.extend(_flatten_validation(value, nested))
        return errors
    return [
        {
            "code": getattr(detail, "code", "invalid"),
            "detail": str(detail),
            "attr": attr,
        }
    ]


def api_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    """Render ``DomainError`` and DRF exceptions in the standard envelope."""
    if isinstance(exc, DomainError):
        logger.info(
            "api.domain_error",
            code=exc.code,
            status_code=exc.status_code,
            detail=exc.detail,
        )
        return Response(
            {
                "type": _error_type(exc.status_code),
                "errors": [{"code": exc.code, "detail": exc.detail, "attr": None}],
            },
            status=exc.status_code,
        )

    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, ValidationError):
        errors = _flatten_validation(exc.detail)
        error_type = "validation_error"
    elif isinstance(exc, APIException):
        errors = [
            {
                "code": exc.get_codes() if isinstance(exc.get_codes(), str) else exc.default_code,
                "detail": str(exc.detail),
                "attr": None,
            }
        ]
        error_type = _error_type(response.status_code)
    else:
        errors = [{"code": "error", "detail": str(exc), "attr": None}]
        error_type = _error_type(response.status_code)

    response.data = {"type": error_type, "errors": errors}
    return response
