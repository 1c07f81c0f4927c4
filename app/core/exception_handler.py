"""
DRF exception handler for application errors.

Maps the core.exceptions hierarchy onto HTTP status codes so views can
let service-layer errors propagate instead of translating them by hand.
Anything that is not a BaseApplicationError falls through to DRF's
default handler.

Configured in settings:
    REST_FRAMEWORK = {
        "EXCEPTION_HANDLER": "core.exception_handler.application_exception_handler",
    }
"""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order, so subclasses must come before their parents
STATUS_BY_ERROR: tuple[tuple[type[BaseApplicationError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
)


def status_for_error(exc: BaseApplicationError) -> int:
    """Return the HTTP status for an application error."""
    for error_class, http_status in STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            return http_status
    return status.HTTP_400_BAD_REQUEST


def application_exception_handler(exc, context):
    """Render BaseApplicationError as JSON, delegate everything else to DRF."""
    if isinstance(exc, BaseApplicationError):
        http_status = status_for_error(exc)
        view = context.get("view")
        logger.info(
            "Application error in API request",
            extra={
                "view": view.__class__.__name__ if view else None,
                "error_code": exc.error_code,
                "status": http_status,
            },
        )
        return Response(exc.to_dict(), status=http_status)

    return exception_handler(exc, context)
