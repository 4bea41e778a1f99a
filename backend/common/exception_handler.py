"""DRF exception handler that renders marketplace errors consistently."""

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from services.exceptions import MarketplaceError

logger = logging.getLogger(__name__)


def marketplace_exception_handler(exc, context):
    """
    Render MarketplaceError subclasses as ``{"error": code, "message": text}``
    with the status code of their category. Everything else falls through to
    the default DRF handler.
    """
    if isinstance(exc, MarketplaceError):
        view = context.get("view")
        logger.info(
            "%s rejected in %s: %s",
            exc.error_code,
            view.__class__.__name__ if view else "unknown view",
            exc.message,
        )
        payload = {"error": exc.error_code, "message": exc.message}
        if exc.details:
            payload["details"] = exc.details
        return Response(payload, status=exc.status_code)

    return exception_handler(exc, context)
