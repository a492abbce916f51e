"""
Exception handlers — every failure leaves as ``{"error": message}``.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from api.middleware import request_id_of
from connectors.errors import ConnectorError, UpstreamError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ConnectorError)
    async def connector_error(request: Request, exc: ConnectorError) -> JSONResponse:
        rid = request_id_of(request)
        if isinstance(exc, UpstreamError):
            logger.error(
                "[%s] %s %s: upstream: %s %s",
                rid, request.method, request.url.path, exc.message, exc.detail,
            )
        elif exc.status_code >= 500:
            logger.error("[%s] %s %s: %s", rid, request.method, request.url.path, exc.message)
        else:
            logger.info(
                "[%s] %s %s: %s: %s",
                rid, request.method, request.url.path, type(exc).__name__, exc.message,
            )
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Malformed JSON reports an integer position as the last loc element
        fields = sorted(
            {
                err["loc"][-1]
                for err in exc.errors()
                if err.get("loc") and isinstance(err["loc"][-1], str) and err["loc"][-1] != "body"
            }
        )
        message = "Invalid request body."
        if fields:
            message = f"Missing or invalid parameters ({', '.join(fields)})."
        return JSONResponse({"error": message}, status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "[%s] Unhandled error on %s %s", request_id_of(request), request.method, request.url.path
        )
        return JSONResponse(
            {"error": "Internal server error."},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
