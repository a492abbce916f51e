"""
Global middleware.

Every request gets an ``X-Request-ID`` (the caller's, when it sends a
sane one) that the error handlers put in their log lines, so a failed
exchange can be traced from the client back to the provider error.
"""

from __future__ import annotations

import logging
import re
import time
import uuid

from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def request_id_of(request: Request) -> str:
    return getattr(request.state, "request_id", "-")


def register_middleware(app: FastAPI) -> None:
    """Attach app-level middleware."""

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = incoming if _REQUEST_ID_RE.match(incoming) else uuid.uuid4().hex
        request.state.request_id = request_id

        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        # Path only: callback query strings carry authorization codes
        logger.debug(
            "[%s] %s %s → %s (%.3fs)",
            request_id, request.method, request.url.path, response.status_code, elapsed,
        )
        return response
