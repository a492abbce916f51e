"""
Connector error taxonomy.

Every failure in the OAuth flow is raised as a ``ConnectorError`` subclass
carrying the HTTP status it maps to.  ``register_error_handlers`` in
``api/errors.py`` renders them as ``{"error": message}``.
"""

from __future__ import annotations

from fastapi import status


class ConnectorError(Exception):
    """Base class; ``message`` is safe to show to the caller."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ConnectorError):
    """Required secrets are missing. Fatal, not retryable."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class UnauthorizedError(ConnectorError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ValidationError(ConnectorError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ConnectorError):
    status_code = status.HTTP_404_NOT_FOUND


class UpstreamError(ConnectorError):
    """
    Provider HTTP failure or malformed provider response.

    ``detail`` holds the provider's raw reply for the server log; only
    ``message`` reaches the caller.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, detail: str = "") -> None:
        super().__init__(message)
        self.detail = detail


class PersistenceError(ConnectorError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
