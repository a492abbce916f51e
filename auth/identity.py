"""
Identity client for the managed backend's auth service.

Two credential tiers are used:
  • the restricted *anon* key, sent with the caller's bearer token to
    resolve who the caller is;
  • the privileged *service* key, used only server-side for the admin
    user lookup.  It never leaves this process.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from config.settings import Settings
from connectors.errors import ConfigurationError, UnauthorizedError, UpstreamError

logger = logging.getLogger(__name__)


class BackendIdentity:
    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    def _base(self) -> str:
        if not self._settings.backend_configured():
            raise ConfigurationError(
                "Backend configuration missing (BACKEND_URL / BACKEND_ANON_KEY / BACKEND_SERVICE_KEY)."
            )
        return f"{self._settings.backend_url.rstrip('/')}/auth/v1"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.provider_timeout_seconds,
            transport=self._transport,
        )

    @staticmethod
    def _body(resp: httpx.Response) -> dict:
        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamError("Identity service returned an invalid response.", detail=resp.text) from exc
        if not isinstance(body, dict):
            raise UpstreamError("Identity service returned an invalid response.", detail=resp.text)
        return body

    async def get_user_id(self, token: str) -> str:
        """
        Resolve the caller's bearer token to a local user id.

        Raises ``UnauthorizedError`` when the backend rejects the token.
        """
        base = self._base()
        try:
            async with self._client() as client:
                resp = await client.get(
                    f"{base}/user",
                    headers={
                        "apikey": self._settings.backend_anon_key,
                        "Authorization": f"Bearer {token}",
                    },
                )
        except httpx.HTTPError as exc:
            raise UpstreamError("Identity service unavailable.", detail=repr(exc)) from exc

        if resp.status_code in (401, 403):
            raise UnauthorizedError("Unauthorized: invalid or expired token.")
        if not resp.is_success:
            raise UpstreamError(
                "Identity service error.", detail=f"HTTP {resp.status_code}: {resp.text}"
            )
        user_id = self._body(resp).get("id")
        if not user_id:
            raise UnauthorizedError("Unauthorized: invalid or expired token.")
        return str(user_id)

    async def user_exists(self, user_id: str) -> bool:
        """Admin lookup with the service key."""
        base = self._base()
        key = self._settings.backend_service_key
        try:
            async with self._client() as client:
                resp = await client.get(
                    f"{base}/admin/users/{user_id}",
                    headers={"apikey": key, "Authorization": f"Bearer {key}"},
                )
        except httpx.HTTPError as exc:
            raise UpstreamError("Identity service unavailable.", detail=repr(exc)) from exc

        if resp.status_code == 404:
            return False
        if not resp.is_success:
            raise UpstreamError(
                "Identity service error.", detail=f"HTTP {resp.status_code}: {resp.text}"
            )
        return bool(self._body(resp).get("id"))
