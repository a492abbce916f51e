"""
GarminConnector — OAuth2 authorization code + PKCE for the Garmin Health API.

Endpoints:
  • authorize     https://connect.garmin.com/oauth2Confirm
  • token         https://diauth.garmin.com/di-oauth2-service/oauth/token
  • user id       {api_base}/user/id
  • deregister    {api_base}/user/registration  (DELETE)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from config.settings import Settings
from connectors.base import BaseConnector
from connectors.errors import UpstreamError

logger = logging.getLogger(__name__)

_DEFAULT_EXPIRES_IN = 86400


class GarminConnector(BaseConnector):
    """OAuth2 connector for Garmin Connect."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "garmin"

    def is_configured(self) -> bool:
        return self._settings.garmin_configured()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.provider_timeout_seconds,
            transport=self._transport,
        )

    def get_auth_url(self, state: str, code_challenge: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self._settings.garmin_client_id,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "redirect_uri": self._settings.redirect_uri,
            "state": state,
        }
        return f"{self._settings.garmin_auth_url}?{urlencode(params)}"

    async def _post_token(self, form: Dict[str, str], what: str) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                resp = await client.post(
                    self._settings.garmin_token_url,
                    data=form,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Garmin {what} failed.", detail=repr(exc)) from exc

        if not resp.is_success:
            raise UpstreamError(
                f"Garmin {what} failed.",
                detail=f"HTTP {resp.status_code}: {resp.text}",
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamError(
                f"Garmin {what} returned an invalid response.", detail=resp.text
            ) from exc
        if not isinstance(data, dict):
            raise UpstreamError(f"Garmin {what} returned an invalid response.", detail=resp.text)
        return data

    async def exchange_code(self, code: str, code_verifier: str) -> Dict[str, Any]:
        """Trade the authorization code + verifier for access / refresh tokens."""
        data = await self._post_token(
            {
                "grant_type": "authorization_code",
                "client_id": self._settings.garmin_client_id,
                "client_secret": self._settings.garmin_client_secret,
                "code": code,
                "code_verifier": code_verifier,
                "redirect_uri": self._settings.redirect_uri,
            },
            "token exchange",
        )
        if not data.get("access_token") or not data.get("refresh_token"):
            raise UpstreamError(
                "Garmin tokens missing from response.",
                detail=f"keys={sorted(data)}",
            )
        return {
            "access_token": data["access_token"],
            "refresh_token": data["refresh_token"],
            "expires_in": data.get("expires_in", _DEFAULT_EXPIRES_IN),
        }

    async def fetch_account_id(self, access_token: str) -> str:
        try:
            async with self._client() as client:
                resp = await client.get(
                    f"{self._settings.garmin_api_base}/user/id",
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as exc:
            raise UpstreamError("Could not fetch Garmin user id.", detail=repr(exc)) from exc

        if not resp.is_success:
            raise UpstreamError(
                "Could not fetch Garmin user id.",
                detail=f"HTTP {resp.status_code}: {resp.text}",
            )
        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamError("Could not fetch Garmin user id.", detail=resp.text) from exc
        user_id = body.get("userId") if isinstance(body, dict) else None
        if not user_id:
            raise UpstreamError("Garmin user id missing from response.", detail=resp.text)
        return str(user_id)

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """Use the refresh token to get a new access token (Garmin rotates it)."""
        data = await self._post_token(
            {
                "grant_type": "refresh_token",
                "client_id": self._settings.garmin_client_id,
                "client_secret": self._settings.garmin_client_secret,
                "refresh_token": refresh_token,
            },
            "token refresh",
        )
        if not data.get("access_token"):
            raise UpstreamError("Garmin access token missing from refresh response.")
        return {
            "access_token": data["access_token"],
            "refresh_token": data.get("refresh_token"),
            "expires_in": data.get("expires_in", _DEFAULT_EXPIRES_IN),
        }

    async def revoke_token(self, access_token: str) -> bool:
        """Delete the user's Garmin registration. Non-2xx is tolerated."""
        try:
            async with self._client() as client:
                resp = await client.delete(
                    f"{self._settings.garmin_api_base}/user/registration",
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError:
            logger.warning("Garmin deregistration call failed", exc_info=True)
            return False
        if not resp.is_success:
            logger.warning("Garmin deregistration returned HTTP %s", resp.status_code)
            return False
        return True
