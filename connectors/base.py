"""
BaseConnector — abstract interface for OAuth2 + PKCE wearable connectors.

A provider (Garmin, …) subclasses this and implements the HTTP calls
against its own endpoints.  Connectors are stateless apart from the
settings they are built with.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict


class BaseConnector(ABC):
    """Abstract base for all OAuth2 connectors."""

    # ── Identity ────────────────────────────────────────────────────────
    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique slug stored on ``LinkedAccount.provider``: 'garmin'."""
        ...

    # ── OAuth flow ──────────────────────────────────────────────────────

    @abstractmethod
    def get_auth_url(self, state: str, code_challenge: str) -> str:
        """
        Build the provider's OAuth2 authorization URL.

        Parameters
        ----------
        state : str
            Composite state string (random token + ``:`` + local user id).
        code_challenge : str
            S256 PKCE challenge for the verifier held server-side.
        """
        ...

    @abstractmethod
    async def exchange_code(self, code: str, code_verifier: str) -> Dict[str, Any]:
        """
        Exchange the authorization code for tokens.

        Returns
        -------
        dict with keys: access_token, refresh_token, expires_in
        """
        ...

    @abstractmethod
    async def fetch_account_id(self, access_token: str) -> str:
        """Return the provider-side user identifier for ``access_token``."""
        ...

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """
        Refresh an expired access token.

        Returns
        -------
        dict with keys: access_token, expires_in, (optional) refresh_token
        """
        ...

    async def revoke_token(self, access_token: str) -> bool:
        """
        Deregister / revoke at the provider (best effort).
        Returns True on success, False otherwise; never raises.
        """
        return False

    # ── Helpers ─────────────────────────────────────────────────────────

    def is_configured(self) -> bool:
        """Return True if client id / secret are present."""
        return True
