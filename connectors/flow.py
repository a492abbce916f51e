"""
Garmin account-linking flow.

  initiate  → PKCE pair + state, pending record, authorization URL
  callback  → parse provider redirect, hand off to the client exchange page
  exchange  → consume pending record, trade code for tokens, upsert link
  disconnect→ best-effort deregistration, unconditional local delete
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from sqlalchemy.ext.asyncio import AsyncSession

from auth.identity import BackendIdentity
from config.settings import Settings
from connectors.base import BaseConnector
from connectors.encryption import TokenCipher
from connectors.errors import ConfigurationError, NotFoundError, ValidationError
from connectors.pending import consume_pending, create_pending, purge_expired
from connectors.pkce import generate_pkce, generate_state
from connectors.token_manager import (
    delete_linked_account,
    describe_connection,
    get_active_token,
    get_linked_account,
    upsert_linked_account,
)

logger = logging.getLogger(__name__)

STATE_SEPARATOR = ":"


@dataclass(frozen=True)
class InitiatedAuthorization:
    auth_url: str
    code_verifier: str
    state: str


def compose_state(token: str, local_user_id: str) -> str:
    return f"{token}{STATE_SEPARATOR}{local_user_id}"


def user_id_from_state(state: Optional[str]) -> Optional[str]:
    """Text after the first ``:`` of the state, or None."""
    if not state or STATE_SEPARATOR not in state:
        return None
    return state.split(STATE_SEPARATOR, 1)[1] or None


class LinkFlow:
    """OAuth2 + PKCE linking for one connector, with explicit collaborators."""

    def __init__(
        self,
        settings: Settings,
        connector: BaseConnector,
        identity: BackendIdentity,
        cipher: TokenCipher,
    ) -> None:
        self.settings = settings
        self.connector = connector
        self.identity = identity
        self.cipher = cipher

    def _require_configured(self) -> None:
        if not self.connector.is_configured():
            raise ConfigurationError(
                "Garmin configuration missing (GARMIN_CLIENT_ID / GARMIN_CLIENT_SECRET)."
            )

    # ── Authorization Initiator ────────────────────────────────────────

    async def initiate(self, session: AsyncSession, local_user_id: str) -> InitiatedAuthorization:
        self._require_configured()

        pkce = generate_pkce()
        state = compose_state(generate_state(), local_user_id)

        purged = await purge_expired(session)
        if purged:
            logger.debug("Purged %d stale pending authorizations", purged)
        await create_pending(
            session,
            state=state,
            local_user_id=local_user_id,
            provider=self.connector.provider_name,
            code_verifier=pkce.verifier,
            ttl_seconds=self.settings.oauth_state_ttl_seconds,
            cipher=self.cipher,
        )

        logger.info("Initiated %s authorization for user %s", self.connector.provider_name, local_user_id)
        return InitiatedAuthorization(
            auth_url=self.connector.get_auth_url(state, pkce.challenge),
            code_verifier=pkce.verifier,
            state=state,
        )

    # ── Callback Receiver ──────────────────────────────────────────────

    def callback_redirect(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str],
    ) -> str:
        """
        Return the URL the provider redirect should be forwarded to.

        Failures go to the app home page with an ``error`` query; success
        goes to the client exchange page.  No exchange happens here.
        """
        app_url = self.settings.app_url.rstrip("/")

        if error:
            logger.warning("Provider returned OAuth error: %s", error)
            query = urlencode({"error": "garmin_oauth_error", "message": error})
            return f"{app_url}/?{query}"
        if not code:
            return f"{app_url}/?error=garmin_oauth_missing_code"
        local_user_id = user_id_from_state(state)
        if not local_user_id:
            return f"{app_url}/?error=garmin_oauth_missing_user_id"

        query = urlencode({"code": code, "local_user_id": local_user_id, "state": state})
        return f"{app_url}{self.settings.exchange_page_path}?{query}"

    # ── Token Exchanger ────────────────────────────────────────────────

    async def exchange(
        self,
        session: AsyncSession,
        *,
        code: str,
        state: str,
        code_verifier: Optional[str] = None,
        local_user_id: Optional[str] = None,
    ) -> None:
        """
        Exchange ``code`` for tokens and link the account.

        The pending record for ``state`` is authoritative for both the user
        and the verifier; client-supplied copies must match it.
        """
        self._require_configured()

        pending = await consume_pending(session, state, cipher=self.cipher)
        # Burn the state now so a failure further down cannot roll it back
        await session.commit()
        if pending is None or pending.provider != self.connector.provider_name:
            raise ValidationError("Unknown or expired authorization state.")
        if local_user_id is not None and local_user_id != pending.local_user_id:
            logger.warning(
                "Exchange for state %s… claimed user %s, issued to %s",
                state[:8], local_user_id, pending.local_user_id,
            )
            raise ValidationError("State does not match the user who initiated the authorization.")
        if code_verifier is not None and code_verifier != pending.code_verifier:
            raise ValidationError("Code verifier does not match the authorization state.")

        token_data = await self.connector.exchange_code(code, pending.code_verifier)
        provider_user_id = await self.connector.fetch_account_id(token_data["access_token"])

        if not await self.identity.user_exists(pending.local_user_id):
            raise NotFoundError("Local user not found.")

        await upsert_linked_account(
            session,
            local_user_id=pending.local_user_id,
            provider=self.connector.provider_name,
            provider_user_id=provider_user_id,
            token_data=token_data,
            cipher=self.cipher,
        )

    # ── Disconnector ───────────────────────────────────────────────────

    async def disconnect(self, session: AsyncSession, local_user_id: str) -> None:
        provider = self.connector.provider_name
        account = await get_linked_account(session, local_user_id, provider)

        if account is not None and account.access_token:
            token = await get_active_token(session, local_user_id, self.connector, cipher=self.cipher)
            revoked = await self.connector.revoke_token(token or self.cipher.decrypt(account.access_token))
            if not revoked:
                logger.warning("%s deregistration failed for user %s; deleting locally", provider, local_user_id)

        deleted = await delete_linked_account(session, local_user_id, provider)
        logger.info("Disconnected %s for user %s (row deleted: %s)", provider, local_user_id, deleted)

    # ── Status ─────────────────────────────────────────────────────────

    async def status(self, session: AsyncSession, local_user_id: str) -> Dict[str, Any]:
        provider = self.connector.provider_name
        account = await get_linked_account(session, local_user_id, provider)
        return describe_connection(account, provider)
