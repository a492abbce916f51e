"""
Token manager — store / read / refresh / delete per-user provider tokens.

``LinkedAccount`` rows are only ever written through this module.  Tokens
are encrypted with the ``TokenCipher`` before they reach the database and
are never returned to HTTP callers.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from connectors.base import BaseConnector
from connectors.encryption import TokenCipher
from connectors.errors import PersistenceError, UpstreamError
from connectors.pending import to_uuid
from database.models import LinkedAccount

logger = logging.getLogger(__name__)

_REFRESH_MARGIN = timedelta(seconds=120)


async def upsert_linked_account(
    session: AsyncSession,
    *,
    local_user_id: str,
    provider: str,
    provider_user_id: str,
    token_data: Dict[str, Any],
    cipher: TokenCipher,
) -> None:
    """
    Insert or update the user's link in one statement.

    ``ON CONFLICT (local_user_id, provider) DO UPDATE`` keeps at most one
    row per user even when two exchanges race.
    """
    now = datetime.now(timezone.utc)
    values = {
        "provider_user_id": provider_user_id,
        "access_token": cipher.encrypt(token_data["access_token"]),
        "refresh_token": cipher.encrypt(token_data["refresh_token"]),
        "expires_at": now + timedelta(seconds=int(token_data.get("expires_in", 0))),
        "updated_at": now,
    }
    stmt = pg_insert(LinkedAccount).values(
        local_user_id=to_uuid(local_user_id),
        provider=provider,
        created_at=now,
        **values,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[LinkedAccount.local_user_id, LinkedAccount.provider],
        set_=values,
    )
    try:
        await session.execute(stmt)
        await session.flush()
    except SQLAlchemyError as exc:
        logger.error("Linked account upsert failed for user %s: %s", local_user_id, exc)
        raise PersistenceError("Could not save the Garmin connection.") from exc
    logger.info("Stored %s link for user %s (provider user %s)", provider, local_user_id, provider_user_id)


async def get_linked_account(
    session: AsyncSession,
    local_user_id: str,
    provider: str,
) -> Optional[LinkedAccount]:
    try:
        result = await session.execute(
            select(LinkedAccount).where(
                LinkedAccount.local_user_id == to_uuid(local_user_id),
                LinkedAccount.provider == provider,
            )
        )
    except SQLAlchemyError as exc:
        logger.error("Linked account lookup failed for user %s: %s", local_user_id, exc)
        raise PersistenceError("Could not read the Garmin connection.") from exc
    return result.scalar_one_or_none()


async def delete_linked_account(
    session: AsyncSession,
    local_user_id: str,
    provider: str,
) -> bool:
    """Delete the user's link. Returns True if a row was removed."""
    try:
        result = await session.execute(
            delete(LinkedAccount).where(
                LinkedAccount.local_user_id == to_uuid(local_user_id),
                LinkedAccount.provider == provider,
            )
        )
        await session.flush()
    except SQLAlchemyError as exc:
        logger.error("Linked account delete failed for user %s: %s", local_user_id, exc)
        raise PersistenceError("Could not delete the Garmin connection.") from exc
    return bool(result.rowcount)


async def get_active_token(
    session: AsyncSession,
    local_user_id: str,
    connector: BaseConnector,
    *,
    cipher: TokenCipher,
) -> Optional[str]:
    """
    Get a usable access token for the user, refreshing it if needed.

    1. Look up the link.
    2. If the token expires within two minutes, refresh and store the
       (possibly rotated) tokens.
    3. Return the access token, or None if not linked or refresh failed.
    """
    account = await get_linked_account(session, local_user_id, connector.provider_name)
    if account is None:
        return None

    now = datetime.now(timezone.utc)
    if account.expires_at is None or account.expires_at > now + _REFRESH_MARGIN:
        return cipher.decrypt(account.access_token)

    try:
        refreshed = await connector.refresh_access_token(cipher.decrypt(account.refresh_token))
    except UpstreamError as exc:
        logger.warning(
            "Token refresh failed for %s/%s: %s %s",
            connector.provider_name, local_user_id, exc.message, exc.detail,
        )
        return None

    account.access_token = cipher.encrypt(refreshed["access_token"])
    # Some providers rotate refresh tokens
    if refreshed.get("refresh_token"):
        account.refresh_token = cipher.encrypt(refreshed["refresh_token"])
    account.expires_at = now + timedelta(seconds=int(refreshed.get("expires_in", 0)))
    account.updated_at = now
    try:
        await session.flush()
    except SQLAlchemyError as exc:
        raise PersistenceError("Could not save refreshed Garmin tokens.") from exc

    logger.info("Refreshed %s token for user %s", connector.provider_name, local_user_id)
    return refreshed["access_token"]


def describe_connection(account: Optional[LinkedAccount], provider: str) -> Dict[str, Any]:
    """Client-safe view of a link (no token material)."""
    if account is None:
        return {"connected": False, "provider": provider}
    return {
        "connected": True,
        "provider": provider,
        "provider_user_id": account.provider_user_id,
        "connected_at": account.created_at.isoformat() if account.created_at else None,
        "updated_at": account.updated_at.isoformat() if account.updated_at else None,
    }
