"""
Pending-authorization store — server-side record of an initiated OAuth flow.

A row is written when the user starts linking and consumed exactly once
when the authorization code is exchanged.  It binds the composite
``state`` to the user who initiated the flow and to the PKCE verifier,
so the exchange step never has to trust either value from the client.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from connectors.encryption import TokenCipher
from database.models import PendingAuthorization

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingRecord:
    state: str
    local_user_id: str
    provider: str
    code_verifier: str


def to_uuid(value: str | uuid.UUID) -> uuid.UUID:
    return uuid.UUID(value) if isinstance(value, str) else value


async def create_pending(
    session: AsyncSession,
    *,
    state: str,
    local_user_id: str,
    provider: str,
    code_verifier: str,
    ttl_seconds: int,
    cipher: TokenCipher,
) -> None:
    """Persist a pending authorization that expires after ``ttl_seconds``."""
    now = datetime.now(timezone.utc)
    session.add(
        PendingAuthorization(
            state=state,
            local_user_id=to_uuid(local_user_id),
            provider=provider,
            code_verifier=cipher.encrypt(code_verifier),
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
    )
    await session.flush()
    logger.debug("Pending %s authorization %s… for user %s", provider, state[:8], local_user_id)


async def consume_pending(
    session: AsyncSession,
    state: str,
    *,
    cipher: TokenCipher,
) -> Optional[PendingRecord]:
    """
    Atomically mark the pending authorization for ``state`` as consumed.

    Returns None when the state is unknown, expired or already used.  A
    single conditional UPDATE makes concurrent exchanges of the same state
    race-free: only one of them gets a row back.
    """
    now = datetime.now(timezone.utc)
    result = await session.execute(
        update(PendingAuthorization)
        .where(
            PendingAuthorization.state == state,
            PendingAuthorization.consumed_at.is_(None),
            PendingAuthorization.expires_at > now,
        )
        .values(consumed_at=now)
        .returning(
            PendingAuthorization.state,
            PendingAuthorization.local_user_id,
            PendingAuthorization.provider,
            PendingAuthorization.code_verifier,
        )
    )
    row = result.one_or_none()
    if row is None:
        return None
    return PendingRecord(
        state=row.state,
        local_user_id=str(row.local_user_id),
        provider=row.provider,
        code_verifier=cipher.decrypt(row.code_verifier),
    )


async def purge_expired(session: AsyncSession) -> int:
    """Delete expired or consumed pending authorizations. Returns count."""
    result = await session.execute(
        delete(PendingAuthorization).where(
            or_(
                PendingAuthorization.expires_at <= datetime.now(timezone.utc),
                PendingAuthorization.consumed_at.is_not(None),
            )
        )
    )
    return result.rowcount or 0
