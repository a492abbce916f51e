"""
SQLAlchemy ORM models for the credential store.

Users themselves live in the managed backend's identity service; these
tables only reference them by ``local_user_id``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class LinkedAccount(Base):
    __tablename__ = "linked_accounts"
    __table_args__ = (
        UniqueConstraint("local_user_id", "provider", name="uq_linked_accounts_user_provider"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    local_user_id = Column(UUID(as_uuid=True), nullable=False)
    provider = Column(String(32), nullable=False)
    provider_user_id = Column(String(256), nullable=False)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    expires_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class PendingAuthorization(Base):
    __tablename__ = "oauth_pending_authorizations"
    __table_args__ = (
        Index("ix_oauth_pending_expires_at", "expires_at"),
    )

    state = Column(String(256), primary_key=True)
    local_user_id = Column(UUID(as_uuid=True), nullable=False)
    provider = Column(String(32), nullable=False)
    code_verifier = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    expires_at = Column(DateTime(timezone=True), nullable=False)
    consumed_at = Column(DateTime(timezone=True))
