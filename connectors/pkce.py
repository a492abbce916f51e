"""
PKCE (RFC 7636) verifier / challenge and anti-CSRF state generation.

All randomness comes from ``secrets`` (the OS CSPRNG).
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from dataclasses import dataclass

_ENTROPY_BYTES = 32


@dataclass(frozen=True)
class PKCEPair:
    verifier: str
    challenge: str


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def generate_code_verifier() -> str:
    # 32 bytes -> 43 chars, the RFC 7636 minimum length
    return _b64url(secrets.token_bytes(_ENTROPY_BYTES))


def code_challenge(verifier: str) -> str:
    """S256 challenge: BASE64URL(SHA256(verifier)) without padding."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_pkce() -> PKCEPair:
    verifier = generate_code_verifier()
    return PKCEPair(verifier=verifier, challenge=code_challenge(verifier))


def generate_state() -> str:
    """Opaque state token, independent of the verifier."""
    return _b64url(secrets.token_bytes(_ENTROPY_BYTES))
