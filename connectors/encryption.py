"""
Token encryption — encrypt / decrypt provider tokens at rest.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from the ``cryptography`` library.
The key comes from ``Settings.token_encryption_key``
(env var: ``TOKEN_ENCRYPTION_KEY``).

If no key is configured, encryption is **disabled** and tokens are stored
as plaintext (with a startup warning).  Generate a key with::

    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from __future__ import annotations

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from config.settings import Settings

logger = logging.getLogger(__name__)


class TokenCipher:
    """Fernet wrapper; a no-op when no key is configured."""

    def __init__(self, key: Optional[str]) -> None:
        self._fernet: Optional[Fernet] = None
        if not key:
            logger.warning(
                "TOKEN_ENCRYPTION_KEY not set — provider tokens will be stored as plaintext."
            )
            return
        # A malformed key is a configuration bug; let it surface at startup.
        self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        logger.info("Token encryption enabled (Fernet/AES-128-CBC)")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenCipher":
        return cls(settings.token_encryption_key)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a token string for database storage.

        Returns the Fernet ciphertext (URL-safe base64), or the plaintext
        unchanged if encryption is disabled.
        """
        if self._fernet is None:
            return plaintext
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a token string read from the database.

        Values written before encryption was enabled are not valid Fernet
        tokens and are returned as-is.
        """
        if self._fernet is None:
            return ciphertext
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            return ciphertext
