"""
Token encryption for credentials kept at rest.

Every stored secret goes through :class:`TokenCipher` before it enters the
account store. The envelope is three colon separated hex fields,
``nonce:tag:ciphertext``, so a stored value carries everything needed to
decrypt it apart from the key.
"""
from __future__ import annotations

import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from career_os.core.errors import ConfigurationMissing

KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16

logger = logging.getLogger(__name__)


class TokenDecryptionError(Exception):
    """Base error for envelopes that cannot be turned back into plaintext."""


class InvalidFormat(TokenDecryptionError):
    """Raised when an envelope is not three well-formed hex fields."""


class IntegrityFailure(TokenDecryptionError):
    """Raised when tag verification fails (tampered data or wrong key)."""


class TokenCipher:
    """AES-256-GCM encryption of OAuth tokens."""

    def __init__(self, key: bytes):
        if len(key) != KEY_BYTES:
            raise ConfigurationMissing(f"ENCRYPTION_KEY must decode to {KEY_BYTES} bytes")
        self._aead = AESGCM(key)

    @classmethod
    def from_base64(cls, encoded_key: str) -> "TokenCipher":
        """Build a cipher from the base64 encoded secret held in the environment."""

        if not encoded_key:
            raise ConfigurationMissing("ENCRYPTION_KEY is not defined")
        try:
            key = base64.b64decode(encoded_key, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ConfigurationMissing("ENCRYPTION_KEY is not valid base64") from exc
        return cls(key)

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_BYTES)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        # cryptography appends the tag to the ciphertext
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return f"{nonce.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, envelope: str) -> str:
        parts = envelope.split(":")
        if len(parts) != 3:
            raise InvalidFormat("Invalid encrypted text format")

        try:
            nonce, tag, ciphertext = (bytes.fromhex(part) for part in parts)
        except ValueError as exc:
            raise InvalidFormat("Encrypted text fields must be hex encoded") from exc
        if len(nonce) != NONCE_BYTES or len(tag) != TAG_BYTES:
            raise InvalidFormat("Encrypted text has an unexpected nonce or tag length")

        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            logger.error("Token integrity check failed")
            raise IntegrityFailure("Encrypted token failed integrity verification") from exc
        return plaintext.decode("utf-8")
