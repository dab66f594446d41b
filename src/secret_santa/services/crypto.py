"""Cryptographic services for Secret Santa chat storage.

Chat content is encrypted with AES-256-GCM before it touches the database.
The stored form is ``base64(nonce || ciphertext || tag)``.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_LENGTH_BYTES = 32
NONCE_LENGTH_BYTES = 12
DECRYPTION_PLACEHOLDER = "[Encrypted message]"

logger = logging.getLogger(__name__)


class DecryptionError(ValueError):
    """Raised when stored ciphertext cannot be authenticated or decoded."""


def decode_encryption_key(value: str) -> bytes:
    """Decode a configured encryption key.

    The key is expected as base64; a value that is not valid base64 is used
    as raw UTF-8 bytes instead.

    Raises:
        ValueError: If the resulting key is not exactly 32 bytes
    """
    try:
        key = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Encryption key is not valid base64, using it as raw bytes")
        key = value.encode()

    if len(key) != KEY_LENGTH_BYTES:
        raise ValueError(
            f"Encryption key must be exactly {KEY_LENGTH_BYTES} bytes, got {len(key)} bytes. "
            "Generate one with: openssl rand -base64 32"
        )
    return key


class CryptoService:
    """Service handling encryption of chat messages at rest."""

    @staticmethod
    def _cipher(key: bytes) -> AESGCM:
        if len(key) != KEY_LENGTH_BYTES:
            raise ValueError(f"Encryption key must be {KEY_LENGTH_BYTES} bytes for AES-256")
        return AESGCM(key)

    @staticmethod
    def encrypt_message(plaintext: str, key: bytes) -> str:
        """Encrypt a chat message.

        Args:
            plaintext: Message text to encrypt
            key: 32-byte AES key

        Returns:
            Base64-encoded nonce followed by the authenticated ciphertext

        Raises:
            ValueError: If the key has the wrong size
        """
        cipher = CryptoService._cipher(key)
        nonce = secrets.token_bytes(NONCE_LENGTH_BYTES)
        sealed = cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    @staticmethod
    def decrypt_message(ciphertext: str, key: bytes) -> str:
        """Decrypt a message produced by :meth:`encrypt_message`.

        Args:
            ciphertext: Base64-encoded stored content
            key: 32-byte AES key

        Returns:
            The original plaintext

        Raises:
            ValueError: If the key has the wrong size
            DecryptionError: If the payload is malformed or fails authentication
        """
        cipher = CryptoService._cipher(key)
        try:
            data = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError) as err:
            raise DecryptionError(f"Invalid base64 encoding: {err}") from err

        if len(data) < NONCE_LENGTH_BYTES:
            raise DecryptionError("Ciphertext too short")

        nonce, sealed = data[:NONCE_LENGTH_BYTES], data[NONCE_LENGTH_BYTES:]
        try:
            plaintext = cipher.decrypt(nonce, sealed, None)
        except InvalidTag as err:
            raise DecryptionError("Ciphertext failed authentication") from err

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as err:
            raise DecryptionError("Decrypted payload is not UTF-8") from err

    @staticmethod
    def decrypt_or_placeholder(ciphertext: str, key: bytes) -> str:
        """Decrypt a stored message, substituting a placeholder on failure."""
        try:
            return CryptoService.decrypt_message(ciphertext, key)
        except ValueError as err:
            logger.warning("Failed to decrypt stored message: %s", err)
            return DECRYPTION_PLACEHOLDER
