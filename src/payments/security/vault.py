"""Credential vault: authenticated encryption for secrets at rest.

AES-256-GCM with a 32-byte key supplied as 64 hex characters. Each
ciphertext is stored as ``base64(IV || tag || ciphertext)`` with a fresh
16-byte IV, so encrypting the same plaintext twice yields different output.
Tampering, truncation or a wrong key all surface as ``VaultError``; nothing
decrypts to garbage silently.
"""

import base64
import binascii
import json
import os
import re
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from payments.config import get_settings
from payments.errors import ConfigurationError, VaultError

IV_LENGTH = 16
TAG_LENGTH = 16
_MIN_CIPHERTEXT = 16

_HEX_KEY = re.compile(r"[0-9a-fA-F]{64}")


def generate_key() -> str:
    """Return a new random key as 64 hex characters, suitable for ENCRYPTION_KEY."""
    return os.urandom(32).hex()


class CredentialVault:
    def __init__(self, key_hex: str | None) -> None:
        if not key_hex:
            raise ConfigurationError("ENCRYPTION_KEY environment variable not set")
        if not _HEX_KEY.fullmatch(key_hex):
            raise ConfigurationError("ENCRYPTION_KEY must be 64 hex characters (32 bytes)")
        self._aead = AESGCM(bytes.fromhex(key_hex))

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_LENGTH)
        # AESGCM appends the tag to the ciphertext; the stored layout puts it first
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(iv + tag + ciphertext).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            combined = base64.b64decode(token, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise VaultError("Decryption failed: input is not valid base64") from exc

        if len(combined) < IV_LENGTH + TAG_LENGTH:
            raise VaultError("Decryption failed: input is too short")

        iv = combined[:IV_LENGTH]
        tag = combined[IV_LENGTH : IV_LENGTH + TAG_LENGTH]
        ciphertext = combined[IV_LENGTH + TAG_LENGTH :]

        try:
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as exc:
            raise VaultError("Decryption failed: authentication tag mismatch") from exc

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise VaultError("Decryption failed: plaintext is not UTF-8") from exc

    def encrypt_json(self, data: Any) -> str:
        return self.encrypt(json.dumps(data, separators=(",", ":"), sort_keys=True))

    def decrypt_json(self, token: str) -> Any:
        decrypted = self.decrypt(token)
        try:
            return json.loads(decrypted)
        except json.JSONDecodeError as exc:
            raise VaultError("Decrypted value is not valid JSON") from exc

    def encrypt_credentials(self, credentials: dict[str, Any]) -> str:
        if not credentials:
            raise VaultError("Cannot encrypt empty credentials")
        return self.encrypt_json(credentials)

    def decrypt_credentials(self, token: str) -> dict[str, Any]:
        if not token:
            raise VaultError("Cannot decrypt empty credentials")
        return self.decrypt_json(token)

    @staticmethod
    def is_encrypted(value: str) -> bool:
        """Heuristic: canonical base64 long enough to hold IV, tag and a block of data."""
        if not value:
            return False
        try:
            decoded = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            return False
        return (
            len(decoded) >= IV_LENGTH + TAG_LENGTH + _MIN_CIPHERTEXT
            and base64.b64encode(decoded).decode("ascii") == value
        )


_current_vault: CredentialVault | None = None


def get_vault() -> CredentialVault:
    """Return the vault keyed from the active settings."""
    global _current_vault
    if _current_vault is None:
        _current_vault = CredentialVault(get_settings().encryption_key)
    return _current_vault


def set_vault(vault: CredentialVault) -> None:
    global _current_vault
    _current_vault = vault


def reset_vault() -> None:
    global _current_vault
    _current_vault = None
