"""Symmetric encryption of payloads before they leave the machine.

Uses Fernet (AES-128-CBC with HMAC-SHA256) with a key derived from the
configured passphrase.
"""

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

from .exceptions import EncryptionError


def key_for(passphrase: str) -> bytes:
    """Derive the 32-byte key for a passphrase (SHA-256)."""
    return hashlib.sha256(passphrase.encode("utf-8")).digest()


class Encryption:
    """Encrypts and decrypts byte payloads.

    Examples:
        >>> enc = Encryption("correct horse battery staple")
        >>> enc.decrypt(enc.encrypt(b"payload"))
        b'payload'
    """

    def __init__(self, passphrase: str):
        """Initialize with a passphrase.

        Raises:
            EncryptionError: If the passphrase is empty
        """
        if not passphrase:
            raise EncryptionError("passphrase must not be empty")
        self._fernet = Fernet(base64.urlsafe_b64encode(key_for(passphrase)))

    def encrypt(self, data: bytes) -> bytes:
        """Encrypt ``data``. Every call uses a fresh random IV."""
        return self._fernet.encrypt(data)

    def decrypt(self, token: bytes) -> bytes:
        """Decrypt a token produced by :meth:`encrypt`.

        Raises:
            EncryptionError: If the token is corrupt or the passphrase differs
        """
        try:
            return self._fernet.decrypt(token)
        except (InvalidToken, ValueError) as e:
            raise EncryptionError("Decryption failed: invalid token") from e
