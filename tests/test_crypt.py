"""Tests for payload encryption."""

import pytest

from docsync.crypt import Encryption, key_for
from docsync.exceptions import EncryptionError


class TestEncryption:
    """Tests for Encryption."""

    def test_key_is_32_bytes(self):
        assert len(key_for("secret")) == 32
        assert key_for("secret") == key_for("secret")
        assert key_for("secret") != key_for("Secret")

    def test_decrypt_recovers_plaintext(self):
        enc = Encryption("secret")
        assert enc.decrypt(enc.encrypt(b"some bytes\x00\xff")) == b"some bytes\x00\xff"

    def test_ciphertext_differs_per_call(self):
        enc = Encryption("secret")
        assert enc.encrypt(b"same") != enc.encrypt(b"same")

    def test_ciphertext_hides_plaintext(self):
        assert b"bank llc" not in Encryption("secret").encrypt(b"bank llc")

    def test_same_passphrase_new_instance(self):
        token = Encryption("secret").encrypt(b"payload")
        assert Encryption("secret").decrypt(token) == b"payload"

    def test_wrong_passphrase(self):
        token = Encryption("secret").encrypt(b"payload")
        with pytest.raises(EncryptionError, match="invalid token"):
            Encryption("other").decrypt(token)

    def test_corrupt_token(self):
        with pytest.raises(EncryptionError):
            Encryption("secret").decrypt(b"not a token")

    def test_empty_passphrase(self):
        with pytest.raises(EncryptionError):
            Encryption("")
