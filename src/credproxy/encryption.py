"""
Authenticated encryption for stored secrets.

Secrets are sealed with AES-256-GCM. Each call to encrypt draws a fresh
12-byte nonce, and the stored blob is base64(nonce || ciphertext || tag),
so a blob can be opened with nothing but the key.
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM


NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32


class EncryptionError(Exception):
    """
    Raised when a secret cannot be encrypted or the key is unusable.
    """


class DecryptionError(EncryptionError):
    """
    Raised when a blob is malformed, tampered with, or sealed under a
    different key.
    """


def generate_key() -> str:
    """
    Generate a new random key, base64 encoded for config.json.
    """
    return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode(
        "ascii"
    )


class SecretCipher:
    """
    Encrypts and decrypts secret values with a single process-wide key.
    """

    def __init__(self, key: str):
        try:
            raw_key = base64.b64decode(key, validate=True)
        except (binascii.Error, ValueError) as e:
            raise EncryptionError("Encryption key is not valid base64") from e

        if len(raw_key) != KEY_SIZE:
            raise EncryptionError(
                f"Encryption key must be {KEY_SIZE} bytes, got {len(raw_key)}"
            )

        self._aesgcm = AESGCM(raw_key)

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """
        Open a blob produced by encrypt.

        Raises DecryptionError rather than returning anything but the
        original plaintext.
        """
        try:
            raw = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Ciphertext is not valid base64") from e

        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError("Ciphertext is too short")

        nonce, sealed = raw[:NONCE_SIZE], raw[NONCE_SIZE:]

        try:
            plaintext = self._aesgcm.decrypt(nonce, sealed, None)
        except InvalidTag as e:
            raise DecryptionError(
                "Ciphertext failed authentication (wrong key or tampered)"
            ) from e

        return plaintext.decode("utf-8")
