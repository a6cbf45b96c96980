import base64
import binascii
import hashlib
from typing import Union

import nacl.secret
import nacl.utils
from nacl.exceptions import CryptoError

from signsmith.src.errors import LocalStoreError

KEY_SIZE = nacl.secret.SecretBox.KEY_SIZE
NONCE_SIZE = nacl.secret.SecretBox.NONCE_SIZE


def normalize_key(key: Union[str, bytes]) -> bytes:
    """Keys of any length are hashed down to the 32 bytes SecretBox expects"""
    if isinstance(key, str):
        key = key.encode("utf-8")
    if len(key) == KEY_SIZE:
        return key
    return hashlib.sha256(key).digest()


def encrypt(data: bytes, key: Union[str, bytes]) -> str:
    """Encrypt bytes, returning base64 of nonce + ciphertext"""
    box = nacl.secret.SecretBox(normalize_key(key))
    nonce = nacl.utils.random(NONCE_SIZE)
    encrypted = box.encrypt(data, nonce)
    return base64.b64encode(bytes(encrypted)).decode("ascii")


def decrypt(encoded: Union[str, bytes], key: Union[str, bytes]) -> bytes:
    box = nacl.secret.SecretBox(normalize_key(key))
    try:
        payload = base64.b64decode(encoded, validate=True)
        if len(payload) <= NONCE_SIZE:
            raise ValueError("payload too short")
        return box.decrypt(payload[NONCE_SIZE:], payload[:NONCE_SIZE])
    except (CryptoError, ValueError, binascii.Error):
        raise LocalStoreError(
            "Failed to decrypt certificate",
            "Check that CERTIFICATE_ENCRYPTION_KEY matches the key used to encrypt it.",
        ) from None
