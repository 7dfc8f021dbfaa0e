"""Symmetric encryption of backup payloads.

Payloads are encrypted with AES in CBC mode. The random IV is prepended to
the ciphertext and the pair is base64-encoded, so a sealed payload is
printable text.
"""

import base64
import binascii
import logging
import os
from dataclasses import dataclass
from typing import Dict, List

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CIPHER = "aes-256-cbc"


@dataclass(frozen=True)
class CipherSpec:
    """Key and IV requirements of a supported cipher."""
    name: str
    key_length: int
    iv_length: int = 16
    block_size: int = 128


SUPPORTED_CIPHERS: Dict[str, CipherSpec] = {
    "aes-128-cbc": CipherSpec("aes-128-cbc", key_length=16),
    "aes-192-cbc": CipherSpec("aes-192-cbc", key_length=24),
    "aes-256-cbc": CipherSpec("aes-256-cbc", key_length=32),
}


def supported_ciphers() -> List[str]:
    """Names of the ciphers that can be configured."""
    return sorted(SUPPORTED_CIPHERS)


def get_cipher_spec(cipher: str) -> CipherSpec:
    """Look up a cipher by name, raising ConfigurationError if unsupported."""
    spec = SUPPORTED_CIPHERS.get(cipher.lower())
    if spec is None:
        raise ConfigurationError(
            f"Unsupported cipher '{cipher}'; expected one of {', '.join(supported_ciphers())}",
            details={"cipher": cipher},
        )
    return spec


def validate_key(cipher: str, key: bytes) -> CipherSpec:
    """Check that ``key`` has exactly the length ``cipher`` requires."""
    spec = get_cipher_spec(cipher)
    if not isinstance(key, (bytes, bytearray)):
        raise ConfigurationError("Encryption key must be bytes")
    if len(key) != spec.key_length:
        raise ConfigurationError(
            f"Invalid key length for {spec.name}: expected {spec.key_length} bytes, got {len(key)}",
            details={"cipher": spec.name, "expected": spec.key_length, "actual": len(key)},
        )
    return spec


def generate_key(cipher: str = DEFAULT_CIPHER) -> bytes:
    """Generate a random key of the length ``cipher`` requires."""
    return os.urandom(get_cipher_spec(cipher).key_length)


def encode_key(key: bytes) -> str:
    """Encode a raw key for transport in configuration files."""
    return base64.b64encode(key).decode("ascii")


def decode_key(encoded: str) -> bytes:
    """Decode a key produced by encode_key."""
    try:
        return base64.b64decode(encoded.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError(f"Encryption key is not valid base64: {e}") from e


class EncryptionManager:
    """Encrypts and decrypts payloads with one cipher and key."""

    def __init__(self, cipher: str, key: bytes):
        self.spec = validate_key(cipher, key)
        self._key = bytes(key)

    @property
    def cipher(self) -> str:
        return self.spec.name

    def _cipher(self, iv: bytes) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CBC(iv))

    def encrypt(self, data: bytes) -> bytes:
        """Encrypt ``data`` and return base64(IV || ciphertext)."""
        iv = os.urandom(self.spec.iv_length)

        padder = padding.PKCS7(self.spec.block_size).padder()
        padded = padder.update(data) + padder.finalize()

        encryptor = self._cipher(iv).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        logger.debug(f"Encrypted {len(data)} bytes with {self.spec.name}")
        return base64.b64encode(iv + ciphertext)

    def decrypt(self, data: bytes) -> bytes:
        """Reverse encrypt.

        Raises:
            ValueError: if the payload is malformed or the key is wrong
        """
        try:
            raw = base64.b64decode(data, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Encrypted payload is not valid base64: {e}") from e

        iv_length = self.spec.iv_length
        if len(raw) <= iv_length or (len(raw) - iv_length) % (self.spec.block_size // 8):
            raise ValueError("Encrypted payload has an invalid length")

        iv, ciphertext = raw[:iv_length], raw[iv_length:]
        decryptor = self._cipher(iv).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(self.spec.block_size).unpadder()
        try:
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise ValueError("Decryption failed: wrong key or corrupted payload") from e
