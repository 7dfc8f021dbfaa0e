"""
Checksum computation and verification of stored artifacts.

Checksums are computed over the exact bytes that are persisted, i.e. after
compression and encryption, so corruption of the stored object is detected
before anything is decrypted or replayed.
"""

import hashlib
import hmac
import logging
from typing import List

from ..core.exceptions import ConfigurationError, IntegrityError

logger = logging.getLogger(__name__)


class ChecksumVerifier:
    """Computes and verifies hex digests of byte payloads."""

    SUPPORTED_ALGORITHMS: List[str] = ['md5', 'sha1', 'sha256', 'sha512']
    DEFAULT_ALGORITHM = 'sha256'

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM):
        algorithm = algorithm.lower()
        if algorithm not in self.SUPPORTED_ALGORITHMS:
            raise ConfigurationError(
                f"Unsupported checksum algorithm: {algorithm}. "
                f"Supported: {', '.join(self.SUPPORTED_ALGORITHMS)}"
            )
        self.algorithm = algorithm

    def compute(self, data: bytes) -> str:
        """Hex digest of ``data``."""
        return hashlib.new(self.algorithm, data).hexdigest()

    @staticmethod
    def _same_digest(actual: str, expected: str) -> bool:
        # Compared as bytes: compare_digest rejects non-ASCII str operands.
        return hmac.compare_digest(actual.encode("ascii"), expected.strip().lower().encode("utf-8"))

    def matches(self, data: bytes, expected: str) -> bool:
        return self._same_digest(self.compute(data), expected)

    def verify(self, data: bytes, expected: str) -> str:
        """
        Check ``data`` against ``expected`` and return the digest.

        Raises:
            IntegrityError: if the digests differ
        """
        actual = self.compute(data)
        if not self._same_digest(actual, expected):
            logger.error(f"Checksum mismatch: expected {expected}, got {actual}")
            raise IntegrityError(
                f"Checksum mismatch ({self.algorithm})",
                expected=expected,
                actual=actual,
            )
        return actual
