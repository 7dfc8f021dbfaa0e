"""Compression of backup payloads with gzip, bzip2 or lzma."""

import asyncio
import bz2
import gzip
import logging
import lzma
import time
import zlib
from dataclasses import dataclass
from enum import Enum
from typing import Union

from ..core.exceptions import ConfigurationError, StorageError
from ..models.config import CompressionMethod

logger = logging.getLogger(__name__)


class CompressionLevel(Enum):
    """Compression levels."""
    FASTEST = 1
    FAST = 3
    BALANCED = 6
    BEST = 9


FORMAT_EXTENSIONS = {
    CompressionMethod.GZIP: "gz",
    CompressionMethod.BZIP2: "bz2",
    CompressionMethod.LZMA: "xz",
}

_LZMA_PRESETS = {
    CompressionLevel.FASTEST: 0,
    CompressionLevel.FAST: 2,
    CompressionLevel.BALANCED: 6,
    CompressionLevel.BEST: 9,
}


@dataclass
class CompressionResult:
    """Result of a compression operation."""
    data: bytes
    original_size: int
    compressed_size: int
    duration_ms: float
    method: CompressionMethod

    @property
    def compression_ratio(self) -> float:
        if not self.original_size:
            return 0.0
        return 1 - self.compressed_size / self.original_size


def _as_method(method: Union[str, CompressionMethod]) -> CompressionMethod:
    try:
        return CompressionMethod(method)
    except ValueError as e:
        raise ConfigurationError(f"Unsupported compression method: {method}") from e


def extension_for(method: Union[str, CompressionMethod]) -> str:
    """File suffix (without dot) for ``method``."""
    return FORMAT_EXTENSIONS[_as_method(method)]


class Compressor:
    """Compresses and decompresses byte payloads."""

    def __init__(self, level: CompressionLevel = CompressionLevel.BALANCED):
        self.level = level

    def compress_sync(self, data: bytes, method: Union[str, CompressionMethod]) -> CompressionResult:
        """Compress ``data``. Output is deterministic for a given input."""
        method = _as_method(method)
        start_time = time.time()

        if method == CompressionMethod.GZIP:
            # mtime=0 keeps the gzip header free of timestamps.
            compressed = gzip.compress(data, compresslevel=self.level.value, mtime=0)
        elif method == CompressionMethod.BZIP2:
            compressed = bz2.compress(data, compresslevel=self.level.value)
        else:
            compressed = lzma.compress(data, preset=_LZMA_PRESETS[self.level])

        duration_ms = (time.time() - start_time) * 1000
        logger.debug(f"Compressed {len(data)} -> {len(compressed)} bytes with {method.value}")
        return CompressionResult(
            data=compressed,
            original_size=len(data),
            compressed_size=len(compressed),
            duration_ms=duration_ms,
            method=method,
        )

    def decompress_sync(self, data: bytes, method: Union[str, CompressionMethod]) -> bytes:
        """
        Reverse compress_sync.

        Raises:
            StorageError: if ``data`` is not valid for ``method``
        """
        method = _as_method(method)
        try:
            if method == CompressionMethod.GZIP:
                return gzip.decompress(data)
            elif method == CompressionMethod.BZIP2:
                return bz2.decompress(data)
            else:
                return lzma.decompress(data)
        except (OSError, EOFError, ValueError, zlib.error, lzma.LZMAError) as e:
            raise StorageError(f"Failed to decompress {method.value} payload: {e}") from e

    async def compress(self, data: bytes, method: Union[str, CompressionMethod]) -> CompressionResult:
        return await asyncio.to_thread(self.compress_sync, data, method)

    async def decompress(self, data: bytes, method: Union[str, CompressionMethod]) -> bytes:
        return await asyncio.to_thread(self.decompress_sync, data, method)
