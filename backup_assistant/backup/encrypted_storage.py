"""Storage decorator that encrypts payloads before they reach the inner adapter."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..core.exceptions import StorageError
from ..security.encryption import EncryptionManager
from .storage import Metadata, StorageAdapter

logger = logging.getLogger(__name__)


class EncryptingStorageDecorator(StorageAdapter):
    """
    Encrypts on store and decrypts on retrieve around any StorageAdapter.

    The decorator owns its inner adapter. Objects whose metadata does not
    mark them as encrypted are returned unchanged, so artifacts written
    before encryption was enabled stay readable.

    Raises:
        ConfigurationError: at construction, for an unsupported cipher or a
            key of the wrong length
    """

    def __init__(self, inner: StorageAdapter, key: bytes, cipher: str = "aes-256-cbc"):
        self.inner = inner
        self._encryption = EncryptionManager(cipher, key)

    @property
    def cipher(self) -> str:
        return self._encryption.cipher

    def _encrypt(self, data: bytes, metadata: Optional[Metadata]) -> Tuple[bytes, Metadata]:
        encrypted = self._encryption.encrypt(data)
        metadata = dict(metadata or {})
        metadata.update({
            "encrypted": True,
            "cipher": self.cipher,
            "encrypted_at": datetime.now().isoformat(),
            "original_size": len(data),
            "encrypted_size": len(encrypted),
        })
        return encrypted, metadata

    def _decrypt(self, object_id: str, data: bytes, metadata: Metadata) -> bytes:
        if not metadata.get("encrypted"):
            return data

        stored_cipher = metadata.get("cipher", self.cipher)
        if stored_cipher != self.cipher:
            raise StorageError(
                f"Cannot decrypt {object_id}: stored with {stored_cipher}, configured for {self.cipher}"
            )
        try:
            return self._encryption.decrypt(data)
        except ValueError as e:
            logger.error(f"Decryption of {object_id} failed: {e}")
            raise StorageError(f"Failed to decrypt {object_id}: {e}") from e

    async def store(self, path: str, data: bytes, metadata: Optional[Metadata] = None) -> str:
        encrypted, metadata = self._encrypt(data, metadata)
        return await self.inner.store(path, encrypted, metadata)

    async def retrieve(self, object_id: str) -> Optional[bytes]:
        data = await self.inner.retrieve(object_id)
        if data is None:
            return None
        return self._decrypt(object_id, data, await self.inner.get_metadata(object_id))

    async def seal(self, data: bytes, metadata: Optional[Metadata] = None) -> Tuple[bytes, Metadata]:
        encrypted, metadata = self._encrypt(data, metadata)
        return await self.inner.seal(encrypted, metadata)

    async def unseal(self, data: bytes, metadata: Metadata) -> bytes:
        data = await self.inner.unseal(data, metadata)
        return self._decrypt(metadata.get("backup_id", "payload"), data, metadata)

    async def write(self, path: str, data: bytes, metadata: Metadata) -> str:
        return await self.inner.write(path, data, metadata)

    async def read(self, object_id: str) -> Optional[bytes]:
        return await self.inner.read(object_id)

    async def delete(self, object_id: str) -> bool:
        return await self.inner.delete(object_id)

    async def exists(self, object_id: str) -> bool:
        return await self.inner.exists(object_id)

    async def list(self) -> List[Dict[str, Any]]:
        return await self.inner.list()

    async def get_stats(self) -> Dict[str, Any]:
        return await self.inner.get_stats()

    async def get_metadata(self, object_id: str) -> Metadata:
        return await self.inner.get_metadata(object_id)
