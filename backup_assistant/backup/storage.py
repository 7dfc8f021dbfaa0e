"""
Storage adapters for backup artifacts.

A StorageAdapter persists a payload and a metadata map under a logical id
(a relative path). ``store``/``retrieve`` are the public pair; they are built
from a transformation pair (``seal``/``unseal``) and a raw IO pair
(``write``/``read``) so that callers can checksum exactly the bytes that are
persisted and verify them before anything is decoded.
"""

import json
import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..core.exceptions import StorageError
from ..utils.helpers import format_bytes

logger = logging.getLogger(__name__)

Metadata = Dict[str, Any]

METADATA_SUFFIX = ".meta"
_TEMP_SUFFIX = ".tmp"


class StorageAdapter(ABC):
    """Abstract base class for storage adapters."""

    async def seal(self, data: bytes, metadata: Optional[Metadata] = None) -> Tuple[bytes, Metadata]:
        """Transform a payload into the bytes this adapter persists."""
        metadata = dict(metadata or {})
        metadata.setdefault("encrypted", False)
        return data, metadata

    async def unseal(self, data: bytes, metadata: Metadata) -> bytes:
        """Reverse seal for bytes returned by read."""
        return data

    async def store(self, path: str, data: bytes, metadata: Optional[Metadata] = None) -> str:
        """Persist ``data`` at ``path`` and return the logical id."""
        sealed, metadata = await self.seal(data, metadata)
        return await self.write(path, sealed, metadata)

    async def retrieve(self, object_id: str) -> Optional[bytes]:
        """Return the payload stored under ``object_id``, or None if absent."""
        raw = await self.read(object_id)
        if raw is None:
            return None
        return await self.unseal(raw, await self.get_metadata(object_id))

    @abstractmethod
    async def write(self, path: str, data: bytes, metadata: Metadata) -> str:
        """Persist already sealed bytes and their metadata."""

    @abstractmethod
    async def read(self, object_id: str) -> Optional[bytes]:
        """Return the persisted bytes without unsealing them."""

    @abstractmethod
    async def delete(self, object_id: str) -> bool:
        """Remove an object; removing a missing object succeeds."""

    @abstractmethod
    async def exists(self, object_id: str) -> bool:
        pass

    @abstractmethod
    async def list(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def get_metadata(self, object_id: str) -> Metadata:
        """Metadata stored with ``object_id``; empty when there is none."""


class LocalFilesystemStorage(StorageAdapter):
    """Stores objects as files below a root directory with JSON sidecars."""

    def __init__(self, base_path: Union[str, Path]):
        self.base_path = Path(base_path).expanduser().resolve()
        self._ensure_base_path()

    def _ensure_base_path(self) -> None:
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create storage directory {self.base_path}: {e}") from e
        if not os.access(self.base_path, os.W_OK):
            raise StorageError(f"Storage directory is not writable: {self.base_path}")

    def _resolve(self, object_id: str) -> Path:
        """Absolute path of ``object_id``, refusing ids outside the root."""
        relative = str(object_id).replace("\\", "/").lstrip("/")
        if not relative or relative.endswith(METADATA_SUFFIX):
            raise StorageError(f"Invalid storage id: {object_id!r}")
        target = (self.base_path / relative).resolve()
        if target != self.base_path and self.base_path not in target.parents:
            raise StorageError(f"Storage id escapes the storage root: {object_id!r}")
        return target

    @staticmethod
    def _metadata_path(path: Path) -> Path:
        return path.with_name(path.name + METADATA_SUFFIX)

    def _id_for(self, path: Path) -> str:
        return path.relative_to(self.base_path).as_posix()

    @staticmethod
    def _atomic_write(target: Path, data: bytes) -> None:
        fd, temp_name = tempfile.mkstemp(dir=target.parent, prefix=".", suffix=_TEMP_SUFFIX)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(temp_name, target)
        except BaseException:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise

    async def write(self, path: str, data: bytes, metadata: Metadata) -> str:
        target = self._resolve(path)
        metadata = dict(metadata)
        metadata.setdefault("encrypted", False)
        metadata["stored_at"] = datetime.now().isoformat()
        metadata["stored_size"] = len(data)

        sidecar = self._metadata_path(target)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # Sidecar first: a payload never exists without its metadata.
            self._atomic_write(
                sidecar,
                json.dumps(metadata, indent=2, sort_keys=True, default=str).encode("utf-8"),
            )
            self._atomic_write(target, data)
        except OSError as e:
            if not target.exists():
                try:
                    sidecar.unlink(missing_ok=True)
                except OSError as cleanup_error:
                    logger.warning(f"Could not remove orphaned metadata {sidecar}: {cleanup_error}")
            raise StorageError(f"Failed to store {path}: {e}") from e

        logger.debug(f"Stored {format_bytes(len(data))} at {target}")
        return self._id_for(target)

    async def read(self, object_id: str) -> Optional[bytes]:
        target = self._resolve(object_id)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {object_id}: {e}") from e

    async def get_metadata(self, object_id: str) -> Metadata:
        meta_path = self._metadata_path(self._resolve(object_id))
        try:
            return json.loads(meta_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read metadata for {object_id}: {e}") from e

    async def delete(self, object_id: str) -> bool:
        target = self._resolve(object_id)
        try:
            for path in (target, self._metadata_path(target)):
                if path.exists():
                    path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to delete {object_id}: {e}") from e
        return True

    async def exists(self, object_id: str) -> bool:
        return self._resolve(object_id).is_file()

    def _iter_objects(self):
        for path in sorted(self.base_path.rglob("*")):
            name = path.name
            if not path.is_file() or name.endswith(METADATA_SUFFIX):
                continue
            if name.startswith(".") and name.endswith(_TEMP_SUFFIX):
                continue
            yield path

    async def list(self) -> List[Dict[str, Any]]:
        objects = []
        try:
            for path in self._iter_objects():
                stat = path.stat()
                objects.append({
                    "id": self._id_for(path),
                    "path": str(path),
                    "size": stat.st_size,
                    "modified": datetime.fromtimestamp(stat.st_mtime).isoformat(),
                })
        except OSError as e:
            raise StorageError(f"Failed to list {self.base_path}: {e}") from e
        return objects

    async def get_stats(self) -> Dict[str, Any]:
        try:
            sizes = [path.stat().st_size for path in self._iter_objects()]
            usage = shutil.disk_usage(self.base_path)
        except OSError as e:
            raise StorageError(f"Failed to get storage stats: {e}") from e

        total_size = sum(sizes)
        return {
            "total_files": len(sizes),
            "total_size": total_size,
            "formatted_size": format_bytes(total_size),
            "disk_free": usage.free,
            "disk_total": usage.total,
            "disk_used_percent": round(usage.used / usage.total * 100, 2) if usage.total else 0.0,
            "storage_path": str(self.base_path),
        }
