"""
Tests for the local filesystem storage adapter.
"""

import json
from unittest.mock import patch

import pytest

from backup_assistant.backup.storage import LocalFilesystemStorage
from backup_assistant.core.exceptions import StorageError


class TestLocalFilesystemStorage:

    @pytest.mark.asyncio
    async def test_store_and_retrieve(self, storage):
        object_id = await storage.store("2024/01/31/shop/backup_1.sql", b"payload", {"database": "shop"})

        assert object_id == "2024/01/31/shop/backup_1.sql"
        assert await storage.retrieve(object_id) == b"payload"
        assert await storage.exists(object_id)
        assert (storage.base_path / object_id).read_bytes() == b"payload"

    @pytest.mark.asyncio
    async def test_sidecar_metadata(self, storage):
        object_id = await storage.store("a/b.sql", b"12345", {"database": "shop"})

        sidecar = storage.base_path / "a" / "b.sql.meta"
        assert sidecar.exists()
        metadata = json.loads(sidecar.read_text())
        assert metadata["database"] == "shop"
        assert metadata["encrypted"] is False
        assert metadata["stored_size"] == 5
        assert await storage.get_metadata(object_id) == metadata

    @pytest.mark.asyncio
    async def test_retrieve_missing_returns_none(self, storage):
        assert await storage.retrieve("nothing/here.sql") is None
        assert await storage.read("nothing/here.sql") is None
        assert await storage.get_metadata("nothing/here.sql") == {}
        assert not await storage.exists("nothing/here.sql")

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, storage):
        object_id = await storage.store("x.sql", b"data")

        assert await storage.delete(object_id) is True
        assert not (storage.base_path / "x.sql").exists()
        assert not (storage.base_path / "x.sql.meta").exists()
        assert await storage.delete(object_id) is True
        assert await storage.delete("never/existed.sql") is True

    @pytest.mark.asyncio
    async def test_overwrite(self, storage):
        await storage.store("x.sql", b"first")
        await storage.store("x.sql", b"second")
        assert await storage.retrieve("x.sql") == b"second"

    @pytest.mark.asyncio
    async def test_list_excludes_sidecars(self, storage):
        await storage.store("2024/01/01/shop/a.sql", b"a")
        await storage.store("2024/01/02/shop/b.sql.gz", b"bb")

        objects = await storage.list()
        assert [item["id"] for item in objects] == ["2024/01/01/shop/a.sql", "2024/01/02/shop/b.sql.gz"]
        assert objects[1]["size"] == 2
        assert set(objects[0]) == {"id", "path", "size", "modified"}

    @pytest.mark.asyncio
    async def test_stats(self, storage):
        await storage.store("a.sql", b"a" * 100)
        await storage.store("b.sql", b"b" * 50)

        stats = await storage.get_stats()
        assert stats["total_files"] == 2
        assert stats["total_size"] == 150
        assert stats["formatted_size"] == "150.0 B"
        assert stats["storage_path"] == str(storage.base_path)
        assert stats["disk_total"] > 0
        assert 0 <= stats["disk_used_percent"] <= 100

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", ["../escape.sql", "a/../../escape.sql", "x.sql.meta", ""])
    async def test_rejects_invalid_ids(self, storage, bad_id):
        with pytest.raises(StorageError):
            await storage.store(bad_id, b"data")

    @pytest.mark.asyncio
    async def test_failed_payload_write_leaves_no_sidecar(self, storage):
        real_write = LocalFilesystemStorage._atomic_write

        def payload_fails(target, data):
            if target.name.endswith(".meta"):
                return real_write(target, data)
            raise OSError(28, "No space left on device")

        with patch.object(LocalFilesystemStorage, "_atomic_write", side_effect=payload_fails):
            with pytest.raises(StorageError, match="No space left"):
                await storage.store("a/b.sql", b"payload", {"database": "shop"})

        assert not (storage.base_path / "a" / "b.sql").exists()
        assert not (storage.base_path / "a" / "b.sql.meta").exists()
        assert await storage.list() == []

    @pytest.mark.asyncio
    async def test_failed_overwrite_keeps_existing_artifact(self, storage):
        await storage.store("x.sql", b"first", {"database": "shop"})
        real_write = LocalFilesystemStorage._atomic_write

        def payload_fails(target, data):
            if target.name.endswith(".meta"):
                return real_write(target, data)
            raise OSError(5, "Input/output error")

        with patch.object(LocalFilesystemStorage, "_atomic_write", side_effect=payload_fails):
            with pytest.raises(StorageError):
                await storage.store("x.sql", b"second")

        assert await storage.retrieve("x.sql") == b"first"
        assert (storage.base_path / "x.sql.meta").exists()

    @pytest.mark.asyncio
    async def test_seal_is_identity(self, storage):
        sealed, metadata = await storage.seal(b"data", {"a": 1})
        assert sealed == b"data"
        assert metadata == {"a": 1, "encrypted": False}
        assert await storage.unseal(b"data", metadata) == b"data"

    def test_creates_base_path(self, temp_dir):
        LocalFilesystemStorage(temp_dir / "nested" / "root")
        assert (temp_dir / "nested" / "root").is_dir()

    def test_unusable_base_path(self, temp_dir):
        blocker = temp_dir / "file"
        blocker.write_text("x")
        with pytest.raises(StorageError):
            LocalFilesystemStorage(blocker / "root")
