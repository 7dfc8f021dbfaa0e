"""
Backup manager for creating, verifying and restoring backups.

This module provides the BackupManager class that orchestrates a backup job:
capture through a strategy, optional compression, sealing by the storage
chain (encryption when configured), checksumming of the sealed bytes and a
retried write to storage. Restore runs the same chain backwards and refuses
to decode anything whose checksum does not match.
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.error_handler import ErrorContext, ErrorHandler
from ..core.exceptions import (
    CaptureError,
    CircuitOpenError,
    DatabaseError,
    IntegrityError,
    RestoreError,
    StorageError,
)
from ..core.retry import RetryPolicy, create_database_retry_config, create_storage_retry_config
from ..database.base import DatabaseConnection
from ..database.retrying import RetryingConnection
from ..models.config import BackupConfig
from ..models.results import BackupResult, RestoreResult
from ..utils.helpers import build_artifact_path, format_bytes, generate_backup_id
from ..utils.logging import LogCategory, LogEntry
from .compression import Compressor, extension_for
from .encrypted_storage import EncryptingStorageDecorator
from .integrity import ChecksumVerifier
from .replay import split_sql_statements
from .storage import StorageAdapter
from .strategies import CaptureStats, CaptureStrategy, StrategyKind, create_capture_strategy

logger = logging.getLogger(__name__)

STORAGE_WRITE_KEY = "storage.write"


class BackupManager:
    """Main backup manager class for creating and managing backups."""

    def __init__(
        self,
        storage: StorageAdapter,
        database_retry: Optional[RetryPolicy] = None,
        storage_retry: Optional[RetryPolicy] = None,
        verifier: Optional[ChecksumVerifier] = None,
        compressor: Optional[Compressor] = None,
        error_handler: Optional[ErrorHandler] = None,
        strategy_options: Optional[Dict[str, Any]] = None,
    ):
        self.storage = storage
        self.error_handler = error_handler or ErrorHandler()
        self.database_retry = database_retry or RetryPolicy(
            create_database_retry_config(), error_handler=self.error_handler
        )
        self.storage_retry = storage_retry or RetryPolicy(
            create_storage_retry_config(), error_handler=self.error_handler
        )
        self.verifier = verifier or ChecksumVerifier()
        self.compressor = compressor or Compressor()
        self.strategy_options = strategy_options or {}

    def _create_capture_strategy(self, kind: StrategyKind) -> CaptureStrategy:
        """Create the capture strategy for ``kind``."""
        options = self.strategy_options if kind == StrategyKind.STREAMING else {}
        return create_capture_strategy(kind, **options)

    def _storage_for(self, config: BackupConfig) -> StorageAdapter:
        """Storage chain for a job: the base adapter, encrypted when configured."""
        if config.encrypt:
            return EncryptingStorageDecorator(self.storage, config.encryption_key, config.cipher)
        return self.storage

    def _build_metadata(
        self,
        backup_id: str,
        config: BackupConfig,
        strategy: CaptureStrategy,
        stats: CaptureStats,
        connection: DatabaseConnection,
        created_at: datetime,
    ) -> Dict[str, Any]:
        metadata = {
            "backup_id": backup_id,
            "name": config.name,
            "database": config.database,
            "dialect": connection.dialect,
            "type": config.capture_type.value,
            "strategy": strategy.name,
            "tables": stats.tables,
            "table_count": len(stats.tables),
            "rows": stats.rows,
            "total_rows": stats.total_rows,
            "payload_size": stats.bytes_written,
            "compression": config.compression_method.value if config.compress else None,
            "encryption": config.cipher if config.encrypt else None,
            "include_tables": sorted(config.include_tables),
            "exclude_tables": sorted(config.exclude_tables),
            "description": config.description,
            "tags": list(config.tags),
            "created_at": created_at.isoformat(),
        }
        if strategy.kind == StrategyKind.STREAMING:
            metadata.update({
                "chunk_size": config.chunk_size,
                "chunks": stats.chunks,
                "estimated_rows": stats.estimated_rows,
                "memory_efficient": True,
            })
        return metadata

    async def create_backup(self, connection: DatabaseConnection, config: BackupConfig) -> BackupResult:
        """
        Run one backup job.

        Capture, storage, integrity and circuit breaker failures are reported
        as an unsuccessful BackupResult rather than raised.
        """
        kind = StrategyKind.for_config(config)
        created_at = datetime.now()
        backup_id = generate_backup_id(streaming=kind == StrategyKind.STREAMING, now=created_at)
        start_time = time.time()
        stored_id = None

        logger.info(f"Starting {kind.value} backup {backup_id} of {config.database}")

        try:
            strategy = self._create_capture_strategy(kind)
            source = RetryingConnection(connection, self.database_retry)

            with strategy.open_sink() as sink:
                stats = await strategy.capture(source, config, sink)
                sink.seek(0)
                payload = sink.read()

            metadata = self._build_metadata(backup_id, config, strategy, stats, connection, created_at)

            suffixes = []
            if config.compress:
                compressed = await self.compressor.compress(payload, config.compression_method)
                payload = compressed.data
                metadata["compressed_size"] = compressed.compressed_size
                suffixes.append(extension_for(config.compression_method))

            storage = self._storage_for(config)
            if config.encrypt:
                suffixes.append("enc")

            path = build_artifact_path(config.database, backup_id, suffixes, now=created_at)
            sealed, metadata = await storage.seal(payload, metadata)

            checksum = self.verifier.compute(sealed)
            metadata["checksum"] = checksum
            metadata["checksum_algorithm"] = self.verifier.algorithm

            stored_id = await self.storage_retry.execute(
                STORAGE_WRITE_KEY, storage.write, path, sealed, metadata
            )

            if config.verify_after_backup:
                persisted = await storage.read(stored_id)
                if persisted is None:
                    raise StorageError(f"Backup {stored_id} disappeared after writing")
                self.verifier.verify(persisted, checksum)

        except (CaptureError, StorageError, IntegrityError, CircuitOpenError) as e:
            duration = time.time() - start_time
            self.error_handler.handle_error(
                e, ErrorContext(operation="create_backup", backup_id=backup_id)
            )
            if stored_id is not None:
                await self._discard(stored_id)
            return BackupResult.failed(
                backup_id=backup_id,
                name=config.name,
                error_message=str(e),
                duration_seconds=duration,
                metadata={"database": config.database, "strategy": kind.value},
            )

        duration = time.time() - start_time
        result = BackupResult(
            id=backup_id,
            name=config.name,
            path=stored_id,
            size=len(sealed),
            created_at=created_at,
            duration_seconds=duration,
            checksum=checksum,
            metadata=metadata,
        )

        logger.info(
            f"Backup {backup_id} stored at {stored_id} ({result.formatted_size}, {result.formatted_duration})",
            extra={"log_entry": LogEntry(
                category=LogCategory.BACKUP,
                message="Backup completed",
                backup_id=backup_id,
                database=config.database,
                operation="create_backup",
                duration=duration,
                metadata={"path": stored_id, "size": result.size, "checksum": checksum},
            )},
        )
        return result

    async def _discard(self, object_id: str) -> None:
        """Remove an artifact that failed post-write verification."""
        try:
            await self.storage.delete(object_id)
        except StorageError as e:
            logger.warning(f"Could not remove unverified backup {object_id}: {e}")

    async def _read_verified(self, backup_id: str, expected_checksum: Optional[str]):
        raw = await self.storage.read(backup_id)
        if raw is None:
            raise StorageError(f"Backup not found: {backup_id}")

        metadata = await self.storage.get_metadata(backup_id)
        expected = expected_checksum or metadata.get("checksum")
        if not expected:
            raise IntegrityError(f"No checksum recorded for backup {backup_id}")

        verifier = ChecksumVerifier(metadata.get("checksum_algorithm", self.verifier.algorithm))
        verifier.verify(raw, expected)
        return raw, metadata

    async def verify_backup(self, backup_id: str, expected_checksum: Optional[str] = None) -> bool:
        """
        Check a stored backup against its checksum.

        Returns False on a mismatch; raises StorageError if the backup does
        not exist.
        """
        try:
            await self._read_verified(backup_id, expected_checksum)
        except IntegrityError as e:
            self.error_handler.handle_error(e, ErrorContext(operation="verify_backup", backup_id=backup_id))
            return False
        logger.info(f"Backup {backup_id} verified")
        return True

    async def restore_backup(
        self,
        backup_id: str,
        connection: DatabaseConnection,
        expected_checksum: Optional[str] = None,
        encryption_key: Optional[bytes] = None,
        dry_run: bool = False,
    ) -> RestoreResult:
        """
        Replay a stored backup into ``connection``.

        The checksum is verified before anything is decrypted, decompressed
        or executed.

        Raises:
            StorageError: if the backup is missing or cannot be decrypted
            IntegrityError: if the stored bytes do not match the checksum
            RestoreError: if the payload cannot be decoded or a statement fails
        """
        start_time = time.time()
        raw, metadata = await self._read_verified(backup_id, expected_checksum)

        storage = self.storage
        if metadata.get("encrypted"):
            if not encryption_key:
                raise StorageError(f"Backup {backup_id} is encrypted; an encryption key is required")
            storage = EncryptingStorageDecorator(self.storage, encryption_key, metadata.get("cipher", "aes-256-cbc"))

        payload = await storage.unseal(raw, metadata)
        if metadata.get("compression"):
            payload = await self.compressor.decompress(payload, metadata["compression"])

        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise RestoreError(f"Backup {backup_id} does not contain a UTF-8 SQL dump") from e

        statements = split_sql_statements(
            text, backslash_escapes=metadata.get("dialect", connection.dialect) == "mysql"
        )
        logger.info(f"Restoring {backup_id}: {len(statements)} statements{' (dry run)' if dry_run else ''}")

        executed = 0
        if not dry_run:
            for number, statement in enumerate(statements, start=1):
                try:
                    await connection.execute(statement)
                except DatabaseError as e:
                    raise RestoreError(
                        f"Statement {number} of {backup_id} failed: {e}",
                        details={"statement": statement[:200]},
                    ) from e
                executed += 1
            await connection.commit()

        return RestoreResult(
            backup_id=backup_id,
            statements_executed=executed,
            statements_total=len(statements),
            duration_seconds=time.time() - start_time,
            checksum_verified=True,
            dry_run=dry_run,
        )

    async def list_backups(self) -> List[Dict[str, Any]]:
        """Stored backups with their metadata, newest first."""
        backups = []
        for item in await self.storage.list():
            metadata = await self.storage.get_metadata(item["id"])
            backups.append({**item, "metadata": metadata})
        backups.sort(key=lambda item: item["metadata"].get("created_at") or item["modified"], reverse=True)
        return backups

    async def delete_backup(self, backup_id: str) -> bool:
        deleted = await self.storage.delete(backup_id)
        logger.info(f"Deleted backup {backup_id}")
        return deleted

    async def get_storage_stats(self) -> Dict[str, Any]:
        return await self.storage.get_stats()

    async def estimate_size(self, connection: DatabaseConnection, config: BackupConfig) -> Dict[str, Any]:
        """Row counts of the tables ``config`` would capture."""
        estimate = await RetryingConnection(connection, self.database_retry).estimate_size()
        tables = {name: rows for name, rows in estimate["tables"].items() if config.selects(name)}
        result = {
            "database": config.database,
            "tables": tables,
            "table_count": len(tables),
            "total_rows": sum(tables.values()),
        }
        if "total_bytes" in estimate:
            result["total_bytes"] = estimate["total_bytes"]
            result["formatted_size"] = format_bytes(estimate["total_bytes"])
        return result
