"""
Backup capture, storage and restore for the Backup Assistant.
"""

from backup_assistant.backup.compression import Compressor, CompressionResult
from backup_assistant.backup.encrypted_storage import EncryptingStorageDecorator
from backup_assistant.backup.integrity import ChecksumVerifier
from backup_assistant.backup.manager import BackupManager
from backup_assistant.backup.storage import LocalFilesystemStorage, StorageAdapter
from backup_assistant.backup.strategies import (
    CaptureStrategy,
    CaptureStats,
    FullCaptureStrategy,
    StreamingCaptureStrategy,
    StrategyKind,
    create_capture_strategy,
)

__all__ = [
    "BackupManager",
    "CaptureStrategy",
    "CaptureStats",
    "ChecksumVerifier",
    "CompressionResult",
    "Compressor",
    "EncryptingStorageDecorator",
    "FullCaptureStrategy",
    "LocalFilesystemStorage",
    "StorageAdapter",
    "StrategyKind",
    "StreamingCaptureStrategy",
    "create_capture_strategy",
]
