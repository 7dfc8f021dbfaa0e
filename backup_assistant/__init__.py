"""
Database Backup Assistant

Captures, compresses, encrypts and verifies SQL snapshots of relational
databases, and restores them.
"""

__version__ = "0.1.0"
__author__ = "Backup Assistant Team"

from backup_assistant.models.config import BackupConfig, CaptureType, CompressionMethod
from backup_assistant.models.results import BackupResult, RestoreResult

__all__ = [
    "BackupConfig",
    "CaptureType",
    "CompressionMethod",
    "BackupResult",
    "RestoreResult",
]
