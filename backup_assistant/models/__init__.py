"""
Data models for the Backup Assistant.
"""

from backup_assistant.models.config import (
    AssistantSettings,
    BackupConfig,
    CaptureType,
    CompressionMethod,
    RetrySettings,
    load_settings,
)
from backup_assistant.models.results import BackupResult, RestoreResult

__all__ = [
    "AssistantSettings",
    "BackupConfig",
    "CaptureType",
    "CompressionMethod",
    "RetrySettings",
    "load_settings",
    "BackupResult",
    "RestoreResult",
]
