"""
Core module for the Backup Assistant.

This module contains the exception hierarchy, error categorisation and the
retry policy used throughout the application.
"""

from backup_assistant.core.exceptions import (
    BackupAssistantError,
    ConfigurationError,
    DatabaseError,
    CaptureError,
    StorageError,
    IntegrityError,
    CircuitOpenError,
    RestoreError,
)

__all__ = [
    "BackupAssistantError",
    "ConfigurationError",
    "DatabaseError",
    "CaptureError",
    "StorageError",
    "IntegrityError",
    "CircuitOpenError",
    "RestoreError",
]
