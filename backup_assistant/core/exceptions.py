"""
Custom exceptions for the Backup Assistant.

Every error raised by the package derives from BackupAssistantError so callers
can catch the whole family, while the subclasses let the orchestrator decide
which failures become an unsuccessful BackupResult and which propagate.
"""

from typing import Any, Dict, Optional


class BackupAssistantError(Exception):
    """Base exception class for Backup Assistant errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}


class ConfigurationError(BackupAssistantError):
    """Raised when a configuration is invalid or inconsistent."""
    pass


class DatabaseError(BackupAssistantError):
    """Raised by connection adapters when a statement fails."""

    def __init__(
        self,
        message: str,
        error_code: Optional[int] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.error_code = error_code


class CaptureError(BackupAssistantError):
    """Raised when reading from the source database fails during capture."""
    pass


class StorageError(BackupAssistantError):
    """Raised when persisting, reading or decrypting a stored object fails."""
    pass


class IntegrityError(BackupAssistantError):
    """Raised when a stored artifact does not match its recorded checksum."""

    def __init__(
        self,
        message: str,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.expected = expected
        self.actual = actual


class CircuitOpenError(BackupAssistantError):
    """Raised instead of calling an operation whose circuit is open."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        retry_after: float = 0.0,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.key = key
        self.retry_after = retry_after


class RestoreError(BackupAssistantError):
    """Raised when replaying a backup into a database fails."""
    pass
