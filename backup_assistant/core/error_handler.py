"""
Error categorisation for the Backup Assistant.

This module maps exceptions to categories and severities, decides whether a
failure is transient (worth retrying) or fatal, and logs errors with
structured context.
"""

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Type

from .exceptions import (
    ConfigurationError,
    DatabaseError,
    CaptureError,
    StorageError,
    IntegrityError,
    CircuitOpenError,
    RestoreError,
)


# MySQL server/client error numbers that indicate a retryable condition:
# lock wait timeout, deadlock, server gone away, lost connection,
# too many connections, too many user connections.
TRANSIENT_ERROR_CODES: FrozenSet[int] = frozenset({1205, 1213, 2006, 2013, 1040, 1203})

TRANSIENT_MESSAGE_PATTERNS: Tuple[str, ...] = (
    "mysql server has gone away",
    "lost connection to mysql server",
    "connection refused",
    "connection timed out",
    "deadlock found",
    "lock wait timeout exceeded",
    "too many connections",
    "server shutdown in progress",
    "connection lost",
    "connection reset by peer",
    "database is locked",
    "database table is locked",
)

TRANSIENT_EXCEPTION_TYPES: Tuple[Type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    BlockingIOError,
    InterruptedError,
)


class ErrorCategory(str, Enum):
    """Categories of errors for better handling and reporting."""
    CONFIGURATION = "configuration"
    DATABASE = "database"
    CAPTURE = "capture"
    STORAGE = "storage"
    INTEGRITY = "integrity"
    CIRCUIT = "circuit"
    RESTORE = "restore"
    CONNECTIVITY = "connectivity"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Context information for an error occurrence."""
    timestamp: datetime = field(default_factory=datetime.now)
    operation: Optional[str] = None
    backup_id: Optional[str] = None
    attempt: int = 0
    additional_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ErrorInfo:
    """Categorised error information."""
    error: Exception
    category: ErrorCategory
    severity: ErrorSeverity
    context: ErrorContext
    remediation_steps: List[str]
    traceback_str: str
    is_transient: bool = False


class ErrorHandler:
    """
    Categorises errors, classifies them as transient or fatal, and logs them.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._error_mappings = self._build_error_mappings()
        self._remediation_guides = self._build_remediation_guides()

    def _build_error_mappings(self) -> Dict[Type[Exception], Dict[str, Any]]:
        """Build mapping of exception types to error categories and severities."""
        return {
            ConfigurationError: {
                "category": ErrorCategory.CONFIGURATION,
                "severity": ErrorSeverity.HIGH,
            },
            IntegrityError: {
                "category": ErrorCategory.INTEGRITY,
                "severity": ErrorSeverity.CRITICAL,
            },
            CircuitOpenError: {
                "category": ErrorCategory.CIRCUIT,
                "severity": ErrorSeverity.MEDIUM,
            },
            CaptureError: {
                "category": ErrorCategory.CAPTURE,
                "severity": ErrorSeverity.HIGH,
            },
            StorageError: {
                "category": ErrorCategory.STORAGE,
                "severity": ErrorSeverity.HIGH,
            },
            RestoreError: {
                "category": ErrorCategory.RESTORE,
                "severity": ErrorSeverity.HIGH,
            },
            DatabaseError: {
                "category": ErrorCategory.DATABASE,
                "severity": ErrorSeverity.HIGH,
            },
            ConnectionError: {
                "category": ErrorCategory.CONNECTIVITY,
                "severity": ErrorSeverity.MEDIUM,
            },
            TimeoutError: {
                "category": ErrorCategory.CONNECTIVITY,
                "severity": ErrorSeverity.MEDIUM,
            },
        }

    def _build_remediation_guides(self) -> Dict[ErrorCategory, List[str]]:
        """Build remediation guides for each error category."""
        return {
            ErrorCategory.CONFIGURATION: [
                "Check the backup configuration file for typos",
                "Verify the encryption key length matches the cipher",
                "Ensure chunk_size is a positive integer",
            ],
            ErrorCategory.DATABASE: [
                "Verify database credentials and permissions",
                "Check that the database server is reachable",
            ],
            ErrorCategory.CAPTURE: [
                "Check that every selected table still exists",
                "Retry with the streaming strategy for very large tables",
            ],
            ErrorCategory.STORAGE: [
                "Check free disk space on the storage volume",
                "Verify write permissions on the storage directory",
                "Confirm the encryption key used to write the backup",
            ],
            ErrorCategory.INTEGRITY: [
                "Do not restore this artifact",
                "Re-create the backup from the source database",
            ],
            ErrorCategory.CIRCUIT: [
                "Wait for the cooldown period before retrying",
                "Investigate the repeated failures of the underlying operation",
            ],
            ErrorCategory.RESTORE: [
                "Check that the target database accepts the dump dialect",
                "Run the restore with --dry-run to inspect the statements",
            ],
            ErrorCategory.CONNECTIVITY: [
                "Check network connectivity to the database server",
            ],
            ErrorCategory.UNKNOWN: [
                "Review error logs for additional context",
            ],
        }

    def is_transient(self, error: BaseException) -> bool:
        """
        Decide whether an error is worth retrying.

        Transient errors are dropped connections, lock wait timeouts,
        deadlocks and connection limits, recognised by exception type,
        MySQL error number or message text. Storage and database errors
        raised from another exception are judged by that cause. Everything
        else is fatal.
        """
        if isinstance(error, (ConfigurationError, IntegrityError, CircuitOpenError)):
            return False

        if isinstance(error, TRANSIENT_EXCEPTION_TYPES):
            return True

        code = getattr(error, "error_code", None)
        if code is None and not isinstance(error, OSError):
            code = getattr(error, "errno", None)
        if code in TRANSIENT_ERROR_CODES:
            return True

        message = str(error).lower()
        if any(pattern in message for pattern in TRANSIENT_MESSAGE_PATTERNS):
            return True

        # Wrapped driver and filesystem errors keep their original as the cause.
        cause = error.__cause__
        if isinstance(error, (StorageError, DatabaseError)) and cause is not None:
            return self.is_transient(cause)
        return False

    def categorize_error(self, error: Exception, context: Optional[ErrorContext] = None) -> ErrorInfo:
        """
        Categorize an error and create error information.

        Args:
            error: The exception that occurred
            context: Optional context information

        Returns:
            ErrorInfo object with categorized error details
        """
        mapping = self._error_mappings.get(type(error))

        if not mapping:
            # Try to find mapping for parent classes
            for exc_type, exc_mapping in self._error_mappings.items():
                if isinstance(error, exc_type):
                    mapping = exc_mapping
                    break

        if not mapping:
            mapping = {
                "category": ErrorCategory.UNKNOWN,
                "severity": ErrorSeverity.MEDIUM,
            }

        category = mapping["category"]

        return ErrorInfo(
            error=error,
            category=category,
            severity=mapping["severity"],
            context=context or ErrorContext(),
            remediation_steps=self._remediation_guides.get(category, []),
            traceback_str="".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
            is_transient=self.is_transient(error),
        )

    def handle_error(self, error: Exception, context: Optional[ErrorContext] = None) -> ErrorInfo:
        """Categorize and log an error."""
        error_info = self.categorize_error(error, context)
        self._log_error(error_info)
        return error_info

    def _log_error(self, error_info: ErrorInfo) -> None:
        """Log error information with appropriate level."""
        log_data = {
            "error_type": type(error_info.error).__name__,
            "error_message": str(error_info.error),
            "category": error_info.category.value,
            "severity": error_info.severity.value,
            "operation": error_info.context.operation,
            "backup_id": error_info.context.backup_id,
            "attempt": error_info.context.attempt,
            "is_transient": error_info.is_transient,
            "timestamp": error_info.context.timestamp.isoformat(),
        }

        if error_info.is_transient:
            self.logger.warning("Transient error occurred", extra=log_data)
        elif error_info.severity == ErrorSeverity.CRITICAL:
            self.logger.critical("Critical error occurred", extra=log_data)
        elif error_info.severity == ErrorSeverity.HIGH:
            self.logger.error("High severity error occurred", extra=log_data)
        else:
            self.logger.warning("Error occurred", extra=log_data)

        if error_info.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            self.logger.debug("Error traceback", extra={"traceback": error_info.traceback_str})

