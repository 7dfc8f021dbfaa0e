"""
Result models for the Backup Assistant.

BackupResult is the value returned by every backup job, successful or not.
RestoreResult reports a replay into a target database.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..utils.helpers import format_bytes, format_duration


class BackupResult(BaseModel):
    """Outcome of a backup job."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    path: Optional[str] = None
    size: int = 0
    created_at: datetime = Field(default_factory=datetime.now)
    duration_seconds: float = 0.0
    checksum: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    success: bool = True
    error_message: Optional[str] = None

    @model_validator(mode='after')
    def error_message_only_on_failure(self):
        if self.success and self.error_message:
            raise ValueError('error_message is only set on failed results')
        if not self.success and not self.error_message:
            raise ValueError('failed results require an error_message')
        return self

    @classmethod
    def failed(
        cls,
        backup_id: str,
        name: str,
        error_message: str,
        duration_seconds: float = 0.0,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "BackupResult":
        """Build the result of a job that did not produce an artifact."""
        return cls(
            id=backup_id,
            name=name,
            duration_seconds=duration_seconds,
            metadata=metadata or {},
            success=False,
            error_message=error_message,
        )

    @property
    def formatted_size(self) -> str:
        return format_bytes(self.size)

    @property
    def formatted_duration(self) -> str:
        return format_duration(self.duration_seconds)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation including the formatted fields."""
        data = self.model_dump(mode='json')
        data['formatted_size'] = self.formatted_size
        data['formatted_duration'] = self.formatted_duration
        return data


class RestoreResult(BaseModel):
    """Outcome of replaying a backup into a database."""

    backup_id: str
    success: bool = True
    statements_executed: int = 0
    statements_total: int = 0
    duration_seconds: float = 0.0
    checksum_verified: bool = False
    dry_run: bool = False

    @property
    def formatted_duration(self) -> str:
        return format_duration(self.duration_seconds)
