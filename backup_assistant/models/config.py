"""
Configuration models for the Backup Assistant.

This module defines the immutable BackupConfig describing one backup job and
the AssistantSettings controlling storage, retries and logging. Both are
Pydantic models; invalid input raises ConfigurationError at construction.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator, model_validator

from ..core.exceptions import ConfigurationError
from ..core.retry import RetryConfig
from ..security.encryption import DEFAULT_CIPHER, decode_key, encode_key, validate_key
from ..utils.helpers import load_config_file, sanitize_dict


ENCRYPTION_KEY_ENV = "BACKUP_ASSISTANT_ENCRYPTION_KEY"
STORAGE_PATH_ENV = "BACKUP_ASSISTANT_STORAGE_PATH"


class CaptureType(str, Enum):
    """What a capture writes for each table."""
    FULL = "full"
    SCHEMA = "schema"
    DATA = "data"

    @property
    def includes_schema(self) -> bool:
        return self in (CaptureType.FULL, CaptureType.SCHEMA)

    @property
    def includes_data(self) -> bool:
        return self in (CaptureType.FULL, CaptureType.DATA)


class CompressionMethod(str, Enum):
    """Compression algorithms available for backup payloads."""
    GZIP = "gzip"
    BZIP2 = "bzip2"
    LZMA = "lzma"


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "config"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


class _ValidatedModel(BaseModel):
    """Base model whose validation failures surface as ConfigurationError."""

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid {type(self).__name__}: {_describe_validation_error(e)}",
                details={"errors": [item.get("msg") for item in e.errors()]},
            ) from e


class BackupConfig(_ValidatedModel):
    """Immutable description of one backup job."""

    model_config = ConfigDict(frozen=True, extra="forbid", use_enum_values=False)

    name: str = "backup"
    database: str
    capture_type: CaptureType = CaptureType.FULL
    include_tables: FrozenSet[str] = Field(default_factory=frozenset)
    exclude_tables: FrozenSet[str] = Field(default_factory=frozenset)

    compress: bool = False
    compression_method: CompressionMethod = CompressionMethod.GZIP

    encrypt: bool = False
    cipher: str = DEFAULT_CIPHER
    encryption_key: Optional[bytes] = Field(default=None, repr=False)

    streaming: bool = False
    chunk_size: int = 1000

    description: Optional[str] = None
    tags: Tuple[str, ...] = ()
    verify_after_backup: bool = True

    @field_validator('name', 'database')
    @classmethod
    def must_not_be_empty(cls, v):
        if not v or not v.strip():
            raise ValueError('must not be empty')
        return v.strip()

    @field_validator('chunk_size')
    @classmethod
    def chunk_size_must_be_positive(cls, v):
        if v <= 0:
            raise ValueError('chunk_size must be a positive integer')
        return v

    @field_validator('cipher')
    @classmethod
    def normalise_cipher(cls, v):
        return v.strip().lower()

    @field_validator('encryption_key', mode='before')
    @classmethod
    def decode_text_key(cls, v):
        if isinstance(v, str):
            try:
                return decode_key(v)
            except ConfigurationError as e:
                raise ValueError(e.message) from e
        return v

    @model_validator(mode='after')
    def check_encryption(self):
        if self.encrypt:
            if not self.encryption_key:
                raise ValueError('encryption_key is required when encrypt is enabled')
            try:
                validate_key(self.cipher, self.encryption_key)
            except ConfigurationError as e:
                raise ValueError(e.message) from e
        return self

    @field_serializer('encryption_key')
    def serialize_key(self, v: Optional[bytes]) -> Optional[str]:
        return encode_key(v) if v else None

    def selects(self, table: str) -> bool:
        """Whether ``table`` belongs to the effective table set."""
        if self.include_tables and table not in self.include_tables:
            return False
        return table not in self.exclude_tables

    def with_overrides(self, **changes: Any) -> "BackupConfig":
        """Return a validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return type(self)(**data)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation with the key masked."""
        data = self.model_dump(mode='json')
        data['include_tables'] = sorted(self.include_tables)
        data['exclude_tables'] = sorted(self.exclude_tables)
        return sanitize_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupConfig":
        """
        Build a config from a plain mapping, e.g. a parsed YAML file.

        When encryption is enabled and no key is given, the key is read from
        the BACKUP_ASSISTANT_ENCRYPTION_KEY environment variable.
        """
        data = dict(data)
        if data.get('encrypt') and not data.get('encryption_key'):
            env_key = os.environ.get(ENCRYPTION_KEY_ENV)
            if env_key:
                data['encryption_key'] = env_key
        for field_name in ('include_tables', 'exclude_tables'):
            if data.get(field_name) is None:
                data.pop(field_name, None)
            elif isinstance(data[field_name], str):
                data[field_name] = [t.strip() for t in data[field_name].split(',') if t.strip()]
        if isinstance(data.get('tags'), str):
            data['tags'] = [t.strip() for t in data['tags'].split(',') if t.strip()]
        return cls(**data)

    @staticmethod
    def read_file(file_path: Union[str, Path]) -> Dict[str, Any]:
        """Raw job settings from YAML or JSON, unwrapping a top-level ``backup`` section."""
        try:
            data = load_config_file(file_path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot load backup configuration: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Backup configuration must be a mapping: {file_path}")
        section = data.get('backup', data)
        if not isinstance(section, dict):
            raise ConfigurationError(f"Backup section must be a mapping: {file_path}")
        return dict(section)

    @classmethod
    def from_file(cls, file_path: Union[str, Path]) -> "BackupConfig":
        """Load a config from YAML or JSON, accepting a top-level ``backup`` section."""
        return cls.from_dict(cls.read_file(file_path))


class RetrySettings(BaseModel):
    """Retry and circuit breaker settings for one kind of operation."""

    model_config = ConfigDict(extra="forbid")

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=0.1, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=5.0, ge=0)
    failure_threshold: int = Field(default=5, ge=1)
    cooldown: float = Field(default=30.0, ge=0)

    def to_retry_config(self) -> RetryConfig:
        return RetryConfig(**self.model_dump())


class AssistantSettings(_ValidatedModel):
    """Settings shared by every backup job."""

    model_config = ConfigDict(extra="ignore")

    storage_path: str = "./backups"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    structured_logging: bool = False
    database_retry: RetrySettings = Field(default_factory=RetrySettings)
    storage_retry: RetrySettings = Field(
        default_factory=lambda: RetrySettings(max_retries=2, base_delay=0.5, failure_threshold=3, cooldown=60.0)
    )

    @field_validator('log_level')
    @classmethod
    def log_level_must_be_known(cls, v):
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f'unknown log level {v!r}')
        return level


def load_settings(file_path: Optional[Union[str, Path]] = None) -> AssistantSettings:
    """
    Load AssistantSettings from a YAML or JSON file.

    Without a file the defaults apply. BACKUP_ASSISTANT_STORAGE_PATH overrides
    the storage path in either case.
    """
    data: Dict[str, Any] = {}
    if file_path is not None:
        try:
            data = load_config_file(file_path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot load settings: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file must be a mapping: {file_path}")
        data = data.get('settings', data)

    env_path = os.environ.get(STORAGE_PATH_ENV)
    if env_path:
        data = {**data, 'storage_path': env_path}

    return AssistantSettings(**data)
