"""
Helper functions for the Backup Assistant.

This module contains identifier generation, artifact naming, formatting
and configuration file utilities used across the package.
"""

import json
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml


def generate_backup_id(streaming: bool = False, now: Optional[datetime] = None) -> str:
    """Generate a unique backup identifier such as ``backup_20240131_120000_1a2b3c4d``."""
    now = now or datetime.now()
    prefix = "backup_stream" if streaming else "backup"
    return f"{prefix}_{now.strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"


def build_artifact_path(
    database: str,
    backup_id: str,
    suffixes: Iterable[str] = (),
    now: Optional[datetime] = None,
) -> str:
    """
    Build the logical storage path of a backup artifact.

    The layout is ``<YYYY>/<MM>/<DD>/<database>/<backup_id>.sql`` followed by
    one suffix per applied transformation, e.g. ``.gz`` then ``.enc``.
    """
    now = now or datetime.now()
    name = f"{backup_id}.sql" + "".join(f".{suffix.lstrip('.')}" for suffix in suffixes)
    return f"{now.strftime('%Y/%m/%d')}/{safe_filename(database)}/{name}"


def format_bytes(bytes_count: float) -> str:
    """Format bytes into human-readable string."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024.0:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024.0
    return f"{bytes_count:.1f} PB"


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        return f"{seconds / 60:.1f}m"
    else:
        return f"{seconds / 3600:.1f}h"


def safe_filename(filename: str) -> str:
    """Replace characters that are unsafe in a path component."""
    cleaned = re.sub(r'[<>:"/\\|?*\x00-\x1f]', '_', filename).strip(' .')
    return cleaned or "unnamed"


def load_config_file(file_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Args:
        file_path: Path to configuration file

    Returns:
        Configuration dictionary
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    with open(file_path, 'r', encoding='utf-8') as f:
        if file_path.suffix.lower() in ['.yaml', '.yml']:
            return yaml.safe_load(f) or {}
        elif file_path.suffix.lower() == '.json':
            return json.load(f)
        else:
            raise ValueError(f"Unsupported configuration file format: {file_path.suffix}")


def sanitize_dict(data: Dict[str, Any], sensitive_keys: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Sanitize dictionary by masking sensitive values.

    Args:
        data: Dictionary to sanitize
        sensitive_keys: List of keys to mask (default: common sensitive keys)

    Returns:
        Sanitized dictionary
    """
    if sensitive_keys is None:
        sensitive_keys = [
            'password', 'passwd', 'pwd', 'secret', 'key', 'token', 'passphrase',
        ]

    def _sanitize_value(key: str, value: Any) -> Any:
        if isinstance(value, dict):
            return sanitize_dict(value, sensitive_keys)
        elif isinstance(value, list):
            return [_sanitize_value(key, item) for item in value]
        elif any(sensitive_key in key.lower() for sensitive_key in sensitive_keys):
            return "***MASKED***" if value else value
        else:
            return value

    return {key: _sanitize_value(key, value) for key, value in data.items()}
