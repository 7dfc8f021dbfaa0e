"""
Utility modules for the Backup Assistant.
"""

from backup_assistant.utils.helpers import (
    generate_backup_id,
    build_artifact_path,
    format_bytes,
    format_duration,
    load_config_file,
    sanitize_dict,
)
from backup_assistant.utils.logging import setup_logging

__all__ = [
    "generate_backup_id",
    "build_artifact_path",
    "format_bytes",
    "format_duration",
    "load_config_file",
    "sanitize_dict",
    "setup_logging",
]
