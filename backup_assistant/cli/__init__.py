"""
Command-line interface for the Backup Assistant.
"""

from backup_assistant.cli.main import main

__all__ = ["main"]
