"""
Database connections for the Backup Assistant.
"""

from backup_assistant.database.base import DatabaseConnection, Row
from backup_assistant.database.mysql import MySQLConnection
from backup_assistant.database.retrying import RetryingConnection
from backup_assistant.database.sqlite import SQLiteConnection

__all__ = [
    "DatabaseConnection",
    "Row",
    "MySQLConnection",
    "RetryingConnection",
    "SQLiteConnection",
]
