"""
Pytest configuration and fixtures for the Backup Assistant tests.

Fixtures build real SQLite databases in temporary directories, local
storage roots and retry policies that never actually sleep.
"""

import sqlite3
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from backup_assistant.backup.manager import BackupManager
from backup_assistant.backup.storage import LocalFilesystemStorage
from backup_assistant.core.retry import RetryConfig, RetryPolicy
from backup_assistant.database.sqlite import SQLiteConnection


SCHEMA = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT,
    balance REAL,
    avatar BLOB
);
CREATE INDEX idx_users_email ON users (email);
CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL REFERENCES users (id),
    note TEXT
);
CREATE TABLE audit_log (
    message TEXT
);
CREATE TABLE empty_table (
    id INTEGER PRIMARY KEY,
    value TEXT
);
"""


def populate(db_path: Path, user_count: int = 10) -> None:
    """Create the sample schema in ``db_path`` and fill it with rows."""
    conn = sqlite3.connect(db_path)
    conn.executescript(SCHEMA)
    conn.executemany(
        "INSERT INTO users (id, name, email, balance, avatar) VALUES (?, ?, ?, ?, ?)",
        [
            (
                i,
                f"user {i}" if i != 3 else "O'Brien; DROP TABLE users; --",
                None if i % 4 == 0 else f"user{i}@example.com",
                i * 10.5,
                bytes([i, 0, 255]) if i % 2 else None,
            )
            for i in range(1, user_count + 1)
        ],
    )
    conn.executemany(
        "INSERT INTO orders (id, user_id, note) VALUES (?, ?, ?)",
        [(i, (i % user_count) + 1, "line1\nline2" if i == 1 else None) for i in range(1, 6)],
    )
    conn.executemany(
        "INSERT INTO audit_log (message) VALUES (?)",
        [("created",), ("updated",), ("semi;colon",)],
    )
    conn.commit()
    conn.close()


def table_rows(db_path: Path, table: str):
    conn = sqlite3.connect(db_path)
    try:
        return conn.execute(f'SELECT * FROM "{table}" ORDER BY rowid').fetchall()
    finally:
        conn.close()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def sample_db_path(temp_dir) -> Path:
    """SQLite database file with the sample schema and rows."""
    db_path = temp_dir / "source.db"
    populate(db_path)
    return db_path


@pytest.fixture
def source_connection(sample_db_path):
    """Open SQLiteConnection on the sample database."""
    conn = SQLiteConnection.from_connection(sqlite3.connect(sample_db_path), name=str(sample_db_path))
    yield conn
    if conn._connection is not None:
        conn._connection.close()


@pytest.fixture
def storage(temp_dir) -> LocalFilesystemStorage:
    return LocalFilesystemStorage(temp_dir / "backups")


@pytest.fixture
def no_sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def fast_retry_policy(no_sleep) -> RetryPolicy:
    """Retry policy with zero delays and a recorded sleep."""
    return RetryPolicy(
        RetryConfig(max_retries=2, base_delay=0.0, max_delay=0.0, failure_threshold=3, cooldown=30.0),
        sleep=no_sleep,
    )


@pytest.fixture
def backup_manager(storage, fast_retry_policy, no_sleep) -> BackupManager:
    storage_policy = RetryPolicy(
        RetryConfig(max_retries=2, base_delay=0.0, max_delay=0.0, failure_threshold=3, cooldown=30.0),
        sleep=no_sleep,
    )
    return BackupManager(storage, database_retry=fast_retry_policy, storage_retry=storage_policy)


@pytest.fixture
def read_table():
    """Function returning every row of a table in a SQLite file."""
    return table_rows
