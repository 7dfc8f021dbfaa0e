"""SQLite connection implementation using built-in sqlite3."""

import logging
import sqlite3
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from ..core.exceptions import DatabaseError
from .base import DatabaseConnection, Row


logger = logging.getLogger(__name__)


class SQLiteConnection(DatabaseConnection):
    """DatabaseConnection backed by a SQLite file (or ``:memory:``)."""

    dialect = "sqlite"

    def __init__(
        self,
        database_path: Union[str, Path],
        timeout: float = 5.0,
        create: bool = False,
    ):
        """Initialize SQLite connection.

        Args:
            database_path: Path to the database file or ``:memory:``
            timeout: Seconds to wait on a locked database
            create: Whether a missing file may be created (restore targets)
        """
        self.database_path = str(database_path)
        self.timeout = timeout
        self.create = create
        self._connection: Optional[sqlite3.Connection] = None

    @classmethod
    def from_connection(cls, connection: sqlite3.Connection, name: str = "main") -> "SQLiteConnection":
        """Wrap an already open sqlite3 connection."""
        instance = cls(name)
        connection.row_factory = sqlite3.Row
        instance._connection = connection
        return instance

    async def connect(self) -> None:
        if self._connection is not None:
            return

        is_memory = self.database_path == ":memory:"
        if not is_memory:
            path = Path(self.database_path)
            if not path.exists() and not self.create:
                raise DatabaseError(f"SQLite database not found: {path}")
            path.parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(self.database_path, timeout=self.timeout)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to open SQLite database {self.database_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        self._connection = conn
        logger.debug(f"Opened SQLite database {self.database_path}")

    async def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        self._order_cache = None

    def _require_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            raise DatabaseError("SQLite connection is not open")
        return self._connection

    def schema_name(self) -> str:
        return "main"

    def quote_identifier(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def _quote_string(self, value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Row]:
        conn = self._require_connection()
        try:
            cursor = conn.execute(sql, tuple(params or ()))
            return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise DatabaseError(f"SQLite query failed: {e}", details={"sql": sql[:200]}) from e

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        conn = self._require_connection()
        try:
            cursor = conn.execute(sql, tuple(params or ()))
            return cursor.rowcount
        except sqlite3.Error as e:
            raise DatabaseError(f"SQLite statement failed: {e}", details={"sql": sql[:200]}) from e

    async def commit(self) -> None:
        conn = self._require_connection()
        try:
            conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(f"SQLite commit failed: {e}") from e

    async def list_tables(self) -> List[str]:
        rows = await self.query(
            "SELECT name FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [row["name"] for row in rows]

    async def describe_table(self, table: str) -> str:
        rows = await self.query(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
        )
        if not rows or not rows[0]["sql"]:
            raise DatabaseError(f"Table not found: {table}")
        return rows[0]["sql"]

    async def describe_indexes(self, table: str) -> List[str]:
        rows = await self.query(
            "SELECT sql FROM sqlite_master "
            "WHERE type = 'index' AND tbl_name = ? AND sql IS NOT NULL ORDER BY name",
            (table,),
        )
        return [row["sql"] for row in rows]

    async def primary_key(self, table: str) -> List[str]:
        rows = await self.query(f"PRAGMA table_info({self.quote_identifier(table)})")
        keyed = sorted((row for row in rows if row["pk"]), key=lambda row: row["pk"])
        return [row["name"] for row in keyed]

    async def _order_columns(self, table: str) -> List[str]:
        # Tables without a declared key are ordered by their implicit rowid.
        return await self.primary_key(table) or ["rowid"]

    def dump_header_statements(self) -> List[str]:
        return ["PRAGMA foreign_keys=OFF"]

    def dump_footer_statements(self) -> List[str]:
        return ["PRAGMA foreign_keys=ON"]
