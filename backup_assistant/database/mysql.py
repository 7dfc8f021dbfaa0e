"""MySQL connection implementation using mysql-connector-python."""

import logging
from typing import Any, Dict, List, Optional, Sequence

import mysql.connector
from mysql.connector import Error as MySQLError

from ..core.exceptions import DatabaseError
from .base import DatabaseConnection, Row


logger = logging.getLogger(__name__)

_ESCAPES = {
    "\\": "\\\\",
    "\0": "\\0",
    "\n": "\\n",
    "\r": "\\r",
    "'": "\\'",
    '"': '\\"',
    "\x1a": "\\Z",
}


class MySQLConnection(DatabaseConnection):
    """DatabaseConnection backed by a single mysql-connector connection."""

    dialect = "mysql"

    def __init__(
        self,
        database: str,
        host: str = "localhost",
        port: int = 3306,
        user: str = "root",
        password: str = "",
        charset: str = "utf8mb4",
        connection_timeout: int = 10,
        **extra_params: Any
    ):
        self.database = database
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.charset = charset
        self.connection_timeout = connection_timeout
        self.extra_params = extra_params
        self._connection = None
        self._needs_ping = False

    def _create_connection_config(self) -> Dict[str, Any]:
        """Create connection configuration dictionary."""
        conn_config = {
            'host': self.host,
            'port': self.port,
            'user': self.user,
            'password': self.password,
            'database': self.database,
            'charset': self.charset,
            'autocommit': False,
            'connection_timeout': self.connection_timeout,
            'use_unicode': True,
        }
        conn_config.update(self.extra_params)
        return conn_config

    def _wrap_error(self, error: MySQLError, action: str, sql: Optional[str] = None) -> DatabaseError:
        self._needs_ping = True
        details = {"sql": sql[:200]} if sql else {}
        return DatabaseError(
            f"MySQL {action} failed: {error}",
            error_code=getattr(error, "errno", None),
            details=details,
        )

    async def connect(self) -> None:
        if self._connection is not None:
            return
        try:
            self._connection = mysql.connector.connect(**self._create_connection_config())
        except MySQLError as e:
            raise self._wrap_error(e, "connection") from e
        logger.info(f"Connected to MySQL database {self.database} at {self.host}:{self.port}")

    async def close(self) -> None:
        if self._connection is not None:
            try:
                self._connection.close()
            except MySQLError as e:
                logger.warning(f"Error during MySQL disconnect: {e}")
            self._connection = None
        self._order_cache = None

    def _require_connection(self):
        if self._connection is None:
            raise DatabaseError("MySQL connection is not open")
        if self._needs_ping:
            # A previous statement failed; re-establish a dropped session.
            try:
                self._connection.ping(reconnect=True, attempts=1, delay=0)
            except MySQLError as e:
                raise self._wrap_error(e, "reconnect") from e
            self._needs_ping = False
        return self._connection

    def schema_name(self) -> str:
        return self.database

    def quote_identifier(self, name: str) -> str:
        return "`" + name.replace("`", "``") + "`"

    def _quote_string(self, value: str) -> str:
        return "'" + "".join(_ESCAPES.get(char, char) for char in value) + "'"

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Row]:
        conn = self._require_connection()
        try:
            cursor = conn.cursor(dictionary=True)
            try:
                cursor.execute(sql, tuple(params) if params else None)
                return list(cursor.fetchall())
            finally:
                cursor.close()
        except MySQLError as e:
            raise self._wrap_error(e, "query", sql) from e

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        conn = self._require_connection()
        try:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, tuple(params) if params else None)
                return cursor.rowcount
            finally:
                cursor.close()
        except MySQLError as e:
            raise self._wrap_error(e, "statement", sql) from e

    async def commit(self) -> None:
        conn = self._require_connection()
        try:
            conn.commit()
        except MySQLError as e:
            raise self._wrap_error(e, "commit") from e

    async def list_tables(self) -> List[str]:
        rows = await self.query(
            "SELECT TABLE_NAME AS table_name FROM information_schema.TABLES "
            "WHERE TABLE_SCHEMA = %s AND TABLE_TYPE = 'BASE TABLE' ORDER BY TABLE_NAME",
            (self.database,),
        )
        return [row["table_name"] for row in rows]

    async def describe_table(self, table: str) -> str:
        rows = await self.query(f"SHOW CREATE TABLE {self.quote_identifier(table)}")
        if not rows:
            raise DatabaseError(f"Table not found: {table}")
        return rows[0]["Create Table"]

    async def primary_key(self, table: str) -> List[str]:
        rows = await self.query(
            "SELECT COLUMN_NAME AS column_name FROM information_schema.KEY_COLUMN_USAGE "
            "WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s AND CONSTRAINT_NAME = 'PRIMARY' "
            "ORDER BY ORDINAL_POSITION",
            (self.database, table),
        )
        return [row["column_name"] for row in rows]

    async def unique_key(self, table: str) -> List[str]:
        """Columns of the first unique index made only of NOT NULL columns."""
        rows = await self.query(
            "SELECT s.INDEX_NAME AS index_name, s.COLUMN_NAME AS column_name, "
            "c.IS_NULLABLE AS is_nullable FROM information_schema.STATISTICS s "
            "LEFT JOIN information_schema.COLUMNS c ON c.TABLE_SCHEMA = s.TABLE_SCHEMA "
            "AND c.TABLE_NAME = s.TABLE_NAME AND c.COLUMN_NAME = s.COLUMN_NAME "
            "WHERE s.TABLE_SCHEMA = %s AND s.TABLE_NAME = %s AND s.NON_UNIQUE = 0 "
            "ORDER BY s.INDEX_NAME, s.SEQ_IN_INDEX",
            (self.database, table),
        )
        indexes: Dict[str, List[Row]] = {}
        for row in rows:
            indexes.setdefault(row["index_name"], []).append(row)
        for columns in indexes.values():
            # NULLs repeat inside a unique index, and functional key parts have no column.
            if all(column["column_name"] and column["is_nullable"] == "NO" for column in columns):
                return [column["column_name"] for column in columns]
        return []

    async def column_names(self, table: str) -> List[str]:
        rows = await self.query(
            "SELECT COLUMN_NAME AS column_name FROM information_schema.COLUMNS "
            "WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s ORDER BY ORDINAL_POSITION",
            (self.database, table),
        )
        return [row["column_name"] for row in rows]

    async def _order_columns(self, table: str) -> List[str]:
        # Keyless tables are ordered by every column so paging stays stable.
        return (
            await self.primary_key(table)
            or await self.unique_key(table)
            or await self.column_names(table)
        )

    async def estimate_size(self) -> Dict[str, Any]:
        rows = await self.query(
            "SELECT TABLE_NAME AS table_name, TABLE_ROWS AS table_rows, "
            "DATA_LENGTH + INDEX_LENGTH AS size_bytes FROM information_schema.TABLES "
            "WHERE TABLE_SCHEMA = %s AND TABLE_TYPE = 'BASE TABLE' ORDER BY TABLE_NAME",
            (self.database,),
        )
        tables = {row["table_name"]: int(row["table_rows"] or 0) for row in rows}
        return {
            "database": self.database,
            "tables": tables,
            "total_rows": sum(tables.values()),
            "total_bytes": sum(int(row["size_bytes"] or 0) for row in rows),
        }

    def dump_header_statements(self) -> List[str]:
        return [
            "SET NAMES utf8mb4",
            "SET FOREIGN_KEY_CHECKS=0",
            "SET UNIQUE_CHECKS=0",
            "SET SQL_MODE='NO_AUTO_VALUE_ON_ZERO'",
        ]

    def dump_footer_statements(self) -> List[str]:
        return [
            "SET UNIQUE_CHECKS=1",
            "SET FOREIGN_KEY_CHECKS=1",
        ]
