"""Database connection interface used by capture strategies and restore."""

import math
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence


Row = Dict[str, Any]


class DatabaseConnection(ABC):
    """
    Capability the backup subsystem needs from a relational database.

    Implementations run the driver's blocking calls inside coroutines so
    that strategies, retries and throttling compose with ``await``.
    """

    dialect: str = "generic"
    _order_cache: Optional[Dict[str, List[str]]] = None

    async def __aenter__(self) -> "DatabaseConnection":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying connection if it is not open yet."""

    @abstractmethod
    async def close(self) -> None:
        """Close the underlying connection."""

    @abstractmethod
    def schema_name(self) -> str:
        """Name of the schema whose tables are captured."""

    @abstractmethod
    def quote_identifier(self, name: str) -> str:
        """Quote a table or column name for this dialect."""

    @abstractmethod
    def _quote_string(self, value: str) -> str:
        """Quote a text literal for this dialect."""

    @abstractmethod
    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Row]:
        """Run a statement that returns rows."""

    @abstractmethod
    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        """Run a statement that does not return rows; returns the affected row count."""

    @abstractmethod
    async def commit(self) -> None:
        """Commit the current transaction."""

    @abstractmethod
    async def list_tables(self) -> List[str]:
        """Base tables of the current schema, in a stable order."""

    @abstractmethod
    async def describe_table(self, table: str) -> str:
        """The CREATE statement of ``table`` without a trailing semicolon."""

    @abstractmethod
    async def primary_key(self, table: str) -> List[str]:
        """Primary key columns of ``table`` in key order (may be empty)."""

    async def describe_indexes(self, table: str) -> List[str]:
        """Index definitions not already part of describe_table."""
        return []

    def escape(self, value: Any) -> str:
        """Render a non-NULL scalar as a SQL literal."""
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            if math.isfinite(value):
                return repr(value)
            return self._quote_string(str(value))
        if isinstance(value, Decimal):
            return str(value) if value.is_finite() else self._quote_string(str(value))
        if isinstance(value, (bytes, bytearray, memoryview)):
            return f"X'{bytes(value).hex()}'"
        if isinstance(value, datetime):
            return self._quote_string(value.isoformat(sep=" "))
        if isinstance(value, (date, time)):
            return self._quote_string(value.isoformat())
        if isinstance(value, timedelta):
            return self._quote_string(_format_timedelta(value))
        return self._quote_string(str(value))

    async def _order_columns(self, table: str) -> List[str]:
        return await self.primary_key(table)

    async def _page_order(self, table: str) -> List[str]:
        """Ordering of fetch_page, resolved once per table while the connection is open."""
        if self._order_cache is None:
            self._order_cache = {}
        if table not in self._order_cache:
            self._order_cache[table] = await self._order_columns(table)
        return self._order_cache[table]

    async def count_rows(self, table: str) -> int:
        rows = await self.query(f"SELECT COUNT(*) AS row_count FROM {self.quote_identifier(table)}")
        return int(rows[0]["row_count"]) if rows else 0

    async def fetch_all(self, table: str) -> List[Row]:
        return await self.query(f"SELECT * FROM {self.quote_identifier(table)}")

    async def fetch_page(self, table: str, offset: int, limit: int) -> List[Row]:
        """Rows in the window ``[offset, offset + limit)`` of a stable ordering."""
        order = await self._page_order(table)
        sql = f"SELECT * FROM {self.quote_identifier(table)}"
        if order:
            sql += " ORDER BY " + ", ".join(self.quote_identifier(column) for column in order)
        sql += f" LIMIT {int(limit)} OFFSET {int(offset)}"
        return await self.query(sql)

    async def estimate_size(self) -> Dict[str, Any]:
        """Row counts per table of the current schema."""
        tables = {}
        for table in await self.list_tables():
            tables[table] = await self.count_rows(table)
        return {
            "database": self.schema_name(),
            "tables": tables,
            "total_rows": sum(tables.values()),
        }

    def dump_header_statements(self) -> List[str]:
        """Session statements written before the first table of a dump."""
        return []

    def dump_footer_statements(self) -> List[str]:
        """Session statements written after the last table of a dump."""
        return []


def _format_timedelta(value: timedelta) -> str:
    total = int(value.total_seconds())
    sign = "-" if total < 0 else ""
    hours, remainder = divmod(abs(total), 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"
