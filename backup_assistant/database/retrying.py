"""DatabaseConnection decorator that runs reads under a RetryPolicy."""

from typing import Any, Dict, List, Optional, Sequence

from ..core.retry import RetryPolicy
from .base import DatabaseConnection, Row


class RetryingConnection(DatabaseConnection):
    """
    Wraps a connection so that reads are retried on transient failures.

    Each read operation has its own circuit key (``db.query``,
    ``db.fetch_page`` and so on). Writes and commits pass straight through
    because replaying a partially applied statement is not safe.
    """

    def __init__(self, inner: DatabaseConnection, policy: RetryPolicy, key_prefix: str = "db"):
        self.inner = inner
        self.policy = policy
        self.key_prefix = key_prefix
        self.dialect = inner.dialect

    def _key(self, operation: str) -> str:
        return f"{self.key_prefix}.{operation}"

    async def connect(self) -> None:
        await self.policy.execute(self._key("connect"), self.inner.connect)

    async def close(self) -> None:
        await self.inner.close()

    def schema_name(self) -> str:
        return self.inner.schema_name()

    def quote_identifier(self, name: str) -> str:
        return self.inner.quote_identifier(name)

    def _quote_string(self, value: str) -> str:
        return self.inner._quote_string(value)

    def escape(self, value: Any) -> str:
        return self.inner.escape(value)

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Row]:
        return await self.policy.execute(self._key("query"), self.inner.query, sql, params)

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        return await self.inner.execute(sql, params)

    async def commit(self) -> None:
        await self.inner.commit()

    async def list_tables(self) -> List[str]:
        return await self.policy.execute(self._key("list_tables"), self.inner.list_tables)

    async def describe_table(self, table: str) -> str:
        return await self.policy.execute(self._key("describe_table"), self.inner.describe_table, table)

    async def describe_indexes(self, table: str) -> List[str]:
        return await self.policy.execute(self._key("describe_indexes"), self.inner.describe_indexes, table)

    async def primary_key(self, table: str) -> List[str]:
        return await self.policy.execute(self._key("primary_key"), self.inner.primary_key, table)

    async def count_rows(self, table: str) -> int:
        return await self.policy.execute(self._key("count_rows"), self.inner.count_rows, table)

    async def fetch_all(self, table: str) -> List[Row]:
        return await self.policy.execute(self._key("fetch_all"), self.inner.fetch_all, table)

    async def fetch_page(self, table: str, offset: int, limit: int) -> List[Row]:
        return await self.policy.execute(
            self._key("fetch_page"), self.inner.fetch_page, table, offset, limit
        )

    async def estimate_size(self) -> Dict[str, Any]:
        return await self.policy.execute(self._key("estimate_size"), self.inner.estimate_size)

    def dump_header_statements(self) -> List[str]:
        return self.inner.dump_header_statements()

    def dump_footer_statements(self) -> List[str]:
        return self.inner.dump_footer_statements()
