"""
Tests for the SQLite and MySQL connection adapters and the retrying wrapper.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from mysql.connector import Error as MySQLError

from backup_assistant.core.exceptions import CircuitOpenError, DatabaseError
from backup_assistant.core.retry import RetryConfig, RetryPolicy
from backup_assistant.database.mysql import MySQLConnection
from backup_assistant.database.retrying import RetryingConnection
from backup_assistant.database.sqlite import SQLiteConnection


class TestSQLiteConnection:

    @pytest.mark.asyncio
    async def test_list_tables(self, source_connection):
        assert await source_connection.list_tables() == ["audit_log", "empty_table", "orders", "users"]

    @pytest.mark.asyncio
    async def test_describe_table(self, source_connection):
        definition = await source_connection.describe_table("users")
        assert definition.startswith("CREATE TABLE users")
        assert await source_connection.describe_indexes("users") == [
            "CREATE INDEX idx_users_email ON users (email)"
        ]

    @pytest.mark.asyncio
    async def test_describe_missing_table(self, source_connection):
        with pytest.raises(DatabaseError, match="Table not found"):
            await source_connection.describe_table("nope")

    @pytest.mark.asyncio
    async def test_primary_key(self, source_connection):
        assert await source_connection.primary_key("users") == ["id"]
        assert await source_connection.primary_key("audit_log") == []

    @pytest.mark.asyncio
    async def test_fetch_page_windows(self, source_connection):
        first = await source_connection.fetch_page("users", 0, 4)
        second = await source_connection.fetch_page("users", 4, 4)
        last = await source_connection.fetch_page("users", 8, 4)
        beyond = await source_connection.fetch_page("users", 12, 4)

        ids = [row["id"] for row in first + second + last]
        assert ids == list(range(1, 11))
        assert beyond == []

    @pytest.mark.asyncio
    async def test_fetch_page_without_primary_key_uses_rowid(self, source_connection):
        rows = await source_connection.fetch_page("audit_log", 1, 5)
        assert [row["message"] for row in rows] == ["updated", "semi;colon"]

    @pytest.mark.asyncio
    async def test_page_order_is_resolved_once_per_table(self, source_connection):
        lookup = AsyncMock(wraps=source_connection.primary_key)
        with patch.object(source_connection, "primary_key", new=lookup):
            for offset in range(0, 10, 3):
                await source_connection.fetch_page("users", offset, 3)
            await source_connection.fetch_page("audit_log", 0, 2)
            await source_connection.fetch_page("audit_log", 2, 2)

        assert [call.args[0] for call in lookup.await_args_list] == ["users", "audit_log"]

    @pytest.mark.asyncio
    async def test_count_and_estimate(self, source_connection):
        assert await source_connection.count_rows("users") == 10
        estimate = await source_connection.estimate_size()
        assert estimate["tables"]["orders"] == 5
        assert estimate["total_rows"] == 18

    @pytest.mark.asyncio
    async def test_query_error_is_wrapped(self, source_connection):
        with pytest.raises(DatabaseError, match="SQLite query failed"):
            await source_connection.query("SELEC 1")

    @pytest.mark.asyncio
    async def test_missing_database_file(self, temp_dir):
        conn = SQLiteConnection(temp_dir / "missing.db")
        with pytest.raises(DatabaseError, match="not found"):
            await conn.connect()

    @pytest.mark.asyncio
    async def test_create_and_context_manager(self, temp_dir):
        path = temp_dir / "new" / "target.db"
        async with SQLiteConnection(path, create=True) as conn:
            await conn.execute("CREATE TABLE t (x)")
            assert await conn.execute("INSERT INTO t VALUES (1)") == 1
            await conn.commit()
        assert path.exists()

    def test_escape(self):
        conn = SQLiteConnection(":memory:")
        assert conn.escape("O'Brien") == "'O''Brien'"
        assert conn.escape("back\\slash") == "'back\\slash'"
        assert conn.escape(5) == "5"
        assert conn.escape(True) == "1"
        assert conn.escape(1.5) == "1.5"
        assert conn.escape(float("nan")) == "'nan'"
        assert conn.escape(Decimal("12.30")) == "12.30"
        assert conn.escape(b"\x00\xff") == "X'00ff'"
        assert conn.escape(datetime(2024, 1, 31, 12, 0, 1)) == "'2024-01-31 12:00:01'"
        assert conn.escape(date(2024, 1, 31)) == "'2024-01-31'"
        assert conn.escape(timedelta(hours=26, seconds=5)) == "'26:00:05'"

    def test_quote_identifier(self):
        conn = SQLiteConnection(":memory:")
        assert conn.quote_identifier('we"ird') == '"we""ird"'


class TestMySQLConnection:

    @pytest.fixture
    def driver(self):
        with patch("mysql.connector.connect") as connect:
            native = MagicMock()
            connect.return_value = native
            yield connect, native

    def test_escape(self):
        conn = MySQLConnection(database="shop")
        assert conn.escape("it's") == "'it\\'s'"
        assert conn.escape("a\\b\nc\x00") == "'a\\\\b\\nc\\0'"
        assert conn.escape(7) == "7"
        assert conn.quote_identifier("odd`name") == "`odd``name`"
        assert conn.schema_name() == "shop"

    @pytest.mark.asyncio
    async def test_connect_passes_configuration(self, driver):
        connect, _ = driver
        conn = MySQLConnection(database="shop", host="db", port=3307, user="backup", password="pw")
        await conn.connect()

        kwargs = connect.call_args.kwargs
        assert kwargs["host"] == "db"
        assert kwargs["port"] == 3307
        assert kwargs["database"] == "shop"
        assert kwargs["autocommit"] is False

    @pytest.mark.asyncio
    async def test_list_tables_filters_base_tables(self, driver):
        _, native = driver
        cursor = native.cursor.return_value
        cursor.fetchall.return_value = [{"table_name": "orders"}, {"table_name": "users"}]

        conn = MySQLConnection(database="shop")
        await conn.connect()
        assert await conn.list_tables() == ["orders", "users"]

        sql, params = cursor.execute.call_args.args
        assert "BASE TABLE" in sql
        assert params == ("shop",)

    @pytest.mark.asyncio
    async def test_describe_table(self, driver):
        _, native = driver
        native.cursor.return_value.fetchall.return_value = [
            {"Table": "users", "Create Table": "CREATE TABLE `users` (`id` int)"}
        ]
        conn = MySQLConnection(database="shop")
        await conn.connect()
        assert await conn.describe_table("users") == "CREATE TABLE `users` (`id` int)"

    @pytest.mark.asyncio
    async def test_errors_carry_error_code_and_reconnect(self, driver):
        _, native = driver
        cursor = native.cursor.return_value
        cursor.execute.side_effect = [MySQLError(msg="Lost connection", errno=2013), None]
        cursor.fetchall.return_value = [{"row_count": 3}]

        conn = MySQLConnection(database="shop")
        await conn.connect()
        with pytest.raises(DatabaseError) as exc_info:
            await conn.query("SELECT 1")
        assert exc_info.value.error_code == 2013

        assert await conn.count_rows("users") == 3
        native.ping.assert_called_once_with(reconnect=True, attempts=1, delay=0)

    @pytest.mark.asyncio
    async def test_fetch_page_prefers_primary_key(self, driver):
        _, native = driver
        cursor = native.cursor.return_value
        cursor.fetchall.side_effect = [[{"column_name": "id"}], [{"id": 1}]]

        conn = MySQLConnection(database="shop")
        await conn.connect()
        assert await conn.fetch_page("users", 0, 10) == [{"id": 1}]

        sql = cursor.execute.call_args.args[0]
        assert sql == "SELECT * FROM `users` ORDER BY `id` LIMIT 10 OFFSET 0"

    @pytest.mark.asyncio
    async def test_fetch_page_without_primary_key_uses_unique_key(self, driver):
        _, native = driver
        cursor = native.cursor.return_value
        cursor.fetchall.side_effect = [
            [],
            [
                {"index_name": "uq_code", "column_name": "code", "is_nullable": "YES"},
                {"index_name": "uq_tenant_email", "column_name": "tenant", "is_nullable": "NO"},
                {"index_name": "uq_tenant_email", "column_name": "email", "is_nullable": "NO"},
            ],
            [],
        ]

        conn = MySQLConnection(database="shop")
        await conn.connect()
        await conn.fetch_page("accounts", 20, 10)

        sql = cursor.execute.call_args.args[0]
        assert sql == "SELECT * FROM `accounts` ORDER BY `tenant`, `email` LIMIT 10 OFFSET 20"

    @pytest.mark.asyncio
    async def test_keyless_table_is_ordered_by_every_column(self, driver):
        _, native = driver
        cursor = native.cursor.return_value
        cursor.fetchall.side_effect = [
            [],
            [],
            [{"column_name": "logged_at"}, {"column_name": "message"}],
            [{"logged_at": 1, "message": "a"}],
            [{"logged_at": 2, "message": "b"}],
        ]

        conn = MySQLConnection(database="shop")
        await conn.connect()
        await conn.fetch_page("audit_log", 0, 1)
        await conn.fetch_page("audit_log", 1, 1)

        statements = [call.args[0] for call in cursor.execute.call_args_list]
        assert len(statements) == 5
        assert statements[-1] == (
            "SELECT * FROM `audit_log` ORDER BY `logged_at`, `message` LIMIT 1 OFFSET 1"
        )

        await conn.close()
        assert conn._order_cache is None

    @pytest.mark.asyncio
    async def test_connect_failure(self, driver):
        connect, _ = driver
        connect.side_effect = MySQLError(msg="Access denied", errno=1045)
        with pytest.raises(DatabaseError) as exc_info:
            await MySQLConnection(database="shop").connect()
        assert exc_info.value.error_code == 1045


class TestRetryingConnection:

    def setup_method(self):
        self.sleep = AsyncMock()
        self.policy = RetryPolicy(
            RetryConfig(max_retries=2, base_delay=0.0, max_delay=0.0, failure_threshold=1, cooldown=60),
            sleep=self.sleep,
        )

    @pytest.mark.asyncio
    async def test_transient_read_is_retried(self, source_connection):
        original = source_connection.fetch_page
        source_connection.fetch_page = AsyncMock(
            side_effect=[DatabaseError("database is locked"), await original("users", 0, 2)]
        )
        conn = RetryingConnection(source_connection, self.policy)

        rows = await conn.fetch_page("users", 0, 2)
        assert [row["id"] for row in rows] == [1, 2]
        assert source_connection.fetch_page.await_count == 2

    @pytest.mark.asyncio
    async def test_reads_use_separate_circuits(self, source_connection):
        source_connection.count_rows = AsyncMock(side_effect=DatabaseError("Too many connections"))
        conn = RetryingConnection(source_connection, self.policy)

        with pytest.raises(DatabaseError):
            await conn.count_rows("users")
        with pytest.raises(CircuitOpenError):
            await conn.count_rows("users")

        assert self.policy.is_open("db.count_rows")
        assert await conn.list_tables()

    @pytest.mark.asyncio
    async def test_writes_are_not_retried(self, source_connection):
        source_connection.execute = AsyncMock(side_effect=DatabaseError("database is locked"))
        conn = RetryingConnection(source_connection, self.policy)

        with pytest.raises(DatabaseError):
            await conn.execute("DELETE FROM users")
        assert source_connection.execute.await_count == 1

    def test_pass_through_helpers(self, source_connection):
        conn = RetryingConnection(source_connection, self.policy)
        assert conn.dialect == "sqlite"
        assert conn.escape("x") == "'x'"
        assert conn.schema_name() == "main"
        assert conn.dump_header_statements() == ["PRAGMA foreign_keys=OFF"]
