"""
Capture strategies that turn a live database into a SQL dump.

Two strategies share one dump layout:

- FullCaptureStrategy reads each table with a single unbounded query.
- StreamingCaptureStrategy reads each table in fixed-size windows and writes
  every window out before fetching the next, keeping row memory bounded by
  the chunk size.

The dump text carries no timestamps, so capturing unchanged data twice
yields identical bytes.
"""

import asyncio
import io
import logging
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Dict, List, Sequence

from ..core.exceptions import CaptureError, ConfigurationError, DatabaseError
from ..database.base import DatabaseConnection, Row
from ..models.config import BackupConfig


logger = logging.getLogger(__name__)


class StrategyKind(str, Enum):
    """Available capture strategies."""
    FULL = "full"
    STREAMING = "streaming"

    @classmethod
    def for_config(cls, config: BackupConfig) -> "StrategyKind":
        return cls.STREAMING if config.streaming else cls.FULL


@dataclass
class CaptureStats:
    """What a capture run read and wrote."""
    strategy: str
    tables: List[str] = field(default_factory=list)
    rows: Dict[str, int] = field(default_factory=dict)
    estimated_rows: Dict[str, int] = field(default_factory=dict)
    chunks: int = 0
    bytes_written: int = 0

    @property
    def total_rows(self) -> int:
        return sum(self.rows.values())


class CaptureStrategy(ABC):
    """Abstract base class for capture strategies."""

    kind: StrategyKind

    @property
    def name(self) -> str:
        return self.kind.value

    def open_sink(self) -> BinaryIO:
        return io.BytesIO()

    async def execute(self, conn: DatabaseConnection, config: BackupConfig) -> bytes:
        """
        Capture ``config``'s tables from ``conn`` and return the dump.

        Raises:
            CaptureError: if any query against the source fails
        """
        with self.open_sink() as sink:
            await self.capture(conn, config, sink)
            sink.seek(0)
            return sink.read()

    async def capture(self, conn: DatabaseConnection, config: BackupConfig, sink: BinaryIO) -> CaptureStats:
        """Write the dump to ``sink`` and report what was captured."""
        stats = CaptureStats(strategy=self.name)
        try:
            tables = await self._select_tables(conn, config)
            stats.tables = tables

            self._write(sink, stats, self._header(conn, config))

            for table in tables:
                quoted = conn.quote_identifier(table)

                if config.capture_type.includes_schema:
                    definition = await conn.describe_table(table)
                    self._write(
                        sink, stats,
                        f"\n-- Table structure for table {quoted}\n"
                        f"DROP TABLE IF EXISTS {quoted};\n"
                        f"{definition.rstrip().rstrip(';')};\n"
                    )

                if config.capture_type.includes_data:
                    self._write(sink, stats, f"\n-- Data for table {quoted}\n")
                    stats.rows[table] = await self._write_table_data(conn, config, table, sink, stats)

                if config.capture_type.includes_schema:
                    for index in await conn.describe_indexes(table):
                        self._write(sink, stats, f"{index.rstrip().rstrip(';')};\n")

            self._write(sink, stats, self._footer(conn))
        except (DatabaseError, OSError) as e:
            raise CaptureError(
                f"Capture of {config.database} failed: {e}",
                details={"strategy": self.name, "database": config.database},
            ) from e

        logger.debug(
            f"{self.name} capture of {config.database}: {len(stats.tables)} tables, "
            f"{stats.total_rows} rows, {stats.bytes_written} bytes"
        )
        return stats

    @abstractmethod
    async def _write_table_data(
        self,
        conn: DatabaseConnection,
        config: BackupConfig,
        table: str,
        sink: BinaryIO,
        stats: CaptureStats,
    ) -> int:
        """Write the rows of ``table`` and return how many were written."""

    async def _select_tables(self, conn: DatabaseConnection, config: BackupConfig) -> List[str]:
        return [table for table in await conn.list_tables() if config.selects(table)]

    def _header(self, conn: DatabaseConnection, config: BackupConfig) -> str:
        lines = [
            "-- Backup Assistant SQL dump",
            f"-- Database: {config.database}",
            f"-- Capture type: {config.capture_type.value}",
            f"-- Strategy: {self.name}",
            "",
        ]
        lines.extend(f"{statement};" for statement in conn.dump_header_statements())
        return "\n".join(lines) + "\n"

    def _footer(self, conn: DatabaseConnection) -> str:
        lines = [""]
        lines.extend(f"{statement};" for statement in conn.dump_footer_statements())
        lines.append("-- Dump completed")
        return "\n".join(lines) + "\n"

    @staticmethod
    def _write(sink: BinaryIO, stats: CaptureStats, text: str) -> None:
        data = text.encode("utf-8")
        sink.write(data)
        stats.bytes_written += len(data)

    @staticmethod
    def insert_statement(conn: DatabaseConnection, table: str, rows: Sequence[Row]) -> str:
        """One batched INSERT for ``rows``; NULLs are written literally, not escaped."""
        columns = list(rows[0].keys())
        column_list = ", ".join(conn.quote_identifier(column) for column in columns)
        values = []
        for row in rows:
            rendered = [
                "NULL" if row.get(column) is None else conn.escape(row.get(column))
                for column in columns
            ]
            values.append("(" + ", ".join(rendered) + ")")
        return (
            f"INSERT INTO {conn.quote_identifier(table)} ({column_list}) VALUES\n"
            + ",\n".join(values)
            + ";\n"
        )


class FullCaptureStrategy(CaptureStrategy):
    """Reads every table with one query and writes one INSERT per table."""

    kind = StrategyKind.FULL

    async def _write_table_data(self, conn, config, table, sink, stats) -> int:
        rows = await conn.fetch_all(table)
        if not rows:
            return 0
        self._write(sink, stats, self.insert_statement(conn, table, rows))
        stats.chunks += 1
        return len(rows)


class StreamingCaptureStrategy(CaptureStrategy):
    """
    Reads tables in windows of ``chunk_size`` rows.

    The row count fetched up front is only an estimate for logging; the loop
    stops at the first empty window. After every ``throttle_every`` windows
    the strategy sleeps for ``throttle_delay`` seconds to ease load on the
    source server.
    """

    kind = StrategyKind.STREAMING

    def __init__(
        self,
        throttle_every: int = 10,
        throttle_delay: float = 0.001,
        spool_threshold: int = 8 * 1024 * 1024,
    ):
        if throttle_every < 1:
            raise ConfigurationError("throttle_every must be at least 1")
        self.throttle_every = throttle_every
        self.throttle_delay = throttle_delay
        self.spool_threshold = spool_threshold

    def open_sink(self) -> BinaryIO:
        # Spills to a temporary file once the dump outgrows the threshold.
        return tempfile.SpooledTemporaryFile(max_size=self.spool_threshold, mode="w+b")

    async def _write_table_data(self, conn, config, table, sink, stats) -> int:
        estimate = await conn.count_rows(table)
        stats.estimated_rows[table] = estimate
        logger.debug(f"Streaming {table}: about {estimate} rows in chunks of {config.chunk_size}")

        written = 0
        offset = 0
        while True:
            rows = await conn.fetch_page(table, offset, config.chunk_size)
            if not rows:
                break

            self._write(sink, stats, self.insert_statement(conn, table, rows))
            written += len(rows)
            offset += config.chunk_size
            stats.chunks += 1

            if stats.chunks % self.throttle_every == 0:
                await asyncio.sleep(self.throttle_delay)

        if written != estimate:
            logger.warning(
                f"Table {table} changed during capture: estimated {estimate} rows, captured {written}"
            )
        return written


def create_capture_strategy(kind: StrategyKind, **options) -> CaptureStrategy:
    """Create the capture strategy for ``kind``."""
    if kind == StrategyKind.FULL:
        return FullCaptureStrategy()
    elif kind == StrategyKind.STREAMING:
        return StreamingCaptureStrategy(**options)
    else:
        raise ConfigurationError(f"Unsupported capture strategy: {kind}")
