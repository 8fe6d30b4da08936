"""Full-database CSV export over a read-only SQLAlchemy connection."""
from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Sequence, TextIO, Tuple

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

UTF8_BOM = "\ufeff"


class ExportError(RuntimeError):
    """The export could not start or its output file could not be written."""


@dataclass
class ExportSummary:
    """What the exporter wrote for one run."""

    path: Path
    written: bool
    tables: List[str] = field(default_factory=list)
    failed_tables: List[str] = field(default_factory=list)
    rows: int = 0


class DatabaseExporter:
    """Dump every table of one database into a single CSV file."""

    def __init__(self, url: URL | str | None = None, engine: Engine | None = None) -> None:
        if url is None and engine is None:
            raise ValueError("DatabaseExporter needs a URL or an engine")
        self._url = url
        self._engine = engine

    def export(self, path: Path) -> ExportSummary:
        """
        Write all tables to *path*.

        With zero tables nothing is written and ``written`` is false. Failures
        on individual tables are logged and marked inline; only connection and
        file errors raise ``ExportError``.
        """
        owns_engine = self._engine is None
        engine = self._engine or create_engine(self._url, pool_pre_ping=True)
        try:
            with engine.connect() as connection:
                self._set_read_only(connection)
                tables = self.list_tables(connection)
                if not tables:
                    logger.info("No tables found; skipping CSV export.")
                    return ExportSummary(path=path, written=False)
                return self._write(connection, tables, path)
        except SQLAlchemyError as exc:
            raise ExportError(f"Database error during CSV export preparation: {exc}") from exc
        finally:
            if owns_engine:
                engine.dispose()

    def list_tables(self, connection: Connection) -> List[str]:
        """Base tables followed by views, like MySQL's ``SHOW TABLES``."""
        inspector = inspect(connection)
        tables = list(inspector.get_table_names())
        return tables + [name for name in inspector.get_view_names() if name not in tables]

    def _write(self, connection: Connection, tables: Sequence[str], path: Path) -> ExportSummary:
        summary = ExportSummary(path=path, written=True, tables=list(tables))
        try:
            with path.open("w", encoding="utf-8", newline="") as handle:
                handle.write(UTF8_BOM)
                for table in tables:
                    self._write_table(connection, table, handle, summary)
        except OSError as exc:
            raise ExportError(f"Failed to write CSV file {path}: {exc}") from exc
        logger.info(
            "CSV export created: %s (%d tables, %d rows, %d failed)",
            path.name,
            len(summary.tables),
            summary.rows,
            len(summary.failed_tables),
        )
        return summary

    def _write_table(self, connection: Connection, table: str, handle: TextIO, summary: ExportSummary) -> None:
        logger.info("Exporting table to CSV: %s", table)
        writer = csv.writer(handle)
        try:
            columns, rows = self._stream_table(connection, table)
            if columns:
                writer.writerow(columns)
                for row in rows:
                    writer.writerow([_cell(value) for value in row])
                    summary.rows += 1
            else:
                handle.write(f"# No columns found for table: {table}\n")
        except SQLAlchemyError as exc:
            logger.error("Error exporting table '%s' to CSV: %s", table, exc)
            summary.failed_tables.append(table)
            handle.write(f"# ERROR exporting table: {table}\n")
            connection.rollback()
        handle.write("\n")

    def _stream_table(self, connection: Connection, table: str) -> Tuple[List[str], Iterable[Sequence[Any]]]:
        quoted = connection.dialect.identifier_preparer.quote(table)
        result = connection.exec_driver_sql(f"SELECT * FROM {quoted}", execution_options={"stream_results": True})
        return list(result.keys()), result

    @staticmethod
    def _set_read_only(connection: Connection) -> None:
        if connection.dialect.name in {"mysql", "mariadb"}:
            connection.exec_driver_sql("SET SESSION TRANSACTION READ ONLY")


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return value
