from __future__ import annotations

import csv
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError

from backup_relay.exporter import DatabaseExporter, ExportError


def _make_db(path: Path, statements) -> str:
    url = f"sqlite:///{path}"
    engine = create_engine(url)
    with engine.begin() as connection:
        for statement in statements:
            connection.exec_driver_sql(statement)
    engine.dispose()
    return url


@pytest.fixture
def shop_db(tmp_path: Path) -> str:
    return _make_db(
        tmp_path / "shop.db",
        [
            "CREATE TABLE customers (id INTEGER PRIMARY KEY, name TEXT, email TEXT)",
            "INSERT INTO customers VALUES (1, 'Ada', 'ada@example.com')",
            "INSERT INTO customers VALUES (2, 'Bob, Jr.', NULL)",
            "CREATE TABLE orders (id INTEGER PRIMARY KEY, customer_id INTEGER, total REAL)",
            "INSERT INTO orders VALUES (10, 1, 9.5)",
            "CREATE TABLE products (sku TEXT, title TEXT)",
            "INSERT INTO products VALUES ('A-1', 'Widget')",
        ],
    )


def test_export_writes_bom_headers_and_rows(shop_db, tmp_path: Path):
    target = tmp_path / "export.csv"
    summary = DatabaseExporter(shop_db).export(target)

    assert summary.written is True
    assert summary.tables == ["customers", "orders", "products"]
    assert summary.failed_tables == []
    assert summary.rows == 4

    raw = target.read_bytes()
    assert raw.startswith(b"\xef\xbb\xbf")

    rows = list(csv.reader(target.read_text(encoding="utf-8-sig").splitlines()))
    assert rows[0] == ["id", "name", "email"]
    assert rows[1] == ["1", "Ada", "ada@example.com"]
    assert rows[2] == ["2", "Bob, Jr.", ""]
    assert rows[3] == []
    assert rows[4] == ["id", "customer_id", "total"]


def test_export_isolates_failing_table(shop_db, tmp_path: Path, monkeypatch):
    target = tmp_path / "export.csv"
    exporter = DatabaseExporter(shop_db)
    original = exporter._stream_table

    def _stream_table(connection, table):
        if table == "orders":
            raise OperationalError("SELECT * FROM orders", {}, Exception("table is locked"))
        return original(connection, table)

    monkeypatch.setattr(exporter, "_stream_table", _stream_table)
    summary = exporter.export(target)

    assert summary.failed_tables == ["orders"]
    text = target.read_text(encoding="utf-8-sig")
    assert "# ERROR exporting table: orders" in text
    assert "sku,title" in text
    assert "A-1,Widget" in text
    assert target.stat().st_size > 0


def test_export_with_zero_tables_writes_nothing(tmp_path: Path):
    url = _make_db(tmp_path / "empty.db", [])
    target = tmp_path / "export.csv"

    summary = DatabaseExporter(url).export(target)

    assert summary.written is False
    assert not target.exists()


def test_export_raises_when_database_unreachable(tmp_path: Path):
    url = f"sqlite:///{tmp_path / 'missing' / 'nowhere.db'}"
    with pytest.raises(ExportError):
        DatabaseExporter(url).export(tmp_path / "export.csv")


def test_export_raises_when_output_unwritable(shop_db, tmp_path: Path):
    target = tmp_path / "no-such-dir" / "export.csv"
    with pytest.raises(ExportError):
        DatabaseExporter(shop_db).export(target)


def test_export_marks_tables_without_columns(shop_db, tmp_path: Path, monkeypatch):
    exporter = DatabaseExporter(shop_db)
    monkeypatch.setattr(exporter, "_stream_table", lambda connection, table: ([], []))

    target = tmp_path / "export.csv"
    exporter.export(target)

    assert "# No columns found for table: customers" in target.read_text(encoding="utf-8-sig")


def test_export_includes_views(tmp_path: Path):
    url = _make_db(
        tmp_path / "views.db",
        [
            "CREATE TABLE items (id INTEGER PRIMARY KEY, label TEXT)",
            "INSERT INTO items VALUES (1, 'first')",
            "CREATE VIEW item_labels AS SELECT label FROM items",
        ],
    )
    target = tmp_path / "export.csv"

    summary = DatabaseExporter(url).export(target)

    assert summary.tables == ["items", "item_labels"]
    assert summary.rows == 2
    rows = list(csv.reader(target.read_text(encoding="utf-8-sig").splitlines()))
    assert ["label"] in rows
    assert rows.count(["first"]) == 1


def test_export_keeps_rows_streamed_before_a_table_fails(shop_db, tmp_path: Path, monkeypatch):
    exporter = DatabaseExporter(shop_db)
    original = exporter._stream_table

    def _rows():
        yield (10, 1, 9.5)
        raise OperationalError("SELECT * FROM orders", {}, Exception("connection lost"))

    def _stream_table(connection, table):
        if table == "orders":
            return ["id", "customer_id", "total"], _rows()
        return original(connection, table)

    monkeypatch.setattr(exporter, "_stream_table", _stream_table)
    target = tmp_path / "export.csv"
    summary = exporter.export(target)

    assert summary.failed_tables == ["orders"]
    text = target.read_text(encoding="utf-8-sig")
    assert "id,customer_id,total\n10,1,9.5\n# ERROR exporting table: orders\n" in text
    assert "A-1,Widget" in text
