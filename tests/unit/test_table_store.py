from __future__ import annotations

import pytest

from mkbd_etl.db.table_store import (
    META_TABLE,
    InMemoryTableStore,
    PostgresTableStore,
    StoreError,
    persist_result,
)
from mkbd_etl.models.etl_result import ETLResult
from mkbd_etl.models.sheet import ProcessedSheet, SheetMetadata


def _sheet(name: str, rows: list[dict]) -> ProcessedSheet:
    headers = list(rows[0]) if rows else []
    meta = SheetMetadata(name + ".xlsx", "2025-01-01T00:00:00Z", len(rows), len(rows))
    return ProcessedSheet(sheet_name=name, table_name=name.lower(), headers=headers, rows=rows, metadata=meta)


class TestInMemoryTableStore:
    def test_create_append_read(self):
        store = InMemoryTableStore()
        store.create_table("vd59", ["Uraian", "JUMLAH"])
        assert store.append_records("vd59", [{"Uraian": "a"}, {"Uraian": "b", "_id": 99}]) == 2
        records = store.read_records("vd59")
        assert [r["_id"] for r in records] == [1, 2]
        assert records[1]["Uraian"] == "b"
        assert store.stats().total_records == 2

    def test_append_requires_table(self):
        with pytest.raises(StoreError, match="does not exist"):
            InMemoryTableStore().append_records("missing", [{}])

    def test_recreate_keeps_records_and_created_at(self):
        store = InMemoryTableStore()
        store.create_table("t", ["a"])
        created = store.list_tables()[0].created_at
        store.append_records("t", [{"a": 1}])
        store.create_table("t", ["a", "b"])
        meta = store.list_tables()[0]
        assert meta.created_at == created
        assert meta.headers == ["a", "b"]
        assert meta.record_count == 1

    def test_clear_and_delete(self):
        store = InMemoryTableStore()
        store.create_table("t", ["a"])
        store.append_records("t", [{"a": 1}])
        store.clear_table("t")
        assert store.read_records("t") == []
        assert store.list_tables()[0].record_count == 0
        store.append_records("t", [{"a": 2}])
        assert store.read_records("t")[0]["_id"] == 2
        store.delete_table("t")
        assert store.list_tables() == []
        assert store.stats().total_tables == 0


def test_persist_result_tags_records():
    store = InMemoryTableStore()
    result = ETLResult(sheets=[_sheet("VD59", [{"Uraian": "x"}]), _sheet("VD58", [{"Uraian": "y"}, {"Uraian": "z"}])])
    count = persist_result(store, result, "report.xlsx", upload_date="2025-01-31T00:00:00Z")
    assert count == 3
    rec = store.read_records("vd58")[1]
    assert rec["_fileName"] == "report.xlsx"
    assert rec["_uploadDate"] == "2025-01-31T00:00:00Z"
    assert {t.table_name for t in store.list_tables()} == {"vd59", "vd58"}


class FakeCursor:
    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        if self.conn.fail_on and self.conn.fail_on in sql:
            raise RuntimeError("relation is locked")
        self.conn.executed.append((sql, params))

    def fetchone(self):
        return self.conn.fetchone_value

    def fetchall(self):
        return self.conn.fetchall_value


class FakeConnection:
    def __init__(self) -> None:
        self.executed: list[tuple] = []
        self.commits = 0
        self.rollbacks = 0
        self.fetchone_value = (1,)
        self.fetchall_value: list[tuple] = []
        self.fail_on: str | None = None

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


@pytest.fixture()
def inserted(monkeypatch):
    import mkbd_etl.db.batch_insert as bi
    calls: list[tuple] = []

    def fake_execute_values(cursor, sql, rows, template=None, page_size=1000):
        calls.append((sql, rows))
    monkeypatch.setattr(bi, "execute_values", fake_execute_values)
    return calls


class TestPostgresTableStore:
    def test_meta_table_created_on_init(self):
        conn = FakeConnection()
        PostgresTableStore(conn)
        assert META_TABLE in conn.executed[0][0]
        assert conn.commits == 1

    def test_create_table(self):
        conn = FakeConnection()
        PostgresTableStore(conn).create_table("vd59", ["Uraian"])
        sqls = [sql for sql, _ in conn.executed]
        assert any('CREATE TABLE IF NOT EXISTS "vd59"' in s for s in sqls)
        assert any("ON CONFLICT (table_name)" in s for s in sqls)

    def test_append_records_wraps_jsonb(self, inserted):
        conn = FakeConnection()
        store = PostgresTableStore(conn)
        count = store.append_records("vd59", [{"Uraian": "x", "_id": 5, "JUMLAH": 1.5}])
        assert count == 1
        sql, rows = inserted[0]
        assert sql == 'INSERT INTO "vd59" ("record") VALUES %s'
        assert rows[0][0].adapted == {"Uraian": "x", "JUMLAH": 1.5}
        assert conn.commits == 2

    def test_append_to_missing_table_rolls_back(self, inserted):
        conn = FakeConnection()
        store = PostgresTableStore(conn)
        conn.fetchone_value = None
        with pytest.raises(StoreError, match="does not exist"):
            store.append_records("nope", [{"a": 1}])
        assert conn.rollbacks == 1
        assert inserted == []

    def test_driver_error_becomes_store_error(self):
        conn = FakeConnection()
        store = PostgresTableStore(conn)
        conn.fail_on = "TRUNCATE"
        with pytest.raises(StoreError, match="relation is locked"):
            store.clear_table("vd59")
        assert conn.rollbacks == 1

    def test_read_records(self):
        conn = FakeConnection()
        store = PostgresTableStore(conn)
        conn.fetchall_value = [(1, {"a": 1}), (2, {"a": 2})]
        assert store.read_records("t") == [{"a": 1, "_id": 1}, {"a": 2, "_id": 2}]
        conn.fetchone_value = None
        assert store.read_records("t") == []
