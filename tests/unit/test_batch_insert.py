from __future__ import annotations

import pytest

from mkbd_etl.db.batch_insert import BatchInsertError, InsertResult, batch_insert


class DummyCursor:
    def __init__(self) -> None:
        self.queries: list[str] = []
        self.rows: list[list] = []
        self.template: str | None = None
        self.page_size: int | None = None

# execute_values is patched inside the module so no database is needed


@pytest.fixture(autouse=True)
def patch_execute_values(monkeypatch):
    import mkbd_etl.db.batch_insert as bi

    def fake_execute_values(cursor, sql, rows, template=None, page_size=1000):
        cursor.queries.append(sql)
        cursor.rows.append(rows)
        cursor.template = template
        cursor.page_size = page_size
    monkeypatch.setattr(bi, "execute_values", fake_execute_values)
    return fake_execute_values


def test_batch_insert_basic():
    cur = DummyCursor()
    res = batch_insert(cur, table="vd59", columns=["record"], rows=[("a",), ("b",)])
    assert isinstance(res, InsertResult)
    assert res.inserted_rows == 2
    assert cur.queries == ['INSERT INTO "vd59" ("record") VALUES %s']


def test_batch_insert_page_size_and_template():
    cur = DummyCursor()
    batch_insert(cur, "t", ["a", "b"], iter([(1, 2)]), page_size=50, template="(%s, %s::jsonb)")
    assert cur.page_size == 50
    assert cur.template == "(%s, %s::jsonb)"
    assert cur.rows == [[(1, 2)]]


def test_batch_insert_empty_rows_skips_driver():
    cur = DummyCursor()
    captured = []
    res = batch_insert(cur, "t", ["a"], [], metrics_callback=captured.append)
    assert res.inserted_rows == 0
    assert cur.queries == []
    assert captured == []


def test_batch_insert_metrics_callback():
    cur = DummyCursor()
    captured = []
    batch_insert(cur, "t", ["a"], [(1,), (2,), (3,)], metrics_callback=captured.append)
    assert len(captured) == 1
    m = captured[0]
    assert m.batch_size == 3
    assert m.end_time >= m.start_time
    assert m.elapsed_seconds == m.end_time - m.start_time


def test_driver_error_is_wrapped(monkeypatch):
    import mkbd_etl.db.batch_insert as bi

    def failing(*args, **kwargs):
        raise RuntimeError("value too long")
    monkeypatch.setattr(bi, "execute_values", failing)
    captured = []
    with pytest.raises(BatchInsertError, match="t: value too long"):
        batch_insert(DummyCursor(), "t", ["a"], [(1,)], metrics_callback=captured.append)
    assert len(captured) == 1
