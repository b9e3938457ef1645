from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from psycopg2.extras import Json

from ..models.etl_result import ETLResult
from ..models.sheet import Row
from .batch_insert import BatchInsertError, BatchMetrics, batch_insert

"""Table store: where processed sheets are saved.

Narrow contract (``TableStore``): create a table, append records, read all
records, clear / delete a table, list tables with stats. Two implementations:

- ``InMemoryTableStore``: dict-backed, used in mock mode and tests
- ``PostgresTableStore``: one ``(_id BIGSERIAL, record JSONB)`` table per sheet
  plus a meta table holding headers, record count and timestamps
"""

__all__ = [
    "StoreError",
    "TableMeta",
    "TableStats",
    "TableStore",
    "InMemoryTableStore",
    "PostgresTableStore",
    "META_TABLE",
    "persist_result",
]

logger = logging.getLogger(__name__)

META_TABLE = "etl_meta_tables"


class StoreError(Exception):
    pass


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class TableMeta:
    table_name: str
    headers: list[str]
    record_count: int
    created_at: str
    last_updated: str


@dataclass(frozen=True)
class TableStats:
    total_tables: int
    total_records: int


class TableStore(Protocol):
    def create_table(self, table_name: str, headers: Sequence[str]) -> None: ...

    def append_records(self, table_name: str, records: Iterable[Mapping[str, Any]]) -> int: ...

    def read_records(self, table_name: str) -> list[Row]: ...

    def clear_table(self, table_name: str) -> None: ...

    def delete_table(self, table_name: str) -> None: ...

    def list_tables(self) -> list[TableMeta]: ...

    def stats(self) -> TableStats: ...


class InMemoryTableStore:
    """Dict-backed store. Records get an auto-incremented ``_id`` per table."""

    def __init__(self) -> None:
        self._meta: dict[str, TableMeta] = {}
        self._records: dict[str, list[Row]] = {}
        self._next_id: dict[str, int] = {}
        self._lock = threading.Lock()

    def create_table(self, table_name: str, headers: Sequence[str]) -> None:
        with self._lock:
            existing = self._meta.get(table_name)
            now = _now()
            self._records.setdefault(table_name, [])
            self._next_id.setdefault(table_name, 1)
            self._meta[table_name] = TableMeta(
                table_name=table_name,
                headers=list(headers),
                record_count=len(self._records[table_name]),
                created_at=existing.created_at if existing else now,
                last_updated=now,
            )

    def append_records(self, table_name: str, records: Iterable[Mapping[str, Any]]) -> int:
        with self._lock:
            if table_name not in self._meta:
                raise StoreError(f"table {table_name} does not exist")
            stored = self._records[table_name]
            added = 0
            for record in records:
                row = {k: v for k, v in record.items() if k != "_id"}
                row["_id"] = self._next_id[table_name]
                self._next_id[table_name] += 1
                stored.append(row)
                added += 1
            meta = self._meta[table_name]
            self._meta[table_name] = TableMeta(
                meta.table_name, meta.headers, len(stored), meta.created_at, _now()
            )
            return added

    def read_records(self, table_name: str) -> list[Row]:
        with self._lock:
            return [dict(r) for r in self._records.get(table_name, [])]

    def clear_table(self, table_name: str) -> None:
        with self._lock:
            if table_name not in self._records:
                return
            self._records[table_name] = []
            meta = self._meta.get(table_name)
            if meta:
                self._meta[table_name] = TableMeta(meta.table_name, meta.headers, 0, meta.created_at, _now())

    def delete_table(self, table_name: str) -> None:
        with self._lock:
            self._meta.pop(table_name, None)
            self._records.pop(table_name, None)
            self._next_id.pop(table_name, None)

    def list_tables(self) -> list[TableMeta]:
        with self._lock:
            return list(self._meta.values())

    def stats(self) -> TableStats:
        tables = self.list_tables()
        return TableStats(total_tables=len(tables), total_records=sum(t.record_count for t in tables))


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


class PostgresTableStore:
    """PostgreSQL-backed store on a psycopg2 connection.

    Every operation runs in its own transaction: committed on success, rolled
    back and re-raised as ``StoreError`` on failure.
    """

    def __init__(self, connection: Any, page_size: int = 1000) -> None:
        self.connection = connection
        self.page_size = page_size
        self._ensure_meta()

    def _run(self, action: str, fn: Any) -> Any:
        try:
            with self.connection.cursor() as cur:
                result = fn(cur)
            self.connection.commit()
            return result
        except (StoreError, BatchInsertError) as e:
            self.connection.rollback()
            raise StoreError(f"{action}: {e}") from e
        except Exception as e:
            self.connection.rollback()
            raise StoreError(f"{action} failed: {e}") from e

    def _ensure_meta(self) -> None:
        def fn(cur: Any) -> None:
            cur.execute(
                f'CREATE TABLE IF NOT EXISTS "{META_TABLE}" ('
                "table_name TEXT PRIMARY KEY, "
                "headers JSONB NOT NULL, "
                "record_count INTEGER NOT NULL DEFAULT 0, "
                "created_at TIMESTAMPTZ NOT NULL DEFAULT now(), "
                "last_updated TIMESTAMPTZ NOT NULL DEFAULT now())"
            )
        self._run("meta table setup", fn)

    def _table_exists(self, cur: Any, table_name: str) -> bool:
        cur.execute(f'SELECT 1 FROM "{META_TABLE}" WHERE table_name = %s', (table_name,))
        return cur.fetchone() is not None

    def create_table(self, table_name: str, headers: Sequence[str]) -> None:
        def fn(cur: Any) -> None:
            cur.execute(
                f'CREATE TABLE IF NOT EXISTS "{table_name}" ('
                "_id BIGSERIAL PRIMARY KEY, record JSONB NOT NULL)"
            )
            cur.execute(
                f'INSERT INTO "{META_TABLE}" (table_name, headers, record_count) '
                f'VALUES (%s, %s, (SELECT count(*) FROM "{table_name}")) '
                "ON CONFLICT (table_name) DO UPDATE SET headers = EXCLUDED.headers, "
                "record_count = EXCLUDED.record_count, last_updated = now()",
                (table_name, Json(list(headers))),
            )
        self._run(f"create table {table_name}", fn)

    def append_records(self, table_name: str, records: Iterable[Mapping[str, Any]]) -> int:
        values = [
            (Json({k: v for k, v in r.items() if k != "_id"}, dumps=_dumps),) for r in records
        ]

        def on_batch(m: BatchMetrics) -> None:
            logger.debug("%s: %d records in %.3fs", table_name, m.batch_size, m.elapsed_seconds)

        def fn(cur: Any) -> int:
            if not self._table_exists(cur, table_name):
                raise StoreError(f"table {table_name} does not exist")
            result = batch_insert(
                cur, table_name, ["record"], values, page_size=self.page_size, metrics_callback=on_batch
            )
            cur.execute(
                f'UPDATE "{META_TABLE}" SET record_count = (SELECT count(*) FROM "{table_name}"), '
                "last_updated = now() WHERE table_name = %s",
                (table_name,),
            )
            return result.inserted_rows
        return self._run(f"append to {table_name}", fn)

    def read_records(self, table_name: str) -> list[Row]:
        def fn(cur: Any) -> list[Row]:
            if not self._table_exists(cur, table_name):
                return []
            cur.execute(f'SELECT _id, record FROM "{table_name}" ORDER BY _id')
            return [{**record, "_id": _id} for _id, record in cur.fetchall()]
        return self._run(f"read {table_name}", fn)

    def clear_table(self, table_name: str) -> None:
        def fn(cur: Any) -> None:
            if not self._table_exists(cur, table_name):
                return
            cur.execute(f'TRUNCATE "{table_name}"')
            cur.execute(
                f'UPDATE "{META_TABLE}" SET record_count = 0, last_updated = now() WHERE table_name = %s',
                (table_name,),
            )
        self._run(f"clear {table_name}", fn)

    def delete_table(self, table_name: str) -> None:
        def fn(cur: Any) -> None:
            cur.execute(f'DELETE FROM "{META_TABLE}" WHERE table_name = %s', (table_name,))
            cur.execute(f'DROP TABLE IF EXISTS "{table_name}"')
        self._run(f"delete {table_name}", fn)

    def list_tables(self) -> list[TableMeta]:
        def fn(cur: Any) -> list[TableMeta]:
            cur.execute(
                "SELECT table_name, headers, record_count, created_at, last_updated "
                f'FROM "{META_TABLE}" ORDER BY table_name'
            )
            return [
                TableMeta(name, list(headers), int(count), created.isoformat(), updated.isoformat())
                for name, headers, count, created, updated in cur.fetchall()
            ]
        return self._run("list tables", fn)

    def stats(self) -> TableStats:
        tables = self.list_tables()
        return TableStats(total_tables=len(tables), total_records=sum(t.record_count for t in tables))


def persist_result(
    store: TableStore,
    result: ETLResult,
    file_name: str,
    upload_date: str | None = None,
) -> int:
    """Save every processed sheet to its own table; returns the records written.

    Records are tagged with ``_fileName`` and ``_uploadDate``. Appending to an
    existing table keeps its previous records.
    """
    upload_date = upload_date or _now()
    total = 0
    for sheet in result.sheets:
        store.create_table(sheet.table_name, sheet.headers)
        records = [{**row, "_fileName": file_name, "_uploadDate": upload_date} for row in sheet.rows]
        count = store.append_records(sheet.table_name, records)
        logger.info("saved %d records to %s", count, sheet.table_name)
        total += count
    return total
