from __future__ import annotations

import asyncio
import sqlite3
from typing import Any, Callable


# table -> (key column, known columns)
TABLE_SCHEMAS: dict[str, tuple[str, tuple[str, ...]]] = {
    "usage": ("user_id", ("user_id", "tokens_used_today", "last_reset_date")),
    "chat_memory": ("user_id", ("user_id", "history_json", "memory_limit", "updated_at_utc")),
    "runtime_config": ("key", ("key", "value", "updated_at_utc")),
}


class StoreError(RuntimeError):
    """Raised when the record store cannot complete a read or write."""


def _schema_for(table: str) -> tuple[str, tuple[str, ...]]:
    schema = TABLE_SCHEMAS.get(table)
    if schema is None:
        raise StoreError(f"Unknown table: {table!r}")
    return schema


def _checked_columns(table: str, names) -> list[str]:
    _key, columns = _schema_for(table)
    out = []
    for name in names:
        if name not in columns:
            raise StoreError(f"Unknown column {name!r} for table {table!r}")
        out.append(name)
    return out


def get_record_sync(conn: sqlite3.Connection, table: str, key: str) -> dict[str, Any] | None:
    key_col, columns = _schema_for(table)
    cur = conn.cursor()
    cur.execute(
        f"SELECT {', '.join(columns)} FROM {table} WHERE {key_col} = ?",
        (str(key),),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return dict(zip(columns, row))


def upsert_record_sync(conn: sqlite3.Connection, table: str, record: dict[str, Any]) -> None:
    key_col, _columns = _schema_for(table)
    if record.get(key_col) is None:
        raise StoreError(f"Record for {table!r} is missing key column {key_col!r}")
    cols = _checked_columns(table, record.keys())
    updates = [c for c in cols if c != key_col]
    sql = f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({', '.join(['?'] * len(cols))})"
    if updates:
        sql += f" ON CONFLICT({key_col}) DO UPDATE SET " + ", ".join(f"{c} = excluded.{c}" for c in updates)
    else:
        sql += f" ON CONFLICT({key_col}) DO NOTHING"
    cur = conn.cursor()
    cur.execute(sql, tuple(record[c] for c in cols))
    conn.commit()


def delete_record_sync(conn: sqlite3.Connection, table: str, key: str) -> bool:
    key_col, _columns = _schema_for(table)
    cur = conn.cursor()
    cur.execute(f"DELETE FROM {table} WHERE {key_col} = ?", (str(key),))
    conn.commit()
    return cur.rowcount > 0


def get_or_create_record_sync(
    conn: sqlite3.Connection,
    table: str,
    key: str,
    default_factory: Callable[[], dict[str, Any]],
) -> tuple[dict[str, Any], bool]:
    existing = get_record_sync(conn, table, key)
    if existing is not None:
        return existing, False
    key_col, _columns = _schema_for(table)
    record = dict(default_factory())
    record[key_col] = str(key)
    cols = _checked_columns(table, record.keys())
    cur = conn.cursor()
    cur.execute(
        f"INSERT OR IGNORE INTO {table} ({', '.join(cols)}) VALUES ({', '.join(['?'] * len(cols))})",
        tuple(record[c] for c in cols),
    )
    conn.commit()
    created = cur.rowcount > 0
    stored = get_record_sync(conn, table, key)
    return (stored if stored is not None else record), created


def increment_field_sync(conn: sqlite3.Connection, table: str, key: str, field: str, amount: int) -> int | None:
    key_col, _columns = _schema_for(table)
    _checked_columns(table, [field])
    cur = conn.cursor()
    cur.execute(
        f"UPDATE {table} SET {field} = COALESCE({field}, 0) + ? WHERE {key_col} = ?",
        (int(amount), str(key)),
    )
    if cur.rowcount == 0:
        conn.commit()
        return None
    cur.execute(f"SELECT {field} FROM {table} WHERE {key_col} = ?", (str(key),))
    row = cur.fetchone()
    conn.commit()
    return int(row[0]) if row else None


def update_unless_sync(
    conn: sqlite3.Connection,
    table: str,
    key: str,
    values: dict[str, Any],
    guard_field: str,
    guard_value: Any,
) -> bool:
    """Update ``values`` on an existing row only while ``guard_field`` differs from ``guard_value``."""
    key_col, _columns = _schema_for(table)
    cols = _checked_columns(table, values.keys())
    _checked_columns(table, [guard_field])
    if not cols:
        return False
    cur = conn.cursor()
    cur.execute(
        f"UPDATE {table} SET {', '.join(f'{c} = ?' for c in cols)} "
        f"WHERE {key_col} = ? AND ({guard_field} IS NULL OR {guard_field} <> ?)",
        (*(values[c] for c in cols), str(key), guard_value),
    )
    conn.commit()
    return cur.rowcount > 0


def list_records_sync(conn: sqlite3.Connection, table: str) -> list[dict[str, Any]]:
    key_col, columns = _schema_for(table)
    cur = conn.cursor()
    cur.execute(f"SELECT {', '.join(columns)} FROM {table} ORDER BY {key_col}")
    return [dict(zip(columns, row)) for row in cur.fetchall()]


def purge_older_than_sync(conn: sqlite3.Connection, table: str, field: str, cutoff: str) -> int:
    _checked_columns(table, [field])
    cur = conn.cursor()
    cur.execute(f"DELETE FROM {table} WHERE {field} IS NOT NULL AND {field} < ?", (str(cutoff),))
    conn.commit()
    return int(cur.rowcount or 0)


class RecordStore:
    """
    Async facade over the sqlite record functions.

    Every call runs in a worker thread while holding ``db_lock`` and is bounded by
    ``timeout_seconds``. sqlite errors and timeouts surface as StoreError.
    """

    def __init__(self, *, db_lock, db_conn: sqlite3.Connection, timeout_seconds: float = 15.0):
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.timeout_seconds = float(timeout_seconds)

    async def _run(self, op: str, func, *args):
        try:
            async with self.db_lock:
                return await asyncio.wait_for(
                    asyncio.to_thread(func, self.db_conn, *args),
                    timeout=self.timeout_seconds,
                )
        except StoreError:
            raise
        except asyncio.TimeoutError as e:
            raise StoreError(f"{op} timed out after {self.timeout_seconds:.0f}s") from e
        except sqlite3.Error as e:
            raise StoreError(f"{op} failed: {e}") from e

    async def get(self, table: str, key: str) -> dict[str, Any] | None:
        return await self._run(f"get {table}", get_record_sync, table, str(key))

    async def upsert(self, table: str, record: dict[str, Any]) -> None:
        await self._run(f"upsert {table}", upsert_record_sync, table, dict(record))

    async def delete(self, table: str, key: str) -> bool:
        return await self._run(f"delete {table}", delete_record_sync, table, str(key))

    async def get_or_create(
        self,
        table: str,
        key: str,
        default_factory: Callable[[], dict[str, Any]],
    ) -> tuple[dict[str, Any], bool]:
        return await self._run(f"get_or_create {table}", get_or_create_record_sync, table, str(key), default_factory)

    async def increment(self, table: str, key: str, field: str, amount: int) -> int | None:
        return await self._run(f"increment {table}.{field}", increment_field_sync, table, str(key), field, int(amount))

    async def update_unless(
        self,
        table: str,
        key: str,
        values: dict[str, Any],
        *,
        guard_field: str,
        guard_value: Any,
    ) -> bool:
        return await self._run(
            f"update {table}", update_unless_sync, table, str(key), dict(values), guard_field, guard_value
        )

    async def list(self, table: str) -> list[dict[str, Any]]:
        return await self._run(f"list {table}", list_records_sync, table)

    async def purge_older_than(self, table: str, field: str, cutoff: str) -> int:
        return await self._run(f"purge {table}", purge_older_than_sync, table, field, str(cutoff))
