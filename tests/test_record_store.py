from __future__ import annotations

import asyncio
import os
import sqlite3
import unittest

from db.migrate import apply_sqlite_migrations
from store.records import RecordStore
from store.records import StoreError
from store.records import get_or_create_record_sync
from store.records import increment_field_sync
from store.records import update_unless_sync
from store.records import upsert_record_sync


def _fresh_usage() -> dict:
    return {"tokens_used_today": 0, "last_reset_date": "2026-03-01"}


class RecordStoreSyncTests(unittest.TestCase):
    def setUp(self):
        self.conn = sqlite3.connect(":memory:")
        apply_sqlite_migrations(self.conn, os.path.join(os.getcwd(), "migrations"))

    def tearDown(self):
        self.conn.close()

    def test_get_or_create_reports_creation_once(self):
        row, created = get_or_create_record_sync(self.conn, "usage", "u1", _fresh_usage)
        self.assertTrue(created)
        self.assertEqual(row["user_id"], "u1")
        self.assertEqual(row["tokens_used_today"], 0)

        row, created = get_or_create_record_sync(self.conn, "usage", "u1", _fresh_usage)
        self.assertFalse(created)

    def test_increment_missing_row_returns_none(self):
        self.assertIsNone(increment_field_sync(self.conn, "usage", "ghost", "tokens_used_today", 5))

    def test_increment_adds_to_existing_value(self):
        get_or_create_record_sync(self.conn, "usage", "u1", _fresh_usage)
        self.assertEqual(increment_field_sync(self.conn, "usage", "u1", "tokens_used_today", 7), 7)
        self.assertEqual(increment_field_sync(self.conn, "usage", "u1", "tokens_used_today", 3), 10)

    def test_update_unless_skips_rows_already_at_guard_value(self):
        get_or_create_record_sync(self.conn, "usage", "u1", _fresh_usage)
        increment_field_sync(self.conn, "usage", "u1", "tokens_used_today", 40)
        reset = {"tokens_used_today": 0, "last_reset_date": "2026-03-02"}

        self.assertTrue(update_unless_sync(self.conn, "usage", "u1", reset, "last_reset_date", "2026-03-02"))
        increment_field_sync(self.conn, "usage", "u1", "tokens_used_today", 5)
        self.assertFalse(update_unless_sync(self.conn, "usage", "u1", reset, "last_reset_date", "2026-03-02"))
        self.assertEqual(
            self.conn.execute("SELECT tokens_used_today, last_reset_date FROM usage").fetchone(),
            (5, "2026-03-02"),
        )

    def test_unknown_table_and_column_are_rejected(self):
        with self.assertRaises(StoreError):
            upsert_record_sync(self.conn, "users; DROP TABLE usage", {"user_id": "x"})
        with self.assertRaises(StoreError):
            upsert_record_sync(self.conn, "usage", {"user_id": "x", "bogus": 1})

    def test_upsert_requires_key_column(self):
        with self.assertRaises(StoreError):
            upsert_record_sync(self.conn, "usage", {"tokens_used_today": 1})


class RecordStoreAsyncTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.conn = sqlite3.connect(":memory:", check_same_thread=False)
        apply_sqlite_migrations(self.conn, os.path.join(os.getcwd(), "migrations"))
        self.store = RecordStore(db_lock=asyncio.Lock(), db_conn=self.conn)

    async def asyncTearDown(self):
        self.conn.close()

    async def test_upsert_overwrites_and_get_reads_back(self):
        await self.store.upsert("runtime_config", {"key": "silenced", "value": "false"})
        await self.store.upsert("runtime_config", {"key": "silenced", "value": "true"})
        row = await self.store.get("runtime_config", "silenced")
        self.assertEqual(row["value"], "true")

    async def test_get_missing_returns_none(self):
        self.assertIsNone(await self.store.get("usage", "nobody"))

    async def test_delete_reports_whether_a_row_existed(self):
        await self.store.upsert("chat_memory", {"user_id": "u1", "history_json": "[]"})
        self.assertTrue(await self.store.delete("chat_memory", "u1"))
        self.assertFalse(await self.store.delete("chat_memory", "u1"))

    async def test_list_is_ordered_by_key(self):
        await self.store.upsert("runtime_config", {"key": "b", "value": "2"})
        await self.store.upsert("runtime_config", {"key": "a", "value": "1"})
        rows = await self.store.list("runtime_config")
        self.assertEqual([r["key"] for r in rows], ["a", "b"])

    async def test_purge_older_than_skips_newer_rows(self):
        await self.store.upsert("chat_memory", {"user_id": "old", "updated_at_utc": "2026-01-01T00:00:00+00:00"})
        await self.store.upsert("chat_memory", {"user_id": "new", "updated_at_utc": "2026-03-01T00:00:00+00:00"})
        removed = await self.store.purge_older_than("chat_memory", "updated_at_utc", "2026-02-01T00:00:00+00:00")
        self.assertEqual(removed, 1)
        self.assertIsNone(await self.store.get("chat_memory", "old"))
        self.assertIsNotNone(await self.store.get("chat_memory", "new"))

    async def test_sqlite_errors_surface_as_store_error(self):
        self.conn.close()
        with self.assertRaises(StoreError):
            await self.store.get("usage", "u1")


if __name__ == "__main__":
    unittest.main()
