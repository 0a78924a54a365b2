from __future__ import annotations

import asyncio
import os
import sqlite3
import unittest

from controller.mode import OperatingMode
from controller.mode import OperatingModeState
from controller.store import decode_id_list
from controller.store import encode_config_value
from db.migrate import apply_sqlite_migrations
from store.records import RecordStore
from store.records import StoreError


class _BrokenStore:
    async def upsert(self, *args, **kwargs):
        raise StoreError("store offline")

    async def list(self, *args, **kwargs):
        raise StoreError("store offline")


class ConfigEncodingTests(unittest.TestCase):
    def test_booleans_encode_as_strings(self):
        self.assertEqual(encode_config_value(True), "true")
        self.assertEqual(encode_config_value(False), "false")

    def test_id_sets_encode_sorted(self):
        self.assertEqual(encode_config_value({"2", "1"}), '["1", "2"]')

    def test_id_list_accepts_json_and_legacy_csv(self):
        self.assertEqual(decode_id_list('["1", "2"]'), {"1", "2"})
        self.assertEqual(decode_id_list("1, 2 ,3"), {"1", "2", "3"})
        self.assertEqual(decode_id_list(""), set())


class OperatingModeTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.conn = sqlite3.connect(":memory:", check_same_thread=False)
        apply_sqlite_migrations(self.conn, os.path.join(os.getcwd(), "migrations"))
        self.store = RecordStore(db_lock=asyncio.Lock(), db_conn=self.conn)

    async def asyncTearDown(self):
        self.conn.close()

    def _persisted(self) -> dict[str, str]:
        return dict(self.conn.execute("SELECT key, value FROM runtime_config").fetchall())

    async def test_setters_write_through(self):
        mode = OperatingMode(store=self.store)
        self.assertTrue(await mode.set_silenced(True))
        self.assertTrue(await mode.set_token_limit_per_day(750))
        self.assertTrue(await mode.add_allowed_channel("42"))
        self.assertTrue(await mode.set_command_prefix("?"))

        persisted = self._persisted()
        self.assertEqual(persisted["silenced"], "true")
        self.assertEqual(persisted["token_limit_per_day"], "750")
        self.assertEqual(persisted["allowed_channel_ids"], '["42"]')
        self.assertEqual(persisted["command_prefix"], "?")

    async def test_reload_restores_persisted_state(self):
        first = OperatingMode(store=self.store)
        await first.set_maintenance_mode(True)
        await first.set_memory_limit(4)
        await first.set_memory_enabled(False)

        second = OperatingMode(store=self.store)
        applied = await second.reload()
        self.assertEqual(applied, 3)
        self.assertTrue(second.maintenance_mode)
        self.assertEqual(second.memory_limit, 4)
        self.assertFalse(second.memory_enabled)
        self.assertTrue(second.enabled)

    async def test_reload_unions_seed_and_persisted_channels(self):
        first = OperatingMode(store=self.store)
        await first.add_allowed_channel("200")

        second = OperatingMode(store=self.store, defaults=OperatingModeState(allowed_channel_ids={"100"}))
        await second.reload()
        self.assertEqual(second.allowed_channel_ids, frozenset({"100", "200"}))

    async def test_reload_skips_bad_and_unknown_values(self):
        await self.store.upsert("runtime_config", {"key": "token_limit_per_day", "value": "lots"})
        await self.store.upsert("runtime_config", {"key": "giveaway_channel", "value": "9"})
        await self.store.upsert("runtime_config", {"key": "allow_all", "value": "true"})

        mode = OperatingMode(store=self.store, defaults=OperatingModeState(token_limit_per_day=321))
        self.assertEqual(await mode.reload(), 1)
        self.assertEqual(mode.token_limit_per_day, 321)
        self.assertTrue(mode.allow_all)

    async def test_empty_persisted_prefix_falls_back(self):
        await self.store.upsert("runtime_config", {"key": "command_prefix", "value": ""})
        mode = OperatingMode(store=self.store, defaults=OperatingModeState(command_prefix="$"))
        await mode.reload()
        self.assertEqual(mode.command_prefix, "!")

    async def test_invalid_setter_values_leave_state_untouched(self):
        mode = OperatingMode(store=self.store)
        with self.assertRaises(ValueError):
            await mode.set_token_limit_per_day(-5)
        with self.assertRaises(ValueError):
            await mode.set_command_prefix("   ")
        self.assertEqual(mode.token_limit_per_day, 500)
        self.assertEqual(mode.command_prefix, "!")
        self.assertEqual(self._persisted(), {})

    async def test_remove_channel(self):
        mode = OperatingMode(store=self.store, defaults=OperatingModeState(allowed_channel_ids={"1", "2"}))
        await mode.remove_allowed_channel("1")
        self.assertEqual(mode.allowed_channel_ids, frozenset({"2"}))
        self.assertEqual(self._persisted()["allowed_channel_ids"], '["2"]')


class OperatingModePersistFailureTests(unittest.IsolatedAsyncioTestCase):
    async def test_failed_persist_keeps_in_memory_change(self):
        mode = OperatingMode(store=_BrokenStore())
        self.assertFalse(await mode.set_silenced(True))
        self.assertTrue(mode.silenced)

    async def test_change_is_visible_before_persist_completes(self):
        gate = asyncio.Event()

        class _SlowStore:
            async def upsert(self, *args, **kwargs):
                await gate.wait()

        mode = OperatingMode(store=_SlowStore())
        task = asyncio.create_task(mode.set_enabled(False))
        await asyncio.sleep(0)
        self.assertFalse(mode.enabled)
        gate.set()
        self.assertTrue(await task)

    async def test_reload_failure_keeps_defaults(self):
        mode = OperatingMode(store=_BrokenStore(), defaults=OperatingModeState(token_limit_per_day=77))
        self.assertEqual(await mode.reload(), 0)
        self.assertEqual(mode.token_limit_per_day, 77)

    async def test_storeless_mode_reports_unpersisted(self):
        mode = OperatingMode(store=None)
        self.assertFalse(await mode.set_allow_all(True))
        self.assertTrue(mode.allow_all)


if __name__ == "__main__":
    unittest.main()
