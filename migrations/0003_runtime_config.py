from __future__ import annotations

import sqlite3

from controller.store import ensure_runtime_config_schema


def upgrade(conn: sqlite3.Connection) -> None:
    ensure_runtime_config_schema(conn)
