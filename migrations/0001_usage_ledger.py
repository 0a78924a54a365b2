from __future__ import annotations

import sqlite3

from usage.store import ensure_usage_schema


def upgrade(conn: sqlite3.Connection) -> None:
    ensure_usage_schema(conn)
