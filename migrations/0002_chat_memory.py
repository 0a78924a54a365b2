from __future__ import annotations

import sqlite3

from memory.store import ensure_chat_memory_schema


def upgrade(conn: sqlite3.Connection) -> None:
    ensure_chat_memory_schema(conn)
