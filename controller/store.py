from __future__ import annotations

import json
import re
import sqlite3
from datetime import datetime, timezone
from typing import Any


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def ensure_runtime_config_schema(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS runtime_config (
            key TEXT PRIMARY KEY,
            value TEXT,
            updated_at_utc TEXT
        )
        """
    )
    conn.commit()


def encode_config_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (set, frozenset, list, tuple)):
        return json.dumps(sorted(str(v) for v in value))
    return str(value)


def decode_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw or "").strip().lower() in {"1", "true", "yes", "on"}


def decode_int(raw: Any) -> int:
    return int(str(raw).strip())


def decode_id_list(raw: Any) -> set[str]:
    text = str(raw or "").strip()
    if not text:
        return set()
    try:
        payload = json.loads(text)
    except ValueError:
        payload = None
    if isinstance(payload, list):
        return {str(v).strip() for v in payload if str(v).strip()}
    # legacy comma-separated value
    return {tok.strip() for tok in re.split(r"[\s,;]+", text) if tok.strip()}


def runtime_config_row(key: str, value: Any) -> dict[str, str]:
    return {
        "key": str(key),
        "value": encode_config_value(value),
        "updated_at_utc": _utc_now_iso(),
    }
