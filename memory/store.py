from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


def ensure_chat_memory_schema(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS chat_memory (
            user_id TEXT PRIMARY KEY,
            history_json TEXT NOT NULL DEFAULT '[]',
            memory_limit INTEGER NOT NULL DEFAULT 10,
            updated_at_utc TEXT
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_chat_memory_updated_at ON chat_memory(updated_at_utc)")
    conn.commit()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Exchange:
    user_message: str
    bot_response: str
    timestamp: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "user_message": self.user_message,
            "bot_response": self.bot_response,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Exchange":
        raw_ts = str(payload.get("timestamp") or "")
        try:
            ts = datetime.fromisoformat(raw_ts)
        except ValueError:
            ts = datetime.fromtimestamp(0, tz=timezone.utc)
        return cls(
            user_message=str(payload.get("user_message") or ""),
            bot_response=str(payload.get("bot_response") or ""),
            timestamp=ts,
        )


def decode_history(history_json: str | None) -> list[Exchange]:
    """Stored oldest-first; malformed entries are dropped."""
    if not history_json:
        return []
    try:
        payload = json.loads(history_json)
    except (TypeError, ValueError):
        return []
    if not isinstance(payload, list):
        return []
    return [Exchange.from_dict(item) for item in payload if isinstance(item, dict)]


def encode_history(history: list[Exchange]) -> str:
    return json.dumps([e.to_dict() for e in history], ensure_ascii=False)


def chat_memory_row(
    user_id: str,
    history: list[Exchange],
    memory_limit: int,
    *,
    updated_at: datetime | None = None,
) -> dict[str, Any]:
    return {
        "user_id": str(user_id),
        "history_json": encode_history(history),
        "memory_limit": int(memory_limit),
        "updated_at_utc": (updated_at or _utc_now()).isoformat(),
    }
