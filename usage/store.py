from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import date


def ensure_usage_schema(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS usage (
            user_id TEXT PRIMARY KEY,
            tokens_used_today INTEGER NOT NULL DEFAULT 0,
            last_reset_date TEXT NOT NULL
        )
        """
    )
    conn.commit()


@dataclass(slots=True)
class UsageRecord:
    user_id: str
    tokens_used_today: int
    last_reset_date: date

    @classmethod
    def from_row(cls, row: dict) -> "UsageRecord":
        raw_date = str(row.get("last_reset_date") or "").strip()
        try:
            # tolerate full ISO timestamps written by older deployments
            last_reset = date.fromisoformat(raw_date[:10])
        except ValueError:
            last_reset = date.min
        return cls(
            user_id=str(row["user_id"]),
            tokens_used_today=max(0, int(row.get("tokens_used_today") or 0)),
            last_reset_date=last_reset,
        )

    def to_row(self) -> dict:
        return {
            "user_id": str(self.user_id),
            "tokens_used_today": int(self.tokens_used_today),
            "last_reset_date": self.last_reset_date.isoformat(),
        }
