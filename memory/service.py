from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

from memory.store import Exchange
from memory.store import chat_memory_row
from memory.store import decode_history
from store.records import RecordStore
from store.records import StoreError

CHAT_MEMORY_TABLE = "chat_memory"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def truncate_history(history: list[Exchange], memory_limit: int) -> list[Exchange]:
    """Keep the newest ``memory_limit`` exchanges, oldest first."""
    limit = max(0, int(memory_limit))
    if limit == 0:
        return []
    return list(history[-limit:])


def format_for_prompt(history: list[Exchange], *, bot_name: str = "Assistant") -> str:
    if not history:
        return ""
    lines = ["Conversation so far:"]
    for exchange in history:
        lines.append(f"User: {exchange.user_message}")
        lines.append(f"{bot_name}: {exchange.bot_response}")
    return "\n".join(lines)


class ConversationMemory:
    """Bounded per-user rolling history of (prompt, response) exchanges."""

    def __init__(
        self,
        *,
        store: RecordStore,
        memory_limit: Callable[[], int],
        now: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.memory_limit = memory_limit
        self.now = now

    async def get_history(self, user_id: str) -> list[Exchange]:
        uid = str(user_id)
        try:
            row = await self.store.get(CHAT_MEMORY_TABLE, uid)
        except StoreError as e:
            print(f"[Memory] read failed user={uid}: {e}")
            return []
        if row is None:
            return []
        return decode_history(row.get("history_json"))

    async def append_exchange(self, user_id: str, user_message: str, bot_response: str) -> None:
        uid = str(user_id)
        limit = int(self.memory_limit())
        # re-read right before writing so a restart between turns cannot drop entries
        try:
            row = await self.store.get(CHAT_MEMORY_TABLE, uid)
        except StoreError as e:
            # writing without the stored turns would replace them; drop this exchange instead
            print(f"[Memory] read before append failed user={uid}; exchange not saved: {e}")
            return
        history = decode_history(row.get("history_json")) if row is not None else []
        history.append(Exchange(str(user_message), str(bot_response), self.now()))
        history = truncate_history(history, limit)
        try:
            await self.store.upsert(CHAT_MEMORY_TABLE, chat_memory_row(uid, history, limit, updated_at=self.now()))
        except StoreError as e:
            print(f"[Memory] write failed user={uid}: {e}")

    def format_for_prompt(self, history: list[Exchange], *, bot_name: str = "Assistant") -> str:
        return format_for_prompt(history, bot_name=bot_name)

    async def clear_history(self, user_id: str) -> None:
        await self.store.delete(CHAT_MEMORY_TABLE, str(user_id))

    async def sweep_idle(self, max_idle: timedelta) -> int:
        cutoff = (self.now() - max_idle).isoformat()
        return await self.store.purge_older_than(CHAT_MEMORY_TABLE, "updated_at_utc", cutoff)
