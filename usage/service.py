from __future__ import annotations

from datetime import date
from typing import Callable

from store.records import RecordStore
from store.records import StoreError
from usage.store import UsageRecord

USAGE_TABLE = "usage"


class UsageLedger:
    """
    Per-user daily completion-token accounting.

    Reads fail open: when the store is unavailable a user is treated as having used
    nothing today, so store outages never block anyone. Exemption (admins, whitelist)
    is decided by the caller.
    """

    def __init__(
        self,
        *,
        store: RecordStore,
        token_limit: Callable[[], int],
        today: Callable[[], date],
    ):
        self.store = store
        self.token_limit = token_limit
        self.today = today

    def _fresh_row(self) -> dict:
        return {"tokens_used_today": 0, "last_reset_date": self.today().isoformat()}

    async def check_usage(self, user_id: str) -> int:
        uid = str(user_id)
        try:
            row, created = await self.store.get_or_create(USAGE_TABLE, uid, self._fresh_row)
        except StoreError as e:
            print(f"[Usage] check failed user={uid}: {e}")
            return 0
        if created:
            return 0

        record = UsageRecord.from_row(row)
        today = self.today()
        if record.last_reset_date == today:
            return record.tokens_used_today

        # only the first caller of the day resets; a later stale reader must not
        # zero charges that landed after that reset
        try:
            await self.store.update_unless(
                USAGE_TABLE,
                uid,
                {"tokens_used_today": 0, "last_reset_date": today.isoformat()},
                guard_field="last_reset_date",
                guard_value=today.isoformat(),
            )
            row = await self.store.get(USAGE_TABLE, uid)
        except StoreError as e:
            print(f"[Usage] daily reset failed user={uid}: {e}")
            return 0
        if row is None:
            return 0
        record = UsageRecord.from_row(row)
        return record.tokens_used_today if record.last_reset_date == today else 0

    async def record_usage(self, user_id: str, tokens_consumed: int) -> int:
        uid = str(user_id)
        tokens = int(tokens_consumed)
        if tokens < 0:
            raise ValueError("tokens_consumed must be non-negative")

        current = await self.check_usage(uid)
        if tokens == 0:
            return current
        try:
            total = await self.store.increment(USAGE_TABLE, uid, "tokens_used_today", tokens)
            if total is None:
                # record vanished between check and charge (admin purge); recreate it
                total = current + tokens
                await self.store.upsert(
                    USAGE_TABLE,
                    UsageRecord(uid, total, self.today()).to_row(),
                )
        except StoreError as e:
            print(f"[Usage] charge lost user={uid} tokens={tokens}: {e}")
            return current + tokens
        return int(total)

    async def is_over_budget(self, user_id: str) -> bool:
        return await self.check_usage(user_id) >= int(self.token_limit())

    async def reset_usage(self, user_id: str) -> None:
        await self.store.upsert(USAGE_TABLE, UsageRecord(str(user_id), 0, self.today()).to_row())

    async def usage_snapshot(self, user_id: str) -> UsageRecord:
        used = await self.check_usage(user_id)
        return UsageRecord(str(user_id), used, self.today())
