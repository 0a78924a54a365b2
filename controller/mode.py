from __future__ import annotations

import time
from dataclasses import dataclass, field

from config.defaults import DEFAULT_COMMAND_PREFIX
from controller.store import decode_bool
from controller.store import decode_id_list
from controller.store import decode_int
from controller.store import runtime_config_row
from store.records import RecordStore
from store.records import StoreError

RUNTIME_CONFIG_TABLE = "runtime_config"

BOOL_KEYS = ("enabled", "silenced", "maintenance_mode", "allow_all", "memory_enabled")
INT_KEYS = ("token_limit_per_day", "memory_limit")
SET_KEYS = ("allowed_channel_ids",)
STR_KEYS = ("command_prefix",)
PERSISTED_KEYS = BOOL_KEYS + INT_KEYS + SET_KEYS + STR_KEYS


@dataclass(slots=True)
class OperatingModeState:
    enabled: bool = True
    silenced: bool = False
    maintenance_mode: bool = False
    allow_all: bool = False
    allowed_channel_ids: set[str] = field(default_factory=set)
    token_limit_per_day: int = 500
    memory_limit: int = 10
    command_prefix: str = DEFAULT_COMMAND_PREFIX
    memory_enabled: bool = True


class OperatingMode:
    """
    Process-wide operating flags with write-through persistence.

    The in-memory state is authoritative. Every setter changes it synchronously,
    before its first await, then persists best-effort: a failed persist is logged
    and never rolled back or retried.
    """

    def __init__(
        self,
        *,
        store: RecordStore | None,
        defaults: OperatingModeState | None = None,
    ):
        self.store = store
        self.state = defaults if defaults is not None else OperatingModeState()
        self.seed_channel_ids: set[str] = set(self.state.allowed_channel_ids)
        self.started_at = time.time()

    # read access

    @property
    def enabled(self) -> bool:
        return self.state.enabled

    @property
    def silenced(self) -> bool:
        return self.state.silenced

    @property
    def maintenance_mode(self) -> bool:
        return self.state.maintenance_mode

    @property
    def allow_all(self) -> bool:
        return self.state.allow_all

    @property
    def allowed_channel_ids(self) -> frozenset[str]:
        return frozenset(self.state.allowed_channel_ids)

    @property
    def token_limit_per_day(self) -> int:
        return self.state.token_limit_per_day

    @property
    def memory_limit(self) -> int:
        return self.state.memory_limit

    @property
    def command_prefix(self) -> str:
        return self.state.command_prefix

    @property
    def memory_enabled(self) -> bool:
        return self.state.memory_enabled

    def snapshot(self) -> dict:
        return {
            "enabled": self.state.enabled,
            "silenced": self.state.silenced,
            "maintenance_mode": self.state.maintenance_mode,
            "allow_all": self.state.allow_all,
            "allowed_channel_ids": sorted(self.state.allowed_channel_ids),
            "token_limit_per_day": self.state.token_limit_per_day,
            "memory_limit": self.state.memory_limit,
            "command_prefix": self.state.command_prefix,
            "memory_enabled": self.state.memory_enabled,
        }

    # persistence

    async def _persist(self, key: str, value) -> bool:
        if self.store is None:
            return False
        try:
            await self.store.upsert(RUNTIME_CONFIG_TABLE, runtime_config_row(key, value))
        except StoreError as e:
            print(f"[Mode] persist failed key={key}: {e}")
            return False
        return True

    async def set_enabled(self, value: bool) -> bool:
        self.state.enabled = bool(value)
        return await self._persist("enabled", self.state.enabled)

    async def set_silenced(self, value: bool) -> bool:
        self.state.silenced = bool(value)
        return await self._persist("silenced", self.state.silenced)

    async def set_maintenance_mode(self, value: bool) -> bool:
        self.state.maintenance_mode = bool(value)
        return await self._persist("maintenance_mode", self.state.maintenance_mode)

    async def set_allow_all(self, value: bool) -> bool:
        self.state.allow_all = bool(value)
        return await self._persist("allow_all", self.state.allow_all)

    async def set_memory_enabled(self, value: bool) -> bool:
        self.state.memory_enabled = bool(value)
        return await self._persist("memory_enabled", self.state.memory_enabled)

    async def set_token_limit_per_day(self, value: int) -> bool:
        if int(value) < 0:
            raise ValueError("token limit must be non-negative")
        self.state.token_limit_per_day = int(value)
        return await self._persist("token_limit_per_day", self.state.token_limit_per_day)

    async def set_memory_limit(self, value: int) -> bool:
        if int(value) < 0:
            raise ValueError("memory limit must be non-negative")
        self.state.memory_limit = int(value)
        return await self._persist("memory_limit", self.state.memory_limit)

    async def set_command_prefix(self, value: str) -> bool:
        prefix = str(value or "").strip()
        if not prefix:
            raise ValueError("command prefix must not be empty")
        self.state.command_prefix = prefix
        return await self._persist("command_prefix", self.state.command_prefix)

    async def add_allowed_channel(self, channel_id: str) -> bool:
        self.state.allowed_channel_ids = set(self.state.allowed_channel_ids) | {str(channel_id)}
        return await self._persist("allowed_channel_ids", self.state.allowed_channel_ids)

    async def remove_allowed_channel(self, channel_id: str) -> bool:
        self.state.allowed_channel_ids = set(self.state.allowed_channel_ids) - {str(channel_id)}
        return await self._persist("allowed_channel_ids", self.state.allowed_channel_ids)

    async def reload(self) -> int:
        """
        Overlay persisted values on the current defaults.

        Missing or undecodable keys keep their default. The channel allow-list is the
        union of the environment seed and the persisted list. Returns the number of
        keys applied.
        """
        if self.store is None:
            return 0
        try:
            rows = await self.store.list(RUNTIME_CONFIG_TABLE)
        except StoreError as e:
            print(f"[Mode] reload failed, keeping defaults: {e}")
            return 0

        applied = 0
        for row in rows:
            key = str(row.get("key") or "")
            raw = row.get("value")
            if key not in PERSISTED_KEYS:
                print(f"[Mode] ignoring unknown persisted key={key!r}")
                continue
            try:
                if key in BOOL_KEYS:
                    setattr(self.state, key, decode_bool(raw))
                elif key in INT_KEYS:
                    setattr(self.state, key, max(0, decode_int(raw)))
                elif key in SET_KEYS:
                    setattr(self.state, key, set(self.seed_channel_ids) | decode_id_list(raw))
                else:
                    setattr(self.state, key, str(raw or ""))
            except (TypeError, ValueError) as e:
                print(f"[Mode] bad persisted value key={key} value={raw!r}: {e}")
                continue
            applied += 1

        if not self.state.command_prefix:
            print(f"[Mode] empty persisted command prefix; falling back to {DEFAULT_COMMAND_PREFIX!r}")
            self.state.command_prefix = DEFAULT_COMMAND_PREFIX
        print(f"[Mode] reload applied={applied} state={self.snapshot()}")
        return applied
