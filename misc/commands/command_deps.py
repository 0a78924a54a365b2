from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from typing import Callable

from config.defaults import DISCORD_MAX_MESSAGE_LEN


@dataclass(frozen=True)
class CommandDeps:
    # Operating state + services
    mode: Any = None
    ledger: Any = None
    memory: Any = None
    exempt: Any = None

    # Output
    send_chunked: Callable | None = None
    max_message_len: int = DISCORD_MAX_MESSAGE_LEN


@dataclass(frozen=True)
class CommandGates:
    user_is_admin: Callable[[Any], bool]
