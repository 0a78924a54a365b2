from __future__ import annotations

import re


def strip_bot_mentions(text: str, bot_user_id: str | None) -> str:
    raw = text or ""
    if bot_user_id:
        raw = re.sub(rf"<@!?\s*{re.escape(str(bot_user_id))}\s*>", "", raw)
    return raw.strip()


def is_command_message(text: str, prefix: str) -> bool:
    return bool(prefix) and (text or "").startswith(prefix)
