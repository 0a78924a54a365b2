from __future__ import annotations

import os
import re
from dataclasses import dataclass


def parse_id_set(raw: str | None) -> set[str]:
    """Platform ids are opaque strings; only digit tokens are kept."""
    if not raw:
        return set()
    out: set[str] = set()
    for tok in re.split(r"[\s,;]+", raw.strip()):
        if tok and re.fullmatch(r"\d{1,22}", tok):
            out.add(tok)
    return out


def parse_bool(raw: str | None, default: bool = False) -> bool:
    if raw is None:
        return default
    text = raw.strip().lower()
    if not text:
        return default
    return text in {"1", "true", "yes", "on"}


def env_int(name: str, default: int, *, minimum: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        print(f"[CFG] invalid {name}={raw!r}; falling back to {default!r}")
        return default
    if minimum is not None and value < minimum:
        print(f"[CFG] {name}={value} below minimum {minimum}; falling back to {default!r}")
        return default
    return value


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        print(f"[CFG] invalid {name}={raw!r}; falling back to {default!r}")
        return default


def parse_user_token(token: str | None) -> str | None:
    """Accept a raw id or a user mention like <@123> / <@!123>."""
    text = (token or "").strip()
    m = re.fullmatch(r"<@!?(\d{1,22})>", text)
    if m:
        return m.group(1)
    if re.fullmatch(r"\d{1,22}", text):
        return text
    return None


def parse_channel_token(token: str | None) -> str | None:
    """Accept a raw id or a channel mention like <#123>."""
    text = (token or "").strip()
    m = re.fullmatch(r"<#(\d{1,22})>", text)
    if m:
        return m.group(1)
    if re.fullmatch(r"\d{1,22}", text):
        return text
    return None


@dataclass(frozen=True)
class ExemptIdentities:
    admin_ids: frozenset[str] = frozenset()
    whitelist_ids: frozenset[str] = frozenset()

    def is_admin(self, user_id: str) -> bool:
        return str(user_id) in self.admin_ids

    def is_exempt(self, user_id: str) -> bool:
        uid = str(user_id)
        return uid in self.admin_ids or uid in self.whitelist_ids
