from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from controller.context import ExemptIdentities
from controller.context import parse_channel_token
from controller.context import parse_user_token
from controller.mode import OperatingMode
from memory.service import ConversationMemory
from store.records import StoreError
from usage.service import UsageLedger

MAX_PREFIX_LEN = 3


class InvalidConfiguration(ValueError):
    """An admin-supplied value was rejected before touching operating state."""


@dataclass
class AdminContext:
    mode: OperatingMode
    ledger: UsageLedger
    memory: ConversationMemory
    exempt: ExemptIdentities
    caller_id: str
    latency_ms: float | None = None

    @property
    def caller_is_admin(self) -> bool:
        return self.exempt.is_admin(self.caller_id)


Handler = Callable[[AdminContext, list[str]], Awaitable[str]]


@dataclass(frozen=True)
class CommandSpec:
    name: str
    handler: Handler
    description: str
    usage: str = ""
    admin_only: bool = True


# argument parsing


def parse_non_negative_int(raw: str | None, label: str) -> int:
    text = (raw or "").strip()
    if not text:
        raise InvalidConfiguration(f"Missing value for {label}.")
    try:
        value = int(text)
    except ValueError as e:
        raise InvalidConfiguration(f"{label} must be a whole number, got {text!r}.") from e
    if value < 0:
        raise InvalidConfiguration(f"{label} must not be negative.")
    return value


def parse_toggle(args: list[str], current: bool) -> bool:
    if not args:
        return not current
    word = args[0].strip().lower()
    if word in {"on", "true", "1", "yes", "enable"}:
        return True
    if word in {"off", "false", "0", "no", "disable"}:
        return False
    raise InvalidConfiguration(f"Expected on/off, got {args[0]!r}.")


def parse_prefix(raw: str | None) -> str:
    text = (raw or "").strip()
    if not text or len(text) > MAX_PREFIX_LEN or any(ch.isspace() for ch in text):
        raise InvalidConfiguration(f"Prefix must be 1-{MAX_PREFIX_LEN} non-space characters.")
    return text


def _persist_note(persisted: bool) -> str:
    return "" if persisted else " (not saved; reverts on restart)"


def format_uptime(seconds: float) -> str:
    total = max(0, int(seconds))
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)


# handlers


def _toggle(label: str, getter: Callable[[OperatingMode], bool], setter_name: str, on_word: str = "ON", off_word: str = "OFF") -> Handler:
    async def handler(ctx: AdminContext, args: list[str]) -> str:
        value = parse_toggle(args, getter(ctx.mode))
        persisted = await getattr(ctx.mode, setter_name)(value)
        return f"✅ {label} **{on_word if value else off_word}**.{_persist_note(persisted)}"

    return handler


async def cmd_token_limit(ctx: AdminContext, args: list[str]) -> str:
    value = parse_non_negative_int(args[0] if args else None, "token limit")
    persisted = await ctx.mode.set_token_limit_per_day(value)
    return f"✅ Daily token limit set to **{value}**.{_persist_note(persisted)}"


async def cmd_memory_limit(ctx: AdminContext, args: list[str]) -> str:
    value = parse_non_negative_int(args[0] if args else None, "memory limit")
    persisted = await ctx.mode.set_memory_limit(value)
    return f"✅ Memory limit set to **{value}** exchanges.{_persist_note(persisted)}"


async def cmd_prefix(ctx: AdminContext, args: list[str]) -> str:
    value = parse_prefix(args[0] if args else None)
    persisted = await ctx.mode.set_command_prefix(value)
    return f"✅ Command prefix set to `{value}`.{_persist_note(persisted)}"


async def cmd_channel_add(ctx: AdminContext, args: list[str]) -> str:
    channel_id = parse_channel_token(args[0] if args else None)
    if channel_id is None:
        raise InvalidConfiguration("Usage: channel-add <#channel|channelID>")
    persisted = await ctx.mode.add_allowed_channel(channel_id)
    return f"✅ Channel <#{channel_id}> added to the allow-list.{_persist_note(persisted)}"


async def cmd_channel_remove(ctx: AdminContext, args: list[str]) -> str:
    channel_id = parse_channel_token(args[0] if args else None)
    if channel_id is None:
        raise InvalidConfiguration("Usage: channel-remove <#channel|channelID>")
    if channel_id not in ctx.mode.allowed_channel_ids:
        return f"Channel <#{channel_id}> is not on the allow-list."
    persisted = await ctx.mode.remove_allowed_channel(channel_id)
    note = ""
    if channel_id in ctx.mode.seed_channel_ids:
        note = " It is configured in the environment and will return after a restart."
    return f"✅ Channel <#{channel_id}> removed from the allow-list.{_persist_note(persisted)}{note}"


async def cmd_channels(ctx: AdminContext, args: list[str]) -> str:
    ids = sorted(ctx.mode.allowed_channel_ids)
    header = f"Allowed channels ({len(ids)}), allow-all={'ON' if ctx.mode.allow_all else 'OFF'}:"
    if not ids:
        return header + " (none)"
    return header + "\n" + "\n".join(f"- <#{cid}> ({cid})" for cid in ids)


async def cmd_reset_tokens(ctx: AdminContext, args: list[str]) -> str:
    user_id = parse_user_token(args[0] if args else None)
    if user_id is None:
        raise InvalidConfiguration("Usage: reset-tokens <@user|userID>")
    try:
        await ctx.ledger.reset_usage(user_id)
    except StoreError as e:
        print(f"[Admin] reset-tokens failed user={user_id}: {e}")
        return f"❌ Failed to reset tokens for <@{user_id}>."
    return f"✅ AI tokens reset for <@{user_id}>."


async def cmd_forget(ctx: AdminContext, args: list[str]) -> str:
    user_id = parse_user_token(args[0] if args else None)
    if user_id is None:
        raise InvalidConfiguration("Usage: forget <@user|userID>")
    try:
        await ctx.memory.clear_history(user_id)
    except StoreError as e:
        print(f"[Admin] forget failed user={user_id}: {e}")
        return f"❌ Failed to clear conversation memory for <@{user_id}>."
    return f"✅ Conversation memory cleared for <@{user_id}>."


async def cmd_usage(ctx: AdminContext, args: list[str]) -> str:
    target = ctx.caller_id
    if args:
        parsed = parse_user_token(args[0])
        if parsed is None:
            raise InvalidConfiguration("Usage: usage [@user|userID]")
        target = parsed
    if target != ctx.caller_id and not ctx.caller_is_admin:
        return "You can only view your own usage."
    record = await ctx.ledger.usage_snapshot(target)
    limit = ctx.mode.token_limit_per_day
    if ctx.exempt.is_exempt(target):
        return f"<@{target}> has used {record.tokens_used_today} tokens today (exempt from the {limit}-token limit)."
    remaining = max(0, limit - record.tokens_used_today)
    return f"<@{target}> has used {record.tokens_used_today}/{limit} tokens today ({remaining} left)."


CONFIG_KEY_COMMANDS = {
    "prefix": "prefix",
    "token_limit": "token-limit",
    "memory_limit": "memory-limit",
    "enabled": "bot-toggle",
    "silenced": "bot-silence",
    "maintenance": "maintenance",
    "allow_all": "allow-all",
    "memory": "memory-toggle",
}


async def cmd_config(ctx: AdminContext, args: list[str]) -> str:
    if not args:
        lines = ["Current configuration:"]
        for key, value in ctx.mode.snapshot().items():
            lines.append(f"- {key}: {value}")
        lines.append(f"Settable keys: {', '.join(sorted(CONFIG_KEY_COMMANDS))}")
        return "\n".join(lines)
    key = args[0].strip().lower()
    target = CONFIG_KEY_COMMANDS.get(key)
    if target is None:
        raise InvalidConfiguration(f"Unknown config key {key!r}. Settable: {', '.join(sorted(CONFIG_KEY_COMMANDS))}")
    if len(args) < 2:
        raise InvalidConfiguration(f"Usage: config {key} <value>")
    return await ADMIN_COMMANDS[target].handler(ctx, args[1:])


async def cmd_ping(ctx: AdminContext, args: list[str]) -> str:
    if ctx.latency_ms is None:
        return "🏓 Pong!"
    return f"🏓 Pong! Latency: {ctx.latency_ms:.0f}ms"


async def cmd_uptime(ctx: AdminContext, args: list[str]) -> str:
    return f"⏱️ Uptime: {format_uptime(time.time() - ctx.mode.started_at)}"


async def cmd_help(ctx: AdminContext, args: list[str]) -> str:
    prefix = ctx.mode.command_prefix
    if args:
        entry = ADMIN_COMMANDS.get(args[0].strip().lower().lstrip(prefix))
        if entry is None or (entry.admin_only and not ctx.caller_is_admin):
            return f"No command named `{args[0]}`."
        usage = f"\nUsage: `{prefix}{entry.usage or entry.name}`"
        return f"`{prefix}{entry.name}`: {entry.description}{usage}"
    lines = ["Commands:"]
    for entry in ADMIN_COMMANDS.values():
        if entry.admin_only and not ctx.caller_is_admin:
            continue
        tag = " (admin)" if entry.admin_only else ""
        lines.append(f"- `{prefix}{entry.name}`{tag}: {entry.description}")
    return "\n".join(lines)


_COMMAND_TABLE = [
    CommandSpec("help", cmd_help, "Shows this help message.", "help [command]", admin_only=False),
    CommandSpec("ping", cmd_ping, "Checks the bot's latency.", admin_only=False),
    CommandSpec("uptime", cmd_uptime, "Shows how long the bot has been running.", admin_only=False),
    CommandSpec("usage", cmd_usage, "Shows today's AI token usage.", "usage [@user|userID]", admin_only=False),
    CommandSpec(
        "maintenance",
        _toggle("Maintenance mode", lambda m: m.maintenance_mode, "set_maintenance_mode"),
        "Toggles maintenance mode.",
        "maintenance [on|off]",
    ),
    CommandSpec(
        "bot-silence",
        _toggle("Bot AI", lambda m: m.silenced, "set_silenced", "SILENCED", "ACTIVE"),
        "Toggles AI response silence mode.",
        "bot-silence [on|off]",
    ),
    CommandSpec(
        "bot-toggle",
        _toggle("AI responses", lambda m: m.enabled, "set_enabled", "ENABLED", "DISABLED"),
        "Enables or disables AI responses.",
        "bot-toggle [on|off]",
    ),
    CommandSpec(
        "allow-all",
        _toggle("Respond in all channels", lambda m: m.allow_all, "set_allow_all"),
        "Toggles answering in every channel.",
        "allow-all [on|off]",
    ),
    CommandSpec(
        "memory-toggle",
        _toggle("Conversation memory", lambda m: m.memory_enabled, "set_memory_enabled"),
        "Toggles per-user conversation memory.",
        "memory-toggle [on|off]",
    ),
    CommandSpec("token-limit", cmd_token_limit, "Sets the daily per-user token budget.", "token-limit <number>"),
    CommandSpec("memory-limit", cmd_memory_limit, "Sets how many exchanges are remembered per user.", "memory-limit <number>"),
    CommandSpec("prefix", cmd_prefix, "Sets the command prefix.", "prefix <1-3 chars>"),
    CommandSpec("channel-add", cmd_channel_add, "Adds a channel to the allow-list.", "channel-add <#channel|channelID>"),
    CommandSpec("channel-remove", cmd_channel_remove, "Removes a channel from the allow-list.", "channel-remove <#channel|channelID>"),
    CommandSpec("channels", cmd_channels, "Lists allowed channels."),
    CommandSpec("reset-tokens", cmd_reset_tokens, "Resets a user's daily AI token usage.", "reset-tokens <@user|userID>"),
    CommandSpec("forget", cmd_forget, "Clears a user's conversation memory.", "forget <@user|userID>"),
    CommandSpec("config", cmd_config, "Views or updates bot configuration.", "config [key] [value]"),
]

ADMIN_COMMANDS: dict[str, CommandSpec] = {entry.name: entry for entry in _COMMAND_TABLE}


async def dispatch_admin_command(name: str, args: list[str], ctx: AdminContext) -> str | None:
    """Run one command from the table. Unknown names return None."""
    entry = ADMIN_COMMANDS.get((name or "").strip().lower())
    if entry is None:
        return None
    if entry.admin_only and not ctx.caller_is_admin:
        return "This command is admin-only."
    try:
        return await entry.handler(ctx, list(args))
    except InvalidConfiguration as e:
        return f"❌ {e}"
