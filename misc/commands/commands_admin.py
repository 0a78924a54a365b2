from __future__ import annotations

import math

from controller.admin_commands import ADMIN_COMMANDS
from controller.admin_commands import AdminContext
from controller.admin_commands import dispatch_admin_command
from discord.ext import commands
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates


def _latency_ms(bot) -> float | None:
    latency = getattr(bot, "latency", None)
    if latency is None or not math.isfinite(latency):
        return None
    return float(latency) * 1000.0


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    def make_command(name: str):
        async def callback(ctx: commands.Context, *args: str):
            entry = ADMIN_COMMANDS[name]
            if entry.admin_only and not gates.user_is_admin(ctx.author):
                print(f"[Admin] denied cmd={name} user={ctx.author.id}")
                await ctx.send("This command is admin-only.")
                return

            admin_ctx = AdminContext(
                mode=deps.mode,
                ledger=deps.ledger,
                memory=deps.memory,
                exempt=deps.exempt,
                caller_id=str(ctx.author.id),
                latency_ms=_latency_ms(bot),
            )
            reply = await dispatch_admin_command(name, list(args), admin_ctx)
            if reply:
                await deps.send_chunked(ctx.channel, reply, deps.max_message_len)

        return callback

    for name, entry in ADMIN_COMMANDS.items():
        bot.command(name=name, help=entry.description, usage=entry.usage)(make_command(name))
