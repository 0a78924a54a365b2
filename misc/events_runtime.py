from __future__ import annotations

import asyncio

import discord
from discord.ext import commands
from misc.chunking import send_chunks
from misc.discord_gates import inbound_from_message
from misc.mention_routes import is_command_message
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


async def handle_inbound_message(bot: commands.Bot, message: discord.Message, *, deps: RuntimeDeps) -> str | None:
    """Route one message: prefix commands to the command table, everything else to the orchestrator."""
    if message.author.bot:
        return None

    if is_command_message(message.content, deps.mode.command_prefix):
        await bot.process_commands(message)
        return "command"

    inbound = inbound_from_message(message, bot.user)
    try:
        result = await deps.orchestrator.handle(inbound, typing=message.channel.typing)
        if result.responded:
            await send_chunks(message.channel, result.chunks)
    except discord.HTTPException as e:
        print(f"[Bot] send failed channel={inbound.channel_id}: {e}")
        return None
    except Exception as e:
        print(f"[Bot] message handling error user={inbound.author_id}: {e}")
        return None

    if result.tokens_used:
        print(f"[Bot] answered user={inbound.author_id} tokens={result.tokens_used} chunks={len(result.chunks)}")
    return result.outcome


def register_runtime_events(
    bot: commands.Bot,
    *,
    deps: RuntimeDeps,
    boot: RuntimeBootDeps,
) -> None:
    @bot.event
    async def on_ready():
        print(f"[Bot] online as {bot.user}")

        # on_ready fires again after reconnects; persisted settings load once
        if not getattr(bot, "_mode_loaded", False):
            applied = await deps.mode.reload()
            bot._mode_loaded = True
            print(f"[Mode] loaded {applied} persisted setting(s); prefix={deps.mode.command_prefix!r}")

        if boot.memory_sweep_enabled and not getattr(bot, "_memory_sweep_task", None):
            bot._memory_sweep_task = asyncio.create_task(boot.memory_sweep_loop_func())
            print("[Memory] idle sweep loop started")

    @bot.event
    async def on_message(message: discord.Message):
        await handle_inbound_message(bot, message, deps=deps)
