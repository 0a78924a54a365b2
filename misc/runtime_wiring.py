from __future__ import annotations

from jobs.service import memory_sweep_loop
from misc.chunking import send_chunked
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.commands_admin import register as register_admin
from misc.events_runtime import register_runtime_events
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


def wire_bot_runtime(
    bot,
    *,
    mode,
    ledger,
    memory,
    orchestrator,
    exempt,
    max_message_len: int,
    memory_sweep_interval_seconds: int,
    memory_max_idle_hours: int,
) -> None:
    def user_is_admin(user) -> bool:
        try:
            return exempt.is_admin(str(user.id))
        except AttributeError:
            return False

    register_admin(
        bot,
        deps=CommandDeps(
            mode=mode,
            ledger=ledger,
            memory=memory,
            exempt=exempt,
            send_chunked=send_chunked,
            max_message_len=max_message_len,
        ),
        gates=CommandGates(user_is_admin=user_is_admin),
    )

    async def sweep_loop():
        await memory_sweep_loop(
            memory=memory,
            max_idle_hours=memory_max_idle_hours,
            interval_seconds=memory_sweep_interval_seconds,
        )

    register_runtime_events(
        bot,
        deps=RuntimeDeps(
            mode=mode,
            orchestrator=orchestrator,
        ),
        boot=RuntimeBootDeps(
            memory_sweep_enabled=memory_max_idle_hours > 0,
            memory_sweep_loop_func=sweep_loop,
        ),
    )
