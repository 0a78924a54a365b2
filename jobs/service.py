from __future__ import annotations

import asyncio
from datetime import timedelta


async def sweep_idle_memory_once(memory, *, max_idle_hours: int) -> int:
    removed = await memory.sweep_idle(timedelta(hours=max_idle_hours))
    if removed:
        print(f"[Memory] idle sweep removed={removed} max_idle_hours={max_idle_hours}")
    return removed


async def memory_sweep_loop(
    *,
    memory,
    max_idle_hours: int,
    interval_seconds: int = 3600,
) -> None:
    if max_idle_hours <= 0:
        return

    while True:
        try:
            await sweep_idle_memory_once(memory, max_idle_hours=max_idle_hours)
        except Exception as e:
            print(f"[Memory] idle sweep error: {e}")

        await asyncio.sleep(max(60, int(interval_seconds)))
