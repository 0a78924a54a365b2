from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class RuntimeDeps:
    # core
    mode: Any
    orchestrator: Any


@dataclass(frozen=True)
class RuntimeBootDeps:
    memory_sweep_enabled: bool
    memory_sweep_loop_func: Callable
