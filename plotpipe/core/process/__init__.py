"""
Renderer process supervision.

- RendererSupervisor: start / ensure_running / restart / shutdown
- WorkerProcess: the child process and its three pipes
- KaleidoLauncher: default renderer command line

Nothing here knows about output formats; that lives in plotpipe.rendering.
"""
from .types import (
    SupervisorState,
    StartupOutcome,
    HealthStatus,
)
from .worker import WorkerProcess
from .launcher import KaleidoLauncher, build_command, resolve_binary
from .supervisor import RendererSupervisor

__all__ = [
    "SupervisorState",
    "StartupOutcome",
    "HealthStatus",
    "WorkerProcess",
    "KaleidoLauncher",
    "build_command",
    "resolve_binary",
    "RendererSupervisor",
]
