"""
Type definitions for renderer process supervision.

Defines the supervisor state machine, the typed outcome of a start
attempt, and the health snapshot used for diagnostics and restart
backoff decisions.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional


class SupervisorState(Enum):
    """Renderer supervisor lifecycle states."""
    UNINITIALIZED = auto()
    STARTING = auto()
    READY = auto()
    UNAVAILABLE = auto()
    STOPPED = auto()         # explicit shutdown(); no further restarts


@dataclass(frozen=True)
class StartupOutcome:
    """
    Result of one start attempt.

    ``state`` is READY or UNAVAILABLE; ``reason`` explains an UNAVAILABLE
    outcome. ``handshake`` holds the parsed startup line when one was read.
    """
    state: SupervisorState
    reason: Optional[str] = None
    pid: Optional[int] = None
    elapsed_ms: float = 0.0
    handshake: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.state is SupervisorState.READY

    @property
    def version(self) -> Optional[str]:
        value = self.handshake.get("version")
        return str(value) if value is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.name,
            "reason": self.reason,
            "pid": self.pid,
            "elapsed_ms": round(self.elapsed_ms, 1),
            "version": self.version,
        }


@dataclass
class HealthStatus:
    """
    Health status of the renderer process.

    Tracks restarts and consecutive start failures. When a backoff base is
    configured, consecutive failures open a doubling cooldown window during
    which no new spawn is attempted.
    """
    state: SupervisorState = SupervisorState.UNINITIALIZED
    pid: Optional[int] = None
    start_count: int = 0
    restart_count: int = 0
    consecutive_failures: int = 0
    last_start: float = 0.0
    last_failure: float = 0.0
    error_message: Optional[str] = None
    stderr_tail: List[str] = field(default_factory=list)

    def is_healthy(self) -> bool:
        return self.state is SupervisorState.READY

    def record_start_attempt(self, is_restart: bool) -> None:
        self.start_count += 1
        if is_restart:
            self.restart_count += 1
        self.last_start = time.time()

    def record_success(self, pid: Optional[int]) -> None:
        self.state = SupervisorState.READY
        self.pid = pid
        self.consecutive_failures = 0
        self.error_message = None

    def record_failure(self, reason: str) -> None:
        self.state = SupervisorState.UNAVAILABLE
        self.pid = None
        self.consecutive_failures += 1
        self.last_failure = time.time()
        self.error_message = reason

    def get_restart_backoff_ms(self, base_ms: int, max_ms: int) -> int:
        """Cooldown after the current run of failures (0 when none or disabled)."""
        if base_ms <= 0 or self.consecutive_failures <= 0:
            return 0
        backoff = base_ms * (2 ** min(self.consecutive_failures - 1, 10))
        return min(backoff, max_ms)

    def in_backoff(self, base_ms: int, max_ms: int, now: Optional[float] = None) -> bool:
        backoff_ms = self.get_restart_backoff_ms(base_ms, max_ms)
        if backoff_ms <= 0:
            return False
        now = time.time() if now is None else now
        return (now - self.last_failure) * 1000.0 < backoff_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.name,
            "pid": self.pid,
            "start_count": self.start_count,
            "restart_count": self.restart_count,
            "consecutive_failures": self.consecutive_failures,
            "error_message": self.error_message,
            "is_healthy": self.is_healthy(),
            "stderr_tail": list(self.stderr_tail),
        }
