"""
Process Supervisor for the external renderer.

Manages the lifecycle of the single renderer process:
- Lazy start with a one-line JSON handshake
- Liveness checks and restart before each request
- Optional background warm-up with an observable outcome
- Graceful shutdown (close stdin, terminate, kill)

Start failures never propagate out of start()/restart(). They are logged,
the supervisor moves to UNAVAILABLE, and ensure_running() turns that into
a fast RendererUnavailable for the caller.
"""
from __future__ import annotations

import json
import threading
import time
from concurrent.futures import Future
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Sequence

from plotpipe.core.events import EventSystem, EventType
from plotpipe.core.logging.logger import get_logger
from plotpipe.core.process.types import HealthStatus, StartupOutcome, SupervisorState
from plotpipe.core.process.worker import WorkerProcess
from plotpipe.core.settings import RendererSettings
from plotpipe.errors import RendererUnavailable, StartupFailure

logger = get_logger(__name__)

CommandFactory = Callable[[], Sequence[str]]


class RendererSupervisor:
    """
    Owner of the renderer WorkerProcess.

    Thread Safety:
    - All process state is guarded by _lock, held across spawn + handshake
      so a caller arriving during a warm-up waits for it instead of
      spawning a second process.
    - The supervisor does not serialize protocol exchanges; that is the
      protocol client's lock.
    """

    def __init__(
        self,
        command_factory: CommandFactory,
        settings: Optional[RendererSettings] = None,
        event_system: Optional[EventSystem] = None,
    ):
        """
        Args:
            command_factory: Returns the renderer argv; may raise when the
                binary cannot be resolved
            settings: Timeouts, backoff and environment for the child
            event_system: Optional EventSystem for state broadcasts
        """
        self._command_factory = command_factory
        self._settings = settings or RendererSettings()
        self._event_system = event_system

        self._lock = threading.RLock()
        self._shutdown = False
        self._worker: Optional[WorkerProcess] = None
        self._health = HealthStatus()
        self._outcome: Optional[StartupOutcome] = None
        self._warmup_future: Optional["Future[StartupOutcome]"] = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SupervisorState:
        with self._lock:
            return self._health.state

    @property
    def outcome(self) -> Optional[StartupOutcome]:
        """Outcome of the most recent start attempt, if any."""
        with self._lock:
            return self._outcome

    @property
    def settings(self) -> RendererSettings:
        return self._settings

    def start(self) -> StartupOutcome:
        """
        Launch the renderer and perform the handshake.

        No-op returning the current outcome when a live worker exists.

        Returns:
            StartupOutcome with state READY or UNAVAILABLE
        """
        with self._lock:
            if self._shutdown:
                return self._stopped_outcome()
            if self._worker is not None and self._worker.is_alive() and self._outcome is not None:
                logger.debug("[SUPERVISOR] Renderer already running (PID: %d)", self._worker.pid)
                return self._outcome
            return self._restart_locked()

    def restart(self) -> StartupOutcome:
        """Kill the current worker if it is still alive, then start a new one."""
        with self._lock:
            if self._shutdown:
                return self._stopped_outcome()
            return self._restart_locked()

    def ensure_running(self) -> WorkerProcess:
        """
        Return a live worker, restarting it when missing or dead.

        Raises:
            RendererUnavailable: no worker could be started, the restart
                cooldown is active, or the supervisor was shut down
        """
        with self._lock:
            if self._shutdown:
                raise RendererUnavailable("renderer has been shut down")

            worker = self._worker
            if worker is not None and worker.is_alive():
                return worker

            if worker is not None:
                logger.warning(
                    "[SUPERVISOR] Renderer (PID: %d) is no longer running (exit code %s), restarting",
                    worker.pid,
                    worker.returncode,
                )
            elif self._health.state is SupervisorState.UNAVAILABLE:
                s = self._settings
                if self._health.in_backoff(s.restart_backoff_base_ms, s.restart_backoff_max_ms):
                    backoff_ms = self._health.get_restart_backoff_ms(
                        s.restart_backoff_base_ms, s.restart_backoff_max_ms
                    )
                    raise RendererUnavailable(
                        f"{self._health.error_message} (next attempt allowed within {backoff_ms}ms)"
                    )

            outcome = self._restart_locked()
            if not outcome.ok or self._worker is None:
                raise RendererUnavailable(outcome.reason)
            return self._worker

    def start_async(self) -> "Future[StartupOutcome]":
        """
        Start the renderer on a background thread.

        Returns the in-flight future when a warm-up is already running.
        The future never raises; failures resolve to an UNAVAILABLE outcome.
        """
        with self._lock:
            if self._warmup_future is not None and not self._warmup_future.done():
                return self._warmup_future
            future: "Future[StartupOutcome]" = Future()
            future.set_running_or_notify_cancel()
            self._warmup_future = future

        thread = threading.Thread(
            target=self._run_warmup,
            args=(future,),
            name="plotpipe-warmup",
            daemon=True,
        )
        thread.start()
        return future

    def wait_ready(self, timeout: Optional[float] = None) -> StartupOutcome:
        """
        Readiness probe.

        Waits for an in-flight warm-up when there is one; otherwise starts
        the renderer synchronously unless it is already running.
        """
        with self._lock:
            future = self._warmup_future
        if future is not None and not future.done():
            return future.result(timeout=timeout)
        return self.start()

    def get_health(self) -> HealthStatus:
        """Snapshot of the current health status."""
        with self._lock:
            return replace(self._health, stderr_tail=self._stderr_tail_locked())

    def shutdown(self) -> None:
        """Stop the renderer; later ensure_running() calls fail fast."""
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
            worker = self._worker
            self._worker = None
            if worker is not None:
                logger.info("[SUPERVISOR] Stopping renderer (PID: %d)", worker.pid)
                try:
                    worker.stop(
                        graceful_timeout=self._settings.graceful_shutdown_timeout_s,
                        terminate_timeout=self._settings.terminate_timeout_s,
                    )
                except Exception as e:
                    logger.error("[SUPERVISOR] Error stopping renderer: %s", e)
            self._health.pid = None
            self._set_state(SupervisorState.STOPPED)
        logger.info("[SUPERVISOR] Shutdown complete")

    def discard_worker(self, reason: str) -> None:
        """Kill the current worker so the next ensure_running() restarts it.

        Used after a protocol desync (e.g. a read deadline) where a late
        reply would otherwise be read as the answer to the next request.
        """
        with self._lock:
            worker = self._worker
            if worker is None:
                return
            logger.warning("[SUPERVISOR] Discarding renderer (PID: %d): %s", worker.pid, reason)
            worker.kill(timeout=self._settings.terminate_timeout_s)

    # -------------------------------------------------------------------------
    # Internal Methods
    # -------------------------------------------------------------------------

    def _run_warmup(self, future: "Future[StartupOutcome]") -> None:
        try:
            outcome = self.start()
        except Exception as e:
            logger.exception("[SUPERVISOR] Warm-up crashed: %s", e)
            outcome = StartupOutcome(SupervisorState.UNAVAILABLE, reason=str(e))
        future.set_result(outcome)

    def _restart_locked(self) -> StartupOutcome:
        """Kill any previous worker and start a new one (must hold lock)."""
        previous = self._worker
        self._worker = None
        is_restart = previous is not None or self._health.start_count > 0
        if previous is not None:
            self._health.stderr_tail = previous.stderr_tail()
            if previous.is_alive():
                logger.info("[SUPERVISOR] Killing renderer (PID: %d) before restart", previous.pid)
            previous.kill(timeout=self._settings.terminate_timeout_s)
        return self._start_locked(is_restart)

    def _start_locked(self, is_restart: bool) -> StartupOutcome:
        """Spawn + handshake (must hold lock). Never raises."""
        self._health.record_start_attempt(is_restart)
        self._set_state(SupervisorState.STARTING)
        started = time.monotonic()
        worker: Optional[WorkerProcess] = None

        try:
            command = list(self._command_factory())
            worker = WorkerProcess.spawn(
                command,
                env=self._settings.env,
                stderr_tail_lines=self._settings.stderr_tail_lines,
            )
            handshake = self._handshake(worker)
        except Exception as e:
            reason = str(e) or type(e).__name__
            if worker is not None:
                worker.kill(timeout=self._settings.terminate_timeout_s)
                tail = worker.stderr_tail()
                self._health.stderr_tail = tail
                if tail:
                    reason = f"{reason} (stderr: {tail[-1]})"
            logger.warning(
                "[SUPERVISOR] Renderer is not available on this system; "
                "plots cannot be exported: %s",
                reason,
            )
            self._health.record_failure(reason)
            self._outcome = StartupOutcome(
                SupervisorState.UNAVAILABLE,
                reason=reason,
                elapsed_ms=(time.monotonic() - started) * 1000.0,
            )
            self._publish_state(reason)
            return self._outcome

        self._worker = worker
        self._health.record_success(worker.pid)
        self._outcome = StartupOutcome(
            SupervisorState.READY,
            pid=worker.pid,
            elapsed_ms=(time.monotonic() - started) * 1000.0,
            handshake=handshake,
        )
        logger.info(
            "[SUPERVISOR] Renderer ready (PID: %d, %.0fms%s)",
            worker.pid,
            self._outcome.elapsed_ms,
            ", restart" if is_restart else "",
        )
        self._publish_state()
        return self._outcome

    def _handshake(self, worker: WorkerProcess) -> Dict[str, Any]:
        """Read and check the startup line."""
        line = worker.read_line(timeout=self._settings.startup_timeout_s)
        if line is None:
            # stdout closes slightly before the exit status is available
            returncode = worker.wait(timeout=self._settings.terminate_timeout_s)
            raise StartupFailure(f"Renderer exited during startup (exit code {returncode})")
        if not line.strip():
            raise StartupFailure("Renderer sent an empty startup message")

        try:
            message = json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise StartupFailure(f"Malformed renderer startup message: {e}") from e
        if not isinstance(message, dict):
            raise StartupFailure("Renderer startup message is not a JSON object")

        code = message.get("code", 0)
        if code != 0:
            raise StartupFailure(
                f"Renderer startup failed with code {code}: {message.get('message')}"
            )
        return message

    def _stopped_outcome(self) -> StartupOutcome:
        return StartupOutcome(SupervisorState.STOPPED, reason="renderer has been shut down")

    def _stderr_tail_locked(self) -> List[str]:
        if self._worker is not None:
            return self._worker.stderr_tail()
        return list(self._health.stderr_tail)

    def _set_state(self, state: SupervisorState) -> None:
        self._health.state = state
        if state is SupervisorState.STARTING or state is SupervisorState.STOPPED:
            self._publish_state()

    def _publish_state(self, reason: Optional[str] = None) -> None:
        """Broadcast the current state via EventSystem (must hold lock)."""
        if not self._event_system:
            return
        try:
            self._event_system.publish(
                EventType.RENDERER_STATE_CHANGED,
                data={
                    "state": self._health.state.name,
                    "pid": self._health.pid,
                    "reason": reason,
                },
                source=self,
            )
        except Exception as e:
            logger.debug("[SUPERVISOR] Failed to broadcast state: %s", e)
