"""
Handle for one running renderer process.

WorkerProcess owns the child process and its three pipes:
- stdin is written synchronously by the protocol client
- stdout is read by a daemon thread into a line queue so reads can carry
  a deadline
- stderr is drained continuously by a second daemon thread so a chatty
  renderer never blocks on a full pipe; the last lines are kept for
  diagnostics
"""
from __future__ import annotations

import os
import queue
import subprocess
import sys
import threading
from collections import deque
from typing import Deque, List, Mapping, Optional, Sequence

from plotpipe.core.constants.timing import THREAD_JOIN_TIMEOUT_S
from plotpipe.core.logging.logger import get_logger, is_verbose_logging
from plotpipe.errors import IOFailure, RenderTimeout

logger = get_logger(__name__)

_NO_WINDOW_FLAG = getattr(subprocess, "CREATE_NO_WINDOW", 0)
_EOF = object()


class WorkerProcess:
    """A spawned renderer process plus its stdin/stdout/stderr pipes."""

    def __init__(
        self,
        process: subprocess.Popen,
        stderr_tail_lines: int = 50,
    ):
        self._process = process
        self._lines: "queue.Queue[object]" = queue.Queue()
        self._eof = False
        self._stderr_tail: Deque[str] = deque(maxlen=max(1, stderr_tail_lines))
        self._stderr_lock = threading.Lock()

        self._stdout_thread = threading.Thread(
            target=self._read_stdout,
            name=f"plotpipe-stdout-{process.pid}",
            daemon=True,
        )
        self._stderr_thread = threading.Thread(
            target=self._drain_stderr,
            name=f"plotpipe-stderr-{process.pid}",
            daemon=True,
        )
        self._stdout_thread.start()
        self._stderr_thread.start()

    @classmethod
    def spawn(
        cls,
        command: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
        stderr_tail_lines: int = 50,
    ) -> "WorkerProcess":
        """Launch *command* with three fresh pipes.

        Raises OSError when the binary cannot be executed.
        """
        child_env = None
        if env:
            child_env = dict(os.environ)
            child_env.update(env)

        kwargs = {}
        if sys.platform == "win32" and _NO_WINDOW_FLAG:
            kwargs["creationflags"] = _NO_WINDOW_FLAG

        process = subprocess.Popen(
            list(command),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=child_env,
            close_fds=True,
            **kwargs,
        )
        logger.debug("[SUPERVISOR] Spawned renderer (PID: %d): %s", process.pid, " ".join(command))
        return cls(process, stderr_tail_lines=stderr_tail_lines)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.poll()

    @property
    def stdin_closed(self) -> bool:
        stdin = self._process.stdin
        return stdin is None or stdin.closed

    def is_alive(self) -> bool:
        """True while the process runs and both stdin and stdout are open."""
        if self._eof or self.stdin_closed:
            return False
        return self._process.poll() is None

    def stderr_tail(self) -> List[str]:
        with self._stderr_lock:
            return list(self._stderr_tail)

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait up to *timeout* seconds for exit; returns the exit code or None."""
        try:
            return self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    # -------------------------------------------------------------------------
    # Pipe I/O
    # -------------------------------------------------------------------------

    def write_line(self, data: bytes) -> None:
        """Write *data* plus a line terminator to stdin and flush."""
        stdin = self._process.stdin
        if stdin is None or stdin.closed:
            raise IOFailure("Renderer stdin is closed")
        try:
            stdin.write(data + b"\n")
            stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as exc:
            raise IOFailure(f"Failed to write to renderer: {exc}") from exc

    def read_line(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """Block for the next stdout line, without its terminator.

        Returns None once stdout reached end of file. Raises RenderTimeout
        when *timeout* seconds pass without a line.
        """
        if self._eof:
            return None
        try:
            item = self._lines.get(timeout=timeout)
        except queue.Empty:
            raise RenderTimeout(
                f"No response from renderer within {timeout:g}s"
            ) from None
        if item is _EOF:
            self._eof = True
            return None
        return item  # type: ignore[return-value]

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def kill(self, timeout: float = 1.0) -> None:
        """Kill the process immediately and release its pipes."""
        if self._process.poll() is None:
            try:
                self._process.kill()
            except OSError as exc:
                logger.debug("[SUPERVISOR] kill() failed for PID %d: %s", self.pid, exc)
        self._reap(timeout)

    def stop(self, graceful_timeout: float = 2.0, terminate_timeout: float = 1.0) -> None:
        """Close stdin and wait, then terminate, then kill."""
        self._close_stdin()
        try:
            self._process.wait(timeout=graceful_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(
                "[SUPERVISOR] Renderer (PID: %d) did not exit after stdin closed, terminating",
                self.pid,
            )
            self._process.terminate()
            try:
                self._process.wait(timeout=terminate_timeout)
            except subprocess.TimeoutExpired:
                logger.error("[SUPERVISOR] Renderer (PID: %d) did not terminate, killing", self.pid)
                self._process.kill()
        self._reap(terminate_timeout)

    def _reap(self, timeout: float) -> None:
        try:
            self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.error("[SUPERVISOR] Renderer (PID: %d) still running after kill", self.pid)
        self._close_stdin()
        for thread in (self._stdout_thread, self._stderr_thread):
            if thread is not threading.current_thread():
                thread.join(timeout=THREAD_JOIN_TIMEOUT_S)
        for stream in (self._process.stdout, self._process.stderr):
            if stream is not None:
                try:
                    stream.close()
                except OSError:
                    pass

    def _close_stdin(self) -> None:
        stdin = self._process.stdin
        if stdin is not None and not stdin.closed:
            try:
                stdin.close()
            except OSError:
                pass

    # -------------------------------------------------------------------------
    # Reader threads
    # -------------------------------------------------------------------------

    def _read_stdout(self) -> None:
        stream = self._process.stdout
        try:
            if stream is not None:
                for raw in iter(stream.readline, b""):
                    self._lines.put(raw.rstrip(b"\r\n"))
        except (OSError, ValueError) as exc:
            logger.debug("[SUPERVISOR] stdout reader stopped: %s", exc)
        finally:
            self._lines.put(_EOF)

    def _drain_stderr(self) -> None:
        stream = self._process.stderr
        if stream is None:
            return
        try:
            for raw in iter(stream.readline, b""):
                text = raw.decode("utf-8", errors="replace").rstrip()
                if not text:
                    continue
                with self._stderr_lock:
                    self._stderr_tail.append(text)
                if is_verbose_logging():
                    logger.debug("[RENDERER] %s", text)
        except (OSError, ValueError) as exc:
            logger.debug("[SUPERVISOR] stderr drain stopped: %s", exc)
