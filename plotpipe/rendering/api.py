"""
Render API.

RenderContext is the application-level owner of one renderer supervisor
and its protocol client. The module-level functions delegate to a lazily
created default context that is shut down at interpreter exit.
"""
from __future__ import annotations

import atexit
import os
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import BinaryIO, Optional, Union

from plotpipe.core.events import EventSystem
from plotpipe.core.logging.logger import get_logger
from plotpipe.core.process.launcher import KaleidoLauncher
from plotpipe.core.process.supervisor import CommandFactory, RendererSupervisor
from plotpipe.core.process.types import HealthStatus, StartupOutcome
from plotpipe.core.settings import RendererSettings
from plotpipe.rendering import formats
from plotpipe.rendering.protocol import Payload, ProtocolClient

logger = get_logger(__name__)

PathType = Union[str, "os.PathLike[str]"]


class RenderContext:
    """
    Supervisor + protocol client pair with an explicit lifecycle.

    Usage:
        with RenderContext() as ctx:
            png = ctx.render_to_bytes(figure_json)
    """

    def __init__(
        self,
        settings: Optional[RendererSettings] = None,
        command_factory: Optional[CommandFactory] = None,
        event_system: Optional[EventSystem] = None,
    ):
        """
        Args:
            settings: Defaults to RendererSettings.from_env()
            command_factory: Renderer argv factory; defaults to a
                KaleidoLauncher built from settings
            event_system: Receives renderer state and render events
        """
        self.settings = settings if settings is not None else RendererSettings.from_env()
        if command_factory is None:
            command_factory = KaleidoLauncher(self.settings.binary, self.settings.extra_args)
        self.events = event_system if event_system is not None else EventSystem()
        self.supervisor = RendererSupervisor(command_factory, self.settings, self.events)
        self.client = ProtocolClient(self.supervisor, event_system=self.events)

    def init(self, warm_up: Optional[bool] = None) -> Optional["Future[StartupOutcome]"]:
        """Begin the background warm-up (when enabled) and return its future."""
        if warm_up is None:
            warm_up = self.settings.warm_up
        if not warm_up:
            return None
        return self.supervisor.start_async()

    def shutdown(self) -> None:
        self.supervisor.shutdown()

    def status(self) -> HealthStatus:
        return self.supervisor.get_health()

    def __enter__(self) -> "RenderContext":
        self.init()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def render_to_bytes(self, payload: Payload, format: str = "png") -> bytes:
        return self.client.send(payload, format)

    def render_to_stream(self, stream: BinaryIO, payload: Payload, format: str = "png") -> int:
        """Write the rendered bytes to *stream*; the caller keeps ownership of it."""
        data = self.render_to_bytes(payload, format)
        stream.write(data)
        return len(data)

    def render_to_file(
        self,
        payload: Payload,
        path: PathType,
        format: Optional[str] = None,
    ) -> PathType:
        """
        Render into *path*, inferring the format from its extension when
        *format* is omitted. Returns *path*.

        A file created by this call is removed again when rendering fails.
        """
        if format is None:
            format = formats.format_from_path(path)
        else:
            format = formats.validate_format(format)

        target = Path(path)
        existed = target.exists()
        try:
            with open(target, "wb") as fh:
                self.render_to_stream(fh, payload, format)
        except BaseException:
            if not existed:
                try:
                    target.unlink()
                except OSError:
                    pass
            raise
        logger.debug("Wrote %s output to %s", format, target)
        return path


_default_context: Optional[RenderContext] = None
_default_lock = threading.Lock()


def get_default_context() -> RenderContext:
    """Return the shared context, creating and warming it up on first use."""
    global _default_context
    with _default_lock:
        if _default_context is None:
            ctx = RenderContext()
            ctx.init()
            atexit.register(ctx.shutdown)
            _default_context = ctx
        return _default_context


def set_default_context(ctx: Optional[RenderContext]) -> Optional[RenderContext]:
    """Replace the shared context; returns the previous one (not shut down)."""
    global _default_context
    with _default_lock:
        previous = _default_context
        _default_context = ctx
        return previous


def shutdown_default_context() -> None:
    ctx = set_default_context(None)
    if ctx is not None:
        ctx.shutdown()


def render_to_bytes(payload: Payload, format: str = "png") -> bytes:
    """Render *payload* with the default context and return the image bytes."""
    return get_default_context().render_to_bytes(payload, format)


def render_to_stream(stream: BinaryIO, payload: Payload, format: str = "png") -> int:
    """Render *payload* and write the bytes to the already-open *stream*."""
    return get_default_context().render_to_stream(stream, payload, format)


def render_to_file(payload: Payload, path: PathType, format: Optional[str] = None) -> PathType:
    """Render *payload* into the file at *path*; see RenderContext.render_to_file."""
    return get_default_context().render_to_file(payload, path, format)
