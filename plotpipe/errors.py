"""
Exception types raised by plotpipe.

Validation errors (InvalidPayload, UnsupportedFormat) are raised before any
pipe I/O. RenderError and its subclasses describe failures reported by, or
while talking to, the renderer process. StartupFailure is only raised to
callers as RendererUnavailable; the supervisor itself logs start failures
instead of propagating them.
"""
from __future__ import annotations

from typing import Iterable, Optional, Tuple


class PlotPipeError(Exception):
    """Base class for every error raised by plotpipe."""


class StartupFailure(PlotPipeError, RuntimeError):
    """The renderer could not be spawned or its handshake was rejected."""


class RendererUnavailable(StartupFailure):
    """Raised to callers when no renderer process can be made available."""

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Renderer unavailable{detail}")


class InvalidPayload(PlotPipeError, ValueError):
    """The request payload cannot be framed as a single-line JSON object."""


class UnsupportedFormat(PlotPipeError, ValueError):
    """The requested output format is not in the format registry."""

    def __init__(self, fmt: object, valid_formats: Iterable[str]):
        self.format = fmt
        self.valid_formats: Tuple[str, ...] = tuple(valid_formats)
        super().__init__(
            f"Unknown format {fmt!r}. Expected one of: {', '.join(self.valid_formats)}"
        )


class RenderError(PlotPipeError, RuntimeError):
    """The renderer answered with a nonzero code."""

    def __init__(self, code: int, message: Optional[str] = None):
        self.code = code
        self.message = message
        super().__init__(f"Transform failed with error code {code}: {message}")


class IOFailure(RenderError):
    """The pipe broke, closed, or carried an unreadable response line."""

    CODE = -1

    def __init__(self, message: str):
        super().__init__(self.CODE, message)

    def __str__(self) -> str:
        return str(self.message)


class RenderTimeout(IOFailure):
    """No response line arrived before the read deadline."""


__all__ = [
    "PlotPipeError",
    "StartupFailure",
    "RendererUnavailable",
    "InvalidPayload",
    "UnsupportedFormat",
    "RenderError",
    "IOFailure",
    "RenderTimeout",
]
