"""
plotpipe: render plot specifications through a supervised renderer process.

    import plotpipe

    png = plotpipe.render_to_bytes('{"data": [], "layout": {}}')
    plotpipe.render_to_file(figure_json, "chart.svg")

Applications that want control over the renderer's lifecycle create a
RenderContext instead of relying on the shared default.
"""
from plotpipe.errors import (
    PlotPipeError,
    StartupFailure,
    RendererUnavailable,
    InvalidPayload,
    UnsupportedFormat,
    RenderError,
    IOFailure,
    RenderTimeout,
)
from plotpipe.core.settings import RendererSettings
from plotpipe.core.process.types import StartupOutcome, SupervisorState
from plotpipe.rendering.formats import ALL_FORMATS, TEXT_FORMATS
from plotpipe.rendering.api import (
    RenderContext,
    get_default_context,
    set_default_context,
    shutdown_default_context,
    render_to_bytes,
    render_to_stream,
    render_to_file,
)
from plotpipe.versioning import APP_VERSION as __version__

__all__ = [
    "PlotPipeError",
    "StartupFailure",
    "RendererUnavailable",
    "InvalidPayload",
    "UnsupportedFormat",
    "RenderError",
    "IOFailure",
    "RenderTimeout",
    "RendererSettings",
    "StartupOutcome",
    "SupervisorState",
    "ALL_FORMATS",
    "TEXT_FORMATS",
    "RenderContext",
    "get_default_context",
    "set_default_context",
    "shutdown_default_context",
    "render_to_bytes",
    "render_to_stream",
    "render_to_file",
    "__version__",
]
