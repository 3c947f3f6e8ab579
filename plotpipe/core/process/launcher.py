"""
Renderer command-line construction.

Locates the Kaleido executable and builds its argument list for the host
platform: GPU always disabled, and either --single-process (macOS) or
--no-sandbox (everything else).
"""
from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from plotpipe.errors import StartupFailure

BINARY_ENV_VAR = "PLOTPIPE_KALEIDO"


def default_binary_name(platform: str = sys.platform) -> str:
    return "kaleido.cmd" if platform == "win32" else "kaleido"


def resolve_binary(explicit: Optional[str] = None, platform: str = sys.platform) -> str:
    """Return the renderer executable path.

    Lookup order: *explicit*, the PLOTPIPE_KALEIDO environment variable,
    then the PATH. Raises StartupFailure when nothing usable is found.
    """
    candidate = explicit or os.getenv(BINARY_ENV_VAR)
    if candidate:
        path = Path(candidate).expanduser()
        if path.is_file():
            return str(path)
        found = shutil.which(candidate)
        if found:
            return found
        raise StartupFailure(f"Renderer binary not found: {candidate}")

    name = default_binary_name(platform)
    found = shutil.which(name)
    if not found:
        raise StartupFailure(
            f"Renderer binary {name!r} not found on PATH; set {BINARY_ENV_VAR} "
            "or pass binary= explicitly"
        )
    return found


def platform_flags(platform: str = sys.platform) -> List[str]:
    if platform == "darwin":
        return ["--disable-gpu", "--single-process"]
    return ["--disable-gpu", "--no-sandbox"]


def build_command(
    binary: str,
    platform: str = sys.platform,
    extra_args: Sequence[str] = (),
) -> List[str]:
    """Full argument vector for the plotly renderer."""
    return [binary, "plotly", *platform_flags(platform), *extra_args]


class KaleidoLauncher:
    """Callable command factory handed to the supervisor.

    Resolution is deferred to each start attempt so a binary installed
    after import is picked up by the next restart.
    """

    def __init__(self, binary: Optional[str] = None, extra_args: Sequence[str] = ()):
        self.binary = binary
        self.extra_args = tuple(extra_args)

    def __call__(self) -> List[str]:
        return build_command(resolve_binary(self.binary), extra_args=self.extra_args)

    def __repr__(self) -> str:
        return f"KaleidoLauncher(binary={self.binary!r}, extra_args={self.extra_args!r})"
