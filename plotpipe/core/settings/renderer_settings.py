"""
Renderer settings.

RendererSettings gathers every tunable of the supervisor and protocol
client. Values come from keyword arguments, PLOTPIPE_* environment
variables, or a JSON file, in that order of preference when combined via
from_env()/from_file() followed by merged().
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from plotpipe.core.constants.timing import (
    PROCESS_GRACEFUL_SHUTDOWN_TIMEOUT_S,
    PROCESS_TERMINATE_TIMEOUT_S,
    RENDERER_READ_TIMEOUT_S,
    RENDERER_STARTUP_TIMEOUT_S,
    RETRY_BASE_DELAY_MS,
    RETRY_MAX_DELAY_MS,
)
from plotpipe.core.logging.logger import get_logger

logger = get_logger(__name__)

ENV_PREFIX = "PLOTPIPE_"


def to_bool(value: Any, default: bool = False) -> bool:
    """Normalize a stored setting value to bool.

    Accepts common string forms ("true", "1", "yes", "on") as True and
    ("false", "0", "no", "off") as False. Falls back to the provided
    default when the value cannot be interpreted.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        v = value.strip().lower()
        if v in ("true", "1", "yes", "on"):
            return True
        if v in ("false", "0", "no", "off"):
            return False
        return default
    if value is None:
        return default
    return bool(value)


def to_optional_float(value: Any, default: Optional[float]) -> Optional[float]:
    """Coerce to float; "none"/"off"/"" and non-positive numbers mean no limit."""
    if value is None:
        return default
    if isinstance(value, str):
        v = value.strip().lower()
        if v in ("", "none", "off", "null"):
            return None
        try:
            value = float(v)
        except ValueError:
            logger.warning("Ignoring non-numeric timeout %r", value)
            return default
    number = float(value)
    return number if number > 0 else None


@dataclass(frozen=True)
class RendererSettings:
    """Immutable configuration for one render context."""
    binary: Optional[str] = None
    extra_args: Tuple[str, ...] = ()
    startup_timeout_s: Optional[float] = RENDERER_STARTUP_TIMEOUT_S
    read_timeout_s: Optional[float] = RENDERER_READ_TIMEOUT_S
    graceful_shutdown_timeout_s: float = PROCESS_GRACEFUL_SHUTDOWN_TIMEOUT_S
    terminate_timeout_s: float = PROCESS_TERMINATE_TIMEOUT_S
    restart_backoff_base_ms: int = RETRY_BASE_DELAY_MS
    restart_backoff_max_ms: int = RETRY_MAX_DELAY_MS
    stderr_tail_lines: int = 50
    warm_up: bool = True
    env: Dict[str, str] = field(default_factory=dict)

    def merged(self, **overrides: Any) -> "RendererSettings":
        """Return a copy with *overrides* applied; None values are skipped."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown renderer settings: {', '.join(sorted(unknown))}")
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RendererSettings":
        """Build settings from a plain mapping, coercing loose string values."""
        base = cls()
        values: Dict[str, Any] = {}
        for key, raw in data.items():
            if key == "binary":
                values[key] = str(raw) if raw else None
            elif key == "extra_args":
                if isinstance(raw, str):
                    values[key] = tuple(raw.split())
                else:
                    values[key] = tuple(str(a) for a in (raw or ()))
            elif key in ("startup_timeout_s", "read_timeout_s"):
                values[key] = to_optional_float(raw, getattr(base, key))
            elif key in ("graceful_shutdown_timeout_s", "terminate_timeout_s"):
                values[key] = float(raw)
            elif key in ("restart_backoff_base_ms", "restart_backoff_max_ms", "stderr_tail_lines"):
                values[key] = max(0, int(raw))
            elif key == "warm_up":
                values[key] = to_bool(raw, base.warm_up)
            elif key == "env":
                values[key] = {str(k): str(v) for k, v in dict(raw).items()}
            else:
                logger.warning("Ignoring unknown renderer setting %r", key)
        return replace(base, **values)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RendererSettings":
        """Read PLOTPIPE_* variables, e.g. PLOTPIPE_READ_TIMEOUT_S=30.

        PLOTPIPE_KALEIDO is accepted as an alias for PLOTPIPE_BINARY.
        """
        environ = os.environ if environ is None else environ
        data: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name == "env":
                continue
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is not None:
                data[f.name] = raw
        if "binary" not in data and environ.get(ENV_PREFIX + "KALEIDO"):
            data["binary"] = environ[ENV_PREFIX + "KALEIDO"]
        return cls.from_mapping(data)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "RendererSettings":
        """Load settings from a JSON document.

        The document may hold the settings at top level or under a
        "renderer" section.
        """
        raw = Path(path).read_text(encoding="utf-8")
        loaded = json.loads(raw)
        if not isinstance(loaded, Mapping):
            raise ValueError(f"Settings file {path} must contain a JSON object")
        section = loaded.get("renderer", loaded)
        if not isinstance(section, Mapping):
            raise ValueError(f"'renderer' section in {path} must be a JSON object")
        logger.debug("Loaded renderer settings from %s", path)
        return cls.from_mapping(section)
