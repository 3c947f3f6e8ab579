"""
Centralized logging configuration for plotpipe.

Uses a rotating file handler with logs stored in a logs/ directory.
Includes colored console output for debug mode.

Library code only calls get_logger(); nothing is configured until an
application (or the CLI) calls setup_logging().
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional


_VERBOSE: bool = False
_BASE_DIR: Path = Path.cwd()
_INSTALLED_HANDLERS: List[logging.Handler] = []

_env_verbose = os.getenv("PLOTPIPE_VERBOSE")
if _env_verbose is not None:
    if str(_env_verbose).strip().lower() in ("1", "true", "on", "yes"):
        _VERBOSE = True

LOG_FORMAT = '%(asctime)s - %(name)-30s - %(levelname)-8s - %(message)s'


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to console output."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',       # Cyan
        'INFO': '\033[32m',        # Green
        'WARNING': '\033[33m',     # Yellow
        'ERROR': '\033[31m',       # Red
        'CRITICAL': '\033[35m',    # Magenta
    }
    RENDERER_COLOR = '\033[38;5;135m'   # Purple for renderer stderr passthrough
    RESET = '\033[0m'
    BOLD = '\033[1m'

    def format(self, record):
        original_levelname = record.levelname

        # Lines forwarded from the renderer's stderr get their own color so
        # they stand out from our own diagnostics.
        if '[RENDERER]' in str(record.msg):
            color = self.RENDERER_COLOR
        else:
            color = self.COLORS.get(record.levelname)

        if color is None:
            return super().format(record)

        record.levelname = f"{self.BOLD}{color}{record.levelname}{self.RESET}"
        try:
            message = super().format(record)
        finally:
            record.levelname = original_levelname
        return f"{color}{message}{self.RESET}"


def get_log_dir() -> Path:
    """Return the directory used for log files.

    setup_logging() updates the base directory when an explicit log_dir is
    given so the returned path matches the active RotatingFileHandler.
    """

    return _BASE_DIR / "logs"


def _teardown_handlers() -> None:
    """Remove and close every handler installed by setup_logging().

    Safe to call repeatedly; handlers added by other code are left alone.
    """
    root_logger = logging.getLogger()
    while _INSTALLED_HANDLERS:
        handler = _INSTALLED_HANDLERS.pop()
        root_logger.removeHandler(handler)
        try:
            handler.close()
        except Exception:
            pass


def setup_logging(
    debug: bool = False,
    verbose: bool = False,
    log_dir: Optional[Path] = None,
    log_to_file: bool = True,
) -> None:
    """
    Configure application logging with file rotation.

    Args:
        debug: If True, set log level to DEBUG and enable console output.
        verbose: When True, enables high-volume debug logs (renderer stderr
            passthrough, raw protocol lines). Verbose mode also implies
            debug-level logging.
        log_dir: Directory whose logs/ subfolder receives plotpipe.log.
            Defaults to the current working directory.
        log_to_file: Set to False to only log to the console.
    """
    global _VERBOSE, _BASE_DIR

    _teardown_handlers()

    debug_enabled = debug or verbose
    if log_dir is not None:
        _BASE_DIR = Path(log_dir)

    level = logging.DEBUG if debug_enabled else logging.INFO
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if log_to_file:
        target_dir = get_log_dir()
        target_dir.mkdir(parents=True, exist_ok=True)

        # File handler with rotation (1MB max, keep 5 backups)
        file_handler = RotatingFileHandler(
            target_dir / "plotpipe.log",
            maxBytes=1 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(
            logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
        )
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)
        _INSTALLED_HANDLERS.append(file_handler)

    if debug_enabled or not log_to_file:
        console_handler = logging.StreamHandler(sys.stderr)
        if debug_enabled and sys.stderr.isatty():
            console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt='%H:%M:%S'))
        else:
            console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S'))
        console_handler.setLevel(level if debug_enabled else logging.WARNING)
        root_logger.addHandler(console_handler)
        _INSTALLED_HANDLERS.append(console_handler)

    _VERBOSE = bool(verbose)

    root_logger.info(
        "plotpipe logging initialized (debug=%s, verbose=%s)",
        debug_enabled,
        _VERBOSE,
    )


_SHORT_NAME_OVERRIDES = {
    "plotpipe.core.process.supervisor": "plotpipe.supervisor",
    "plotpipe.core.process.worker": "plotpipe.worker",
    "plotpipe.rendering.protocol": "plotpipe.protocol",
}


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with optional short-name overrides for noisy modules."""
    actual = _SHORT_NAME_OVERRIDES.get(name, name)
    return logging.getLogger(actual)


def is_verbose_logging() -> bool:
    """Return True when verbose debug logging is enabled globally."""

    return _VERBOSE
