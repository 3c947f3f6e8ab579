"""Command-line entry point.

Usage examples:

    python -m plotpipe figure.json -o figure.png
    python -m plotpipe figure.json -o figure.svg --binary /opt/kaleido/kaleido
    cat figure.json | python -m plotpipe - -o out.pdf
    python -m plotpipe --probe

The payload file must contain one JSON object; it is compacted onto a
single line before being sent, so pretty-printed files are fine.
"""
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from plotpipe.core.logging.logger import setup_logging
from plotpipe.core.settings import RendererSettings
from plotpipe.errors import PlotPipeError
from plotpipe.rendering.api import RenderContext
from plotpipe.rendering.formats import ALL_FORMATS
from plotpipe.versioning import APP_DESCRIPTION, APP_NAME, APP_VERSION


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=APP_NAME, description=APP_DESCRIPTION)
    parser.add_argument(
        "payload",
        nargs="?",
        help="Path to a JSON plot specification, or '-' to read stdin",
    )
    parser.add_argument(
        "-o", "--output",
        help="Output file. The format is inferred from its extension unless --format is given.",
    )
    parser.add_argument(
        "-f", "--format",
        choices=ALL_FORMATS,
        help="Output format",
    )
    parser.add_argument("--binary", help="Path to the renderer executable")
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds to wait for one render (0 disables the deadline)",
    )
    parser.add_argument(
        "--config",
        help="JSON settings file (top-level or under a \"renderer\" section)",
    )
    parser.add_argument(
        "--probe",
        action="store_true",
        help="Start the renderer, print the startup outcome and exit",
    )
    parser.add_argument("--debug", action="store_true", help="Log to the console at DEBUG level")
    parser.add_argument("--verbose", action="store_true", help="Also log renderer stderr and protocol lines")
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    return parser


def _load_settings(args: argparse.Namespace) -> RendererSettings:
    settings = RendererSettings.from_file(args.config) if args.config else RendererSettings.from_env()
    settings = settings.merged(binary=args.binary, warm_up=False)
    if args.timeout is not None:
        settings = replace(settings, read_timeout_s=args.timeout if args.timeout > 0 else None)
    return settings


def _read_payload(source: str) -> str:
    raw = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    # Re-serialize so multi-line files become a single protocol line.
    return json.dumps(json.loads(raw), separators=(",", ":"))


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    setup_logging(debug=args.debug, verbose=args.verbose, log_to_file=False)

    if not args.probe and (not args.payload or not args.output):
        parser.error("payload and --output are required unless --probe is given")

    try:
        settings = _load_settings(args)
    except (OSError, ValueError) as exc:
        print(f"ERROR: Failed to load settings: {exc}", file=sys.stderr)
        return 2

    ctx = RenderContext(settings=settings)
    try:
        if args.probe:
            outcome = ctx.supervisor.wait_ready()
            print(json.dumps(outcome.to_dict(), indent=2))
            return 0 if outcome.ok else 1

        try:
            payload = _read_payload(args.payload)
        except (OSError, ValueError) as exc:
            print(f"ERROR: Failed to read payload: {exc}", file=sys.stderr)
            return 2

        try:
            ctx.render_to_file(payload, args.output, args.format)
        except PlotPipeError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1
        print(args.output)
        return 0
    finally:
        ctx.shutdown()


if __name__ == "__main__":
    raise SystemExit(main())
