"""
Output format registry.

Every format the renderer can produce is listed once in FORMATS together
with the way its result travels over the pipe: TEXT results are the raw
document, BINARY results are base64 strings. decode() is the only place
that knows this, so adding a format is a single registry entry.
"""
from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from enum import Enum
from os import PathLike
from pathlib import PurePath
from typing import Dict, Tuple, Union

from plotpipe.errors import IOFailure, UnsupportedFormat


class Encoding(Enum):
    """Wire encoding class of a format's result string."""
    TEXT = "text"
    BINARY = "binary"


@dataclass(frozen=True)
class FormatSpec:
    name: str
    encoding: Encoding
    mime_type: str
    extensions: Tuple[str, ...]


FORMATS: Dict[str, FormatSpec] = {
    spec.name: spec
    for spec in (
        FormatSpec("png", Encoding.BINARY, "image/png", ("png",)),
        FormatSpec("jpeg", Encoding.BINARY, "image/jpeg", ("jpeg", "jpg", "jpe")),
        FormatSpec("webp", Encoding.BINARY, "image/webp", ("webp",)),
        FormatSpec("svg", Encoding.TEXT, "image/svg+xml", ("svg",)),
        FormatSpec("pdf", Encoding.BINARY, "application/pdf", ("pdf",)),
        FormatSpec("eps", Encoding.TEXT, "image/eps", ("eps",)),
        FormatSpec("json", Encoding.TEXT, "application/json", ("json",)),
    )
}

ALL_FORMATS: Tuple[str, ...] = tuple(FORMATS)
TEXT_FORMATS: Tuple[str, ...] = tuple(
    name for name, spec in FORMATS.items() if spec.encoding is Encoding.TEXT
)

# MIME aliases the renderer may report in addition to each spec's own type.
_MIME_ALIASES: Dict[str, str] = {
    "application/json; charset=utf-8": "json",
    "application/postscript": "eps",
}

_EXTENSIONS: Dict[str, str] = {
    ext: spec.name for spec in FORMATS.values() for ext in spec.extensions
}


def validate_format(fmt: object) -> str:
    """Return *fmt* when it names a registry format exactly, else raise UnsupportedFormat."""
    if isinstance(fmt, str) and fmt in FORMATS:
        return fmt
    raise UnsupportedFormat(fmt, ALL_FORMATS)


def get_spec(fmt: str) -> FormatSpec:
    return FORMATS[validate_format(fmt)]


def is_text_format(fmt: str) -> bool:
    return get_spec(fmt).encoding is Encoding.TEXT


def decode(result: str, fmt: str) -> bytes:
    """Turn a response ``result`` string into output bytes for *fmt*.

    TEXT formats are returned as the UTF-8 encoding of *result*, unchanged.
    BINARY formats are base64-decoded; a string that is not valid base64
    means the response line was corrupt and raises IOFailure.
    """
    spec = get_spec(fmt)
    if not isinstance(result, str):
        raise IOFailure(
            f"Renderer result for {spec.name} must be a string, got {type(result).__name__}"
        )
    if spec.encoding is Encoding.TEXT:
        return result.encode("utf-8")
    try:
        return base64.b64decode(result, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise IOFailure(f"Renderer returned invalid base64 for {spec.name}: {exc}") from exc


def format_from_path(path: Union[str, PathLike]) -> str:
    """Infer the output format from a file name's extension."""
    suffix = PurePath(path).suffix.lstrip(".").lower()
    name = _EXTENSIONS.get(suffix)
    if name is None:
        raise UnsupportedFormat(suffix or str(path), ALL_FORMATS)
    return name


def format_from_mime(mime_type: str) -> str:
    """Map a MIME type reported by the renderer to a registry name."""
    key = str(mime_type).strip().lower()
    for spec in FORMATS.values():
        if spec.mime_type == key:
            return spec.name
    name = _MIME_ALIASES.get(key)
    if name is None:
        raise UnsupportedFormat(mime_type, ALL_FORMATS)
    return name


__all__ = [
    "Encoding",
    "FormatSpec",
    "FORMATS",
    "ALL_FORMATS",
    "TEXT_FORMATS",
    "validate_format",
    "get_spec",
    "is_text_format",
    "decode",
    "format_from_path",
    "format_from_mime",
]
