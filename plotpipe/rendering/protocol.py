"""
Line-delimited JSON protocol client for the renderer.

One request is one JSON object on one line; the renderer answers with one
JSON object on one line:

    -> {"format": "png", "data": [...], "layout": {...}}
    <- {"code": 0, "result": "<base64 or text>"}
    <- {"code": 1, "message": "..."}

Requests carry no identifiers, so the whole write-then-read exchange runs
under a single lock. Two callers interleaving on the pipe would otherwise
receive each other's images.
"""
from __future__ import annotations

import json
import threading
import time
from typing import Any, Dict, Mapping, Optional, Union

from plotpipe.core.events import EventSystem, EventType
from plotpipe.core.logging.logger import get_logger, is_verbose_logging
from plotpipe.core.process.supervisor import RendererSupervisor
from plotpipe.errors import InvalidPayload, IOFailure, RenderError, RenderTimeout
from plotpipe.rendering import formats

logger = get_logger(__name__)

Payload = Union[str, bytes, Mapping[str, Any]]

_LINE_BREAKS = ("\n", "\r")
_FROM_SETTINGS = object()


def prepare_request(payload: Payload, fmt: str) -> str:
    """
    Validate *payload* and return the request line (without terminator).

    Text payloads containing a line break are rejected before anything
    else. When the JSON object has no top-level ``format`` key, it is
    re-serialized with ``format`` as its first key; otherwise the payload
    text is returned untouched.

    Raises:
        InvalidPayload: line break, invalid JSON, or not a JSON object
    """
    if isinstance(payload, Mapping):
        obj: Dict[str, Any] = dict(payload)
        if "format" in obj:
            return _dumps(obj)
        return _dumps({"format": fmt, **obj})

    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = bytes(payload).decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidPayload(f"payload is not valid UTF-8: {e}") from e

    if not isinstance(payload, str):
        raise InvalidPayload(
            f"payload must be a JSON string or a mapping, got {type(payload).__name__}"
        )

    if any(ch in payload for ch in _LINE_BREAKS):
        raise InvalidPayload(
            "payload needs to be a valid json string without newline characters"
        )

    try:
        obj = json.loads(payload)
    except ValueError as e:
        raise InvalidPayload(f"payload is not valid JSON: {e}") from e
    if not isinstance(obj, dict):
        raise InvalidPayload("payload must be a JSON object")

    if "format" in obj:
        return payload
    return _dumps({"format": fmt, **obj})


def _dumps(obj: Mapping[str, Any]) -> str:
    try:
        return json.dumps(obj, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise InvalidPayload(f"payload is not JSON serializable: {e}") from e


def parse_response(line: Optional[bytes]) -> Dict[str, Any]:
    """
    Decode one response line and check its status code.

    Raises:
        IOFailure: missing line, invalid JSON, or not a JSON object
        RenderError: nonzero ``code``
    """
    if line is None:
        raise IOFailure("Renderer closed its output before responding")
    if not line.strip():
        raise IOFailure("Renderer sent an empty response line")
    try:
        response = json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise IOFailure(f"Malformed renderer response: {e}") from e
    if not isinstance(response, dict):
        raise IOFailure("Renderer response is not a JSON object")

    code = response.get("code", 0)
    if code != 0:
        raise RenderError(code, response.get("message"))
    if "result" not in response:
        raise IOFailure("Renderer response has no result")
    return response


class ProtocolClient:
    """
    Sends render requests through a RendererSupervisor's worker.

    The send lock is required, not incidental: it covers ensure_running(),
    the write and the matching read of every request.
    """

    def __init__(
        self,
        supervisor: RendererSupervisor,
        read_timeout_s: Union[Optional[float], object] = _FROM_SETTINGS,
        event_system: Optional[EventSystem] = None,
    ):
        """
        Args:
            supervisor: Provides the worker for each request
            read_timeout_s: Seconds to wait for each response; None waits
                forever. Defaults to the supervisor settings' read_timeout_s.
            event_system: Receives render.completed / render.failed
        """
        self._supervisor = supervisor
        if read_timeout_s is _FROM_SETTINGS:
            read_timeout_s = supervisor.settings.read_timeout_s
        self._read_timeout_s: Optional[float] = read_timeout_s  # type: ignore[assignment]
        self._event_system = event_system
        self._send_lock = threading.Lock()
        self._requests_sent = 0

    @property
    def supervisor(self) -> RendererSupervisor:
        return self._supervisor

    @property
    def read_timeout_s(self) -> Optional[float]:
        return self._read_timeout_s

    @property
    def requests_sent(self) -> int:
        return self._requests_sent

    def send(self, payload: Payload, fmt: str = "png") -> bytes:
        """
        Render *payload* as *fmt* and return the decoded bytes.

        Raises:
            UnsupportedFormat: *fmt* is not a registry format
            InvalidPayload: payload cannot be framed as one JSON line
            RendererUnavailable: no renderer process could be started
            RenderError: renderer reported a nonzero code
            IOFailure: the pipe broke or the response was unreadable
            RenderTimeout: no response before the read deadline
        """
        fmt = formats.validate_format(fmt)
        request = prepare_request(payload, fmt).encode("utf-8")

        started = time.monotonic()
        try:
            with self._send_lock:
                result = self._exchange(request, fmt)
            data = formats.decode(result, fmt)
        except Exception as e:
            self._publish(EventType.RENDER_FAILED, {"format": fmt, "error": str(e)})
            raise

        elapsed_ms = (time.monotonic() - started) * 1000.0
        logger.debug("[PROTOCOL] Rendered %s: %d bytes in %.0fms", fmt, len(data), elapsed_ms)
        self._publish(
            EventType.RENDER_COMPLETED,
            {"format": fmt, "size": len(data), "elapsed_ms": elapsed_ms},
        )
        return data

    def _exchange(self, request: bytes, fmt: str) -> str:
        """One write + one read (must hold _send_lock)."""
        worker = self._supervisor.ensure_running()

        if is_verbose_logging():
            logger.debug("[PROTOCOL] -> %s", request[:200].decode("utf-8", errors="replace"))

        worker.write_line(request)
        self._requests_sent += 1

        try:
            line = worker.read_line(timeout=self._read_timeout_s)
        except RenderTimeout:
            # The reply may still arrive later and must not be read as the
            # answer to the next request.
            self._supervisor.discard_worker("response deadline exceeded")
            raise

        if is_verbose_logging() and line is not None:
            logger.debug("[PROTOCOL] <- %s", line[:200].decode("utf-8", errors="replace"))

        response = parse_response(line)
        result = response["result"]
        if not isinstance(result, str):
            raise IOFailure(f"Renderer result for {fmt} is not a string")
        return result

    def _publish(self, event_type: str, data: Dict[str, Any]) -> None:
        if not self._event_system:
            return
        try:
            self._event_system.publish(event_type, data=data, source=self)
        except Exception as e:
            logger.debug("[PROTOCOL] Failed to publish %s: %s", event_type, e)
