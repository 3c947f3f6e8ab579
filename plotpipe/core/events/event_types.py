"""
Renderer event types.

Payloads (``Event.data``):

- ``renderer.state_changed``: ``{"state": <SupervisorState name>, "pid": int | None,
  "reason": str | None}``
- ``render.completed``: ``{"format": str, "size": int, "elapsed_ms": float}``
- ``render.failed``: ``{"format": str, "error": str}``
"""
import time
from dataclasses import dataclass, field
from typing import Any, Dict


class EventType:
    """Event type constants."""
    # Supervisor events
    RENDERER_STATE_CHANGED = "renderer.state_changed"

    # Protocol events
    RENDER_COMPLETED = "render.completed"
    RENDER_FAILED = "render.failed"


@dataclass(frozen=True)
class Event:
    """One published notification."""
    event_type: str
    data: Dict[str, Any] = field(default_factory=dict)
    source: Any = None
    timestamp: float = field(default_factory=time.time)
