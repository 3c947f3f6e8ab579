"""Renderer notifications for plotpipe."""

from .event_system import EventSystem
from .event_types import Event, EventType

__all__ = ['EventSystem', 'Event', 'EventType']
