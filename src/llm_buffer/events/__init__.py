"""Notification boundary for job lifecycle events."""

from llm_buffer.events.bus import EventBus

__all__ = ["EventBus"]
