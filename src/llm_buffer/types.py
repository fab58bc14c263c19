"""Shared data types for LLM Buffer."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Union


# ---------------------------------------------------------------------------
# Conversation types
# ---------------------------------------------------------------------------

class Role(enum.Enum):
    """Who a conversation turn belongs to."""

    PROMPT = "prompt"
    RESPONSE = "response"


@dataclass
class ConversationTurn:
    """One entry in the rolling conversation log.

    A response turn grows as deltas arrive and is frozen once its job
    reaches a terminal state.
    """

    role: Role
    content: str = ""
    frozen: bool = False

    def freeze(self) -> None:
        self.frozen = True


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextDelta:
    """Incremental fragment of generated text."""

    text: str


@dataclass(frozen=True)
class ProviderError:
    """Error object reported by the provider inside the stream."""

    message: str


@dataclass(frozen=True)
class Ignored:
    """Line carried nothing of interest (framing, keep-alive, bad JSON)."""


IGNORED = Ignored()

StreamEvent = Union[TextDelta, ProviderError, Ignored]


# ---------------------------------------------------------------------------
# Transport request
# ---------------------------------------------------------------------------

@dataclass
class RequestSpec:
    """Provider-specific HTTP request built by an adapter."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Job lifecycle
# ---------------------------------------------------------------------------

class JobState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.CANCELLED, JobState.COMPLETED, JobState.FAILED)


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

class EventType(enum.Enum):
    """Events published to the notification boundary."""

    JOB_STARTED = "job.started"
    JOB_COMPLETED = "job.completed"
    JOB_FAILED = "job.failed"
    JOB_CANCELLED = "job.cancelled"


@dataclass
class JobEvent:
    """Event emitted by the client via the EventBus."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
