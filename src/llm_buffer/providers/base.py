"""Provider adapter base class and parsing helpers.

An adapter translates between the normalized request/event model and one
provider's wire format.  ``parse_line`` is pure apart from the per-job
:class:`AdapterState` it is handed, so a stream can be replayed line by
line in tests.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from llm_buffer.config import ProviderConfig
from llm_buffer.types import IGNORED, ProviderError, RequestSpec, StreamEvent, TextDelta

_logger = logging.getLogger(__name__)

_DATA_PREFIX = "data:"
_EVENT_PREFIX = "event:"
GENERIC_PROVIDER_ERROR = "Provider returned an error"


@dataclass
class AdapterState:
    """Mutable parse state carried across the lines of one stream."""

    event: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def load_json(payload: str) -> Any | None:
    """Decode *payload*, returning ``None`` instead of raising."""
    try:
        return json.loads(payload)
    except (json.JSONDecodeError, ValueError):
        return None


def dig(obj: Any, *path: str | int) -> Any | None:
    """Walk nested dicts/lists; ``None`` as soon as a step is missing."""
    for key in path:
        if isinstance(key, int):
            if not isinstance(obj, list) or not -len(obj) <= key < len(obj):
                return None
            obj = obj[key]
        else:
            if not isinstance(obj, dict) or key not in obj:
                return None
            obj = obj[key]
    return obj


def error_message(data: Any) -> str | None:
    """Extract an error message from a provider payload.

    Understands ``{"error": {"message": ...}}``, ``{"error": "..."}``,
    Anthropic's ``{"type": "error", ...}`` and Gemini's list-wrapped form.
    Returns ``None`` if the payload is not an error.
    """
    if isinstance(data, list):
        for item in data:
            msg = error_message(item)
            if msg is not None:
                return msg
        return None
    if not isinstance(data, dict) or "error" not in data:
        return None
    err = data["error"]
    if not err:
        return None
    if isinstance(err, str):
        return err
    if isinstance(err, dict):
        msg = err.get("message")
        if isinstance(msg, str) and msg:
            return msg
    return GENERIC_PROVIDER_ERROR


def sse_field(line: str, prefix: str) -> str | None:
    """Return the value of an SSE ``<prefix> value`` line, else ``None``."""
    if not line.startswith(prefix):
        return None
    return line[len(prefix):].strip()


def text_event(value: Any) -> StreamEvent:
    """``TextDelta`` for a non-empty string, ``IGNORED`` otherwise."""
    if isinstance(value, str) and value:
        return TextDelta(value)
    return IGNORED


def compose_prompt(prompt: str, context: str) -> str:
    """Conversation context followed by the user's prompt."""
    return f"{context}{prompt}"


# ---------------------------------------------------------------------------
# Adapter base
# ---------------------------------------------------------------------------

class ProviderAdapter(ABC):
    """Translation layer for one provider backend."""

    name: str = ""
    default_url: str = ""

    def new_state(self) -> AdapterState:
        return AdapterState()

    def endpoint(self, config: ProviderConfig, path: str) -> str:
        root = (config.base_url or self.default_url).rstrip("/")
        return f"{root}{path}"

    @abstractmethod
    def build_request(
        self, prompt: str, context: str, config: ProviderConfig,
    ) -> RequestSpec:
        """Build the streaming request for *prompt* with *context* prepended."""

    @abstractmethod
    def parse_line(self, raw_line: str, state: AdapterState) -> StreamEvent:
        """Turn one raw transport line into at most one event."""


class SSEDataAdapter(ProviderAdapter):
    """Adapter for streams made of ``data: <json>`` lines."""

    def parse_line(self, raw_line: str, state: AdapterState) -> StreamEvent:
        payload = sse_field(raw_line, _DATA_PREFIX)
        if not payload:
            return IGNORED
        data = load_json(payload)
        if data is None:
            return IGNORED
        msg = error_message(data)
        if msg is not None:
            return ProviderError(msg)
        return text_event(self.extract_text(data))

    @abstractmethod
    def extract_text(self, data: Any) -> Any:
        """Pull the delta text out of one decoded data payload."""
