"""Ollama ``/api/generate`` adapter (NDJSON, no auth)."""

from __future__ import annotations

from llm_buffer.config import ProviderConfig
from llm_buffer.types import IGNORED, ProviderError, RequestSpec, StreamEvent

from .base import (
    AdapterState,
    ProviderAdapter,
    compose_prompt,
    error_message,
    load_json,
    text_event,
)


class OllamaAdapter(ProviderAdapter):
    """One JSON object per line.  The final object carries ``done: true``
    and an empty ``response``, which needs no special handling."""

    name = "ollama"

    def build_request(
        self, prompt: str, context: str, config: ProviderConfig,
    ) -> RequestSpec:
        # credential is the host for Ollama
        root = (config.base_url or config.credential).rstrip("/")
        return RequestSpec(
            method="POST",
            url=f"{root}/api/generate",
            headers={"Content-Type": "application/json"},
            body={
                "model": config.model,
                "prompt": compose_prompt(prompt, context),
                "system": config.system_prompt,
                "stream": True,
            },
        )

    def parse_line(self, raw_line: str, state: AdapterState) -> StreamEvent:
        if not raw_line.strip():
            return IGNORED
        data = load_json(raw_line)
        if not isinstance(data, dict):
            return IGNORED
        msg = error_message(data)
        if msg is not None:
            return ProviderError(msg)
        return text_event(data.get("response"))
