"""Anthropic Messages API adapter."""

from __future__ import annotations

from llm_buffer.config import ProviderConfig
from llm_buffer.types import IGNORED, ProviderError, RequestSpec, StreamEvent

from .base import (
    _DATA_PREFIX,
    _EVENT_PREFIX,
    AdapterState,
    ProviderAdapter,
    compose_prompt,
    dig,
    error_message,
    load_json,
    sse_field,
    text_event,
)

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdapter(ProviderAdapter):
    """SSE with ``event: <type>`` announcing the following ``data:`` line.

    Only ``content_block_delta`` events carry text; the event name has to
    be remembered in the adapter state until its data line arrives.
    """

    name = "anthropic"
    default_url = "https://api.anthropic.com"

    def build_request(
        self, prompt: str, context: str, config: ProviderConfig,
    ) -> RequestSpec:
        return RequestSpec(
            method="POST",
            url=self.endpoint(config, "/v1/messages"),
            headers={
                "Content-Type": "application/json",
                "x-api-key": config.credential,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            body={
                "system": config.system_prompt,
                "messages": [
                    {"role": "user", "content": compose_prompt(prompt, context)},
                ],
                "model": config.model,
                "max_tokens": config.max_tokens,
                "stream": True,
            },
        )

    def parse_line(self, raw_line: str, state: AdapterState) -> StreamEvent:
        event = sse_field(raw_line, _EVENT_PREFIX)
        if event is not None:
            state.event = event
            return IGNORED

        payload = sse_field(raw_line, _DATA_PREFIX)
        if not payload:
            return IGNORED
        data = load_json(payload)
        if data is None:
            return IGNORED

        if state.event == "error":
            return ProviderError(error_message(data) or "Anthropic stream error")
        if state.event != "content_block_delta":
            return IGNORED
        return text_event(dig(data, "delta", "text"))
