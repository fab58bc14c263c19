"""OpenAI chat completions adapter."""

from __future__ import annotations

from typing import Any

from llm_buffer.config import ProviderConfig
from llm_buffer.types import IGNORED, RequestSpec, StreamEvent

from .base import (
    _DATA_PREFIX,
    AdapterState,
    SSEDataAdapter,
    compose_prompt,
    dig,
    sse_field,
)

_DONE = "[DONE]"


class OpenAIAdapter(SSEDataAdapter):
    name = "openai"
    default_url = "https://api.openai.com"

    def build_request(
        self, prompt: str, context: str, config: ProviderConfig,
    ) -> RequestSpec:
        return RequestSpec(
            method="POST",
            url=self.endpoint(config, "/v1/chat/completions"),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {config.credential}",
            },
            body={
                "model": config.model,
                "messages": [
                    {"role": "system", "content": config.system_prompt},
                    {"role": "user", "content": compose_prompt(prompt, context)},
                ],
                "max_tokens": config.max_tokens,
                "stream": True,
            },
        )

    def parse_line(self, raw_line: str, state: AdapterState) -> StreamEvent:
        if sse_field(raw_line, _DATA_PREFIX) == _DONE:
            return IGNORED
        return super().parse_line(raw_line, state)

    def extract_text(self, data: Any) -> Any:
        return dig(data, "choices", 0, "delta", "content")
