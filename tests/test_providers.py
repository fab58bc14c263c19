"""Tests for the per-provider request builders and line parsers."""

from __future__ import annotations

import pytest

from llm_buffer.config import ProviderConfig
from llm_buffer.errors import UnknownProviderError
from llm_buffer.providers import (
    PROVIDERS,
    AnthropicAdapter,
    GeminiAdapter,
    OllamaAdapter,
    OpenAIAdapter,
    get_adapter,
)
from llm_buffer.providers.base import dig, error_message
from llm_buffer.types import IGNORED, ProviderError, TextDelta


def _feed(adapter, lines: list[str]) -> list:
    state = adapter.new_state()
    return [adapter.parse_line(line, state) for line in lines]


def _deltas(events: list) -> list[str]:
    return [e.text for e in events if isinstance(e, TextDelta)]


def _config(kind: str, **kwargs) -> ProviderConfig:
    defaults = {
        "model": "test-model",
        "credential": "sk-test",
        "system_prompt": "Be brief.",
        "max_tokens": 123,
    }
    defaults.update(kwargs)
    return ProviderConfig(kind=kind, **defaults)


# ---------------------------------------------------------------------------
# Registry and helpers
# ---------------------------------------------------------------------------

class TestRegistry:
    def test_all_providers_registered(self):
        assert set(PROVIDERS) == {"anthropic", "openai", "gemini", "ollama"}

    def test_get_adapter(self):
        assert isinstance(get_adapter("anthropic"), AnthropicAdapter)
        assert isinstance(get_adapter("OpenAI"), OpenAIAdapter)
        assert isinstance(get_adapter("gemini"), GeminiAdapter)
        assert isinstance(get_adapter("ollama"), OllamaAdapter)

    def test_unknown_provider(self):
        with pytest.raises(UnknownProviderError):
            get_adapter("mistral")


class TestHelpers:
    def test_dig(self):
        data = {"a": [{"b": "x"}]}
        assert dig(data, "a", 0, "b") == "x"
        assert dig(data, "a", 1, "b") is None
        assert dig(data, "missing") is None
        assert dig(data, "a", "b") is None

    def test_error_message_shapes(self):
        assert error_message({"error": {"message": "bad key"}}) == "bad key"
        assert error_message({"error": "model not found"}) == "model not found"
        assert error_message([{"error": {"message": "quota"}}]) == "quota"
        assert error_message({"error": {"code": 500}}) == "Provider returned an error"
        assert error_message({"error": None}) is None
        assert error_message({"response": "hi"}) is None


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------

class TestAnthropic:
    def test_delta_after_content_block_delta(self):
        events = _feed(AnthropicAdapter(), [
            "event: content_block_delta",
            'data: {"delta":{"text":"hi"}}',
        ])
        assert events[-1] == TextDelta("hi")

    def test_same_data_after_message_start_is_ignored(self):
        events = _feed(AnthropicAdapter(), [
            "event: message_start",
            'data: {"delta":{"text":"hi"}}',
        ])
        assert events == [IGNORED, IGNORED]

    def test_scripted_stream(self):
        lines = [
            "event: message_start",
            'data: {"type":"message_start","message":{"id":"msg_1"}}',
            "",
            "event: content_block_start",
            'data: {"type":"content_block_start","index":0}',
            "",
            "event: ping",
            'data: {"type":"ping"}',
            "event: content_block_delta",
            'data: {"type":"content_block_delta","delta":{"type":"text_delta","text":"Hello"}}',
            "event: content_block_delta",
            "data: {not json",
            "event: content_block_delta",
            'data: {"type":"content_block_delta","delta":{"type":"text_delta","text":", world"}}',
            "event: content_block_stop",
            'data: {"type":"content_block_stop","index":0}',
            "event: message_stop",
            'data: {"type":"message_stop"}',
        ]
        assert _deltas(_feed(AnthropicAdapter(), lines)) == ["Hello", ", world"]

    def test_error_event(self):
        events = _feed(AnthropicAdapter(), [
            "event: error",
            'data: {"type":"error","error":{"type":"overloaded_error","message":"Overloaded"}}',
        ])
        assert events[-1] == ProviderError("Overloaded")

    def test_build_request(self):
        req = AnthropicAdapter().build_request(
            "What is 2+2?", "<context>\nUser: hi\n</context>\n\n", _config("anthropic"),
        )
        assert req.method == "POST"
        assert req.url == "https://api.anthropic.com/v1/messages"
        assert req.headers["x-api-key"] == "sk-test"
        assert req.headers["anthropic-version"] == "2023-06-01"
        assert req.body == {
            "system": "Be brief.",
            "messages": [{
                "role": "user",
                "content": "<context>\nUser: hi\n</context>\n\nWhat is 2+2?",
            }],
            "model": "test-model",
            "max_tokens": 123,
            "stream": True,
        }

    def test_base_url_override(self):
        req = AnthropicAdapter().build_request(
            "hi", "", _config("anthropic", base_url="http://proxy:8080/"),
        )
        assert req.url == "http://proxy:8080/v1/messages"


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

class TestOpenAI:
    def test_done_is_ignored(self):
        events = _feed(OpenAIAdapter(), ["data: [DONE]"])
        assert events == [IGNORED]

    def test_scripted_stream(self):
        lines = [
            'data: {"choices":[{"delta":{"role":"assistant"}}]}',
            "",
            'data: {"choices":[{"delta":{"content":"4"}}]}',
            ": keep-alive",
            'data: {"choices":[]}',
            'data: {"choices":[{"delta":{"content":" is the answer"}}]}',
            'data: {"choices":[{"delta":{},"finish_reason":"stop"}]}',
            "data: [DONE]",
        ]
        events = _feed(OpenAIAdapter(), lines)
        assert _deltas(events) == ["4", " is the answer"]
        assert all(isinstance(e, (TextDelta, type(IGNORED))) for e in events)

    def test_error_payload(self):
        events = _feed(OpenAIAdapter(), [
            'data: {"error":{"message":"Rate limit reached","type":"requests"}}',
        ])
        assert events == [ProviderError("Rate limit reached")]

    def test_build_request(self):
        req = OpenAIAdapter().build_request("hello", "", _config("openai"))
        assert req.url == "https://api.openai.com/v1/chat/completions"
        assert req.headers["Authorization"] == "Bearer sk-test"
        assert req.body == {
            "model": "test-model",
            "messages": [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "hello"},
            ],
            "max_tokens": 123,
            "stream": True,
        }


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------

class TestGemini:
    def test_scripted_stream(self):
        lines = [
            'data: {"candidates":[{"content":{"parts":[{"text":"Hel"}],"role":"model"}}]}',
            "",
            'data: {"candidates":[{"content":{"parts":[{"text":"lo"}]}}]}',
            'data: {"usageMetadata":{"promptTokenCount":3}}',
            "garbage",
        ]
        assert _deltas(_feed(GeminiAdapter(), lines)) == ["Hel", "lo"]

    def test_build_request(self):
        req = GeminiAdapter().build_request(
            "hello", "<context>\n</context>\n\n", _config("gemini", model="gemini-1.5-flash"),
        )
        assert req.url == (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            "gemini-1.5-flash:streamGenerateContent?alt=sse&key=sk-test"
        )
        assert "Authorization" not in req.headers
        assert req.body == {
            "contents": {"parts": {"text": "Be brief.\n\n<context>\n</context>\n\nhello"}},
        }


# ---------------------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------------------

class TestOllama:
    def test_scripted_stream(self):
        lines = [
            '{"model":"llama3.2","response":"4","done":false}',
            "",
            "not json",
            '{"model":"llama3.2","response":"","done":true,"eval_count":2}',
        ]
        events = _feed(OllamaAdapter(), lines)
        assert _deltas(events) == ["4"]
        assert events[1:] == [IGNORED, IGNORED, IGNORED]

    def test_data_prefix_not_expected(self):
        assert _feed(OllamaAdapter(), ['data: {"response":"x"}']) == [IGNORED]

    def test_error_line(self):
        events = _feed(OllamaAdapter(), ['{"error":"model \'nope\' not found"}'])
        assert events == [ProviderError("model 'nope' not found")]

    def test_build_request_uses_host(self):
        req = OllamaAdapter().build_request(
            "What is 2+2?", "", _config("ollama", credential="http://gpu-box:11434/"),
        )
        assert req.url == "http://gpu-box:11434/api/generate"
        assert req.headers == {"Content-Type": "application/json"}
        assert req.body == {
            "model": "test-model",
            "prompt": "What is 2+2?",
            "system": "Be brief.",
            "stream": True,
        }
