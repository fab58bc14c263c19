"""Configuration management for LLM Buffer.

Config discovery (first match wins):
  1. ``--config`` flag
  2. ``./llm_buffer.yaml``
  3. ``~/.llm_buffer/llm_buffer.yaml``
  4. Built-in defaults

Credentials are never required in the file: each provider falls back to its
usual environment variable.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from llm_buffer.errors import UnknownProviderError

_logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """\
You are a helpful assistant. You are an expert in the field of computer science and software development.
You have a deep understanding of the topic and are able to provide accurate and helpful information.
Your answers are appended to a Markdown document - use proper markdown syntax to answer the user's question.
Any code examples should be formatted in markdown as well.
Be concise and to the point.
If you don't know the answer, just say that you don't know, don't try to make up an answer.
"""

DEFAULT_OLLAMA_HOST = "http://localhost:11434"

# provider kind -> (default model, credential environment variable)
_PROVIDER_DEFAULTS: dict[str, tuple[str, str]] = {
    "anthropic": ("claude-3-5-sonnet-20241022", "ANTHROPIC_API_KEY"),
    "openai": ("gpt-4o", "OPENAI_API_KEY"),
    "gemini": ("gemini-1.5-flash", "GEMINI_API_KEY"),
    "ollama": ("llama3.2", "OLLAMA_HOST"),
}


# ---------------------------------------------------------------------------
# Per-job provider config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProviderConfig:
    """Everything an adapter needs to build one request.

    ``credential`` is the API key, or the server host for Ollama.
    ``base_url`` optionally replaces the provider's public endpoint root.
    """

    kind: str
    model: str
    credential: str = ""
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_tokens: int = 2000
    base_url: str = ""


# ---------------------------------------------------------------------------
# File config
# ---------------------------------------------------------------------------

class ProviderSettings(BaseModel):
    model: str = ""
    api_key: str = ""
    api_key_env: str = ""  # overrides the default environment variable
    host: str = ""  # ollama only
    base_url: str = ""


class BufferConfig(BaseModel):
    provider: str = "anthropic"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_tokens: int = 2000
    history_turns: int = 10  # 5 prompt/response pairs
    timeout: float = 300  # seconds, per read
    providers: dict[str, ProviderSettings] = Field(default_factory=dict)

    def provider_config(
        self,
        kind: str | None = None,
        model: str | None = None,
    ) -> ProviderConfig:
        """Resolve the :class:`ProviderConfig` for *kind* (default: active).

        The credential may come out empty; the client reports that as a
        missing credential when the request is sent.
        """
        kind = (kind or self.provider).lower()
        if kind not in _PROVIDER_DEFAULTS:
            raise UnknownProviderError(kind)
        default_model, env_var = _PROVIDER_DEFAULTS[kind]
        settings = self.providers.get(kind, ProviderSettings())

        if kind == "ollama":
            credential = (
                settings.host
                or os.environ.get(settings.api_key_env or env_var, "")
                or DEFAULT_OLLAMA_HOST
            )
        else:
            credential = settings.api_key or os.environ.get(
                settings.api_key_env or env_var, "",
            )

        return ProviderConfig(
            kind=kind,
            model=model or settings.model or default_model,
            credential=credential,
            system_prompt=self.system_prompt,
            max_tokens=self.max_tokens,
            base_url=settings.base_url,
        )


def credential_env_var(kind: str) -> str:
    """Environment variable consulted for *kind*'s credential."""
    return _PROVIDER_DEFAULTS.get(kind, ("", ""))[1]


CONFIG_FILENAME = "llm_buffer.yaml"


def load_config(
    config_path: str | Path | None = None,
) -> tuple[BufferConfig, Path | None]:
    """Load configuration from YAML file.

    Returns (config, resolved_path).  *resolved_path* is ``None`` when
    no file was found and built-in defaults are used.
    """
    if config_path is None:
        for candidate in (
            Path.cwd() / CONFIG_FILENAME,
            Path.home() / ".llm_buffer" / CONFIG_FILENAME,
        ):
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return BufferConfig(), None

    resolved = Path(config_path).expanduser()
    if not resolved.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    _logger.info("Loading config from %s", resolved)
    with open(resolved) as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}
    return BufferConfig.model_validate(raw), resolved.resolve()
