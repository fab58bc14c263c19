"""LLM Buffer - stream answers from Anthropic, OpenAI, Gemini or Ollama."""

from llm_buffer.client import StreamingClient
from llm_buffer.config import BufferConfig, ProviderConfig, load_config
from llm_buffer.errors import (
    EmptyPromptError,
    LLMBufferError,
    MissingCredentialError,
    UnknownProviderError,
)
from llm_buffer.history import ConversationHistory
from llm_buffer.jobs import Job, JobController
from llm_buffer.output import CollectingSink, ConsoleSink, FileSink, OutputSink

__version__ = "0.1.0"

__all__ = [
    "BufferConfig",
    "CollectingSink",
    "ConsoleSink",
    "ConversationHistory",
    "EmptyPromptError",
    "FileSink",
    "Job",
    "JobController",
    "LLMBufferError",
    "MissingCredentialError",
    "OutputSink",
    "ProviderConfig",
    "StreamingClient",
    "UnknownProviderError",
    "load_config",
]
