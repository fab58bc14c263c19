"""Errors raised when a request cannot be started.

Failures that happen after a job is running (provider errors, transport
failures, cancellation) are reported through the job's terminal state and
the event bus instead.
"""

from __future__ import annotations


class LLMBufferError(RuntimeError):
    """Base class for LLM Buffer errors."""


class MissingCredentialError(LLMBufferError):
    """The selected provider has no API key (or host, for Ollama)."""

    def __init__(self, provider: str, hint: str = "") -> None:
        self.provider = provider
        message = f"{provider} credential not set"
        if hint:
            message = f"{message}. {hint}"
        super().__init__(message)


class EmptyPromptError(LLMBufferError):
    """No usable prompt text was supplied."""

    def __init__(self) -> None:
        super().__init__(
            "No prompt found. Ensure you have a valid selection or line selected."
        )


class UnknownProviderError(LLMBufferError, ValueError):
    """Provider kind is not one of the supported backends."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Unknown provider: {provider}")
