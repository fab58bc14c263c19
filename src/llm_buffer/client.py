"""Provider-agnostic streaming client.

``StreamingClient.send()`` picks the adapter for the configured provider,
opens an ``httpx`` stream, feeds every raw line through the adapter and
forwards text deltas, in arrival order, to the output sink and to the
conversation history.  Exactly one job is in flight at a time; sending a
new prompt cancels the previous one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import urlsplit

import httpx

from llm_buffer.config import ProviderConfig, credential_env_var
from llm_buffer.errors import EmptyPromptError, MissingCredentialError
from llm_buffer.events.bus import EventBus
from llm_buffer.history import DEFAULT_MAX_TURNS, ConversationHistory, estimate_tokens
from llm_buffer.jobs import Job, JobController
from llm_buffer.output import CollectingSink, OutputSink, SinkWriter
from llm_buffer.providers import get_adapter
from llm_buffer.providers.base import AdapterState, ProviderAdapter
from llm_buffer.types import (
    ConversationTurn,
    EventType,
    JobEvent,
    JobState,
    ProviderError,
    RequestSpec,
    TextDelta,
)

_logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 300  # seconds
_CONNECT_TIMEOUT = 30


class StreamingClient:
    """Sends prompts to an LLM provider and streams the answers.

    Parameters
    ----------
    config:
        Provider configuration used when ``send`` is not given one.
    sink:
        Destination for streamed text.  Defaults to a ``CollectingSink``.
    history_limit:
        Number of turns kept for context (prompts and responses each count).
    event_bus:
        Receives job lifecycle events (the notification boundary).
    http_client:
        Pre-built ``httpx.AsyncClient``; one is created if omitted.
    timeout:
        Read timeout in seconds for the streaming response.
    """

    def __init__(
        self,
        config: ProviderConfig | None = None,
        sink: OutputSink | None = None,
        history_limit: int = DEFAULT_MAX_TURNS,
        event_bus: EventBus | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self._config = config
        self._event_bus = event_bus or EventBus()
        self._history = ConversationHistory(history_limit)
        self._jobs = JobController(self._event_bus)
        self._writer = SinkWriter(sink or CollectingSink())
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=_CONNECT_TIMEOUT),
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> ProviderConfig | None:
        return self._config

    @config.setter
    def config(self, config: ProviderConfig) -> None:
        # takes effect from the next send; a running job keeps its own
        self._config = config

    @property
    def history_limit(self) -> int:
        return self._history.max_turns

    @history_limit.setter
    def history_limit(self, limit: int) -> None:
        # read by the next send when it builds context
        self._history.max_turns = limit

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def sink(self) -> OutputSink:
        return self._writer.sink

    @property
    def current_job(self) -> Job | None:
        return self._jobs.current

    @property
    def state(self) -> JobState:
        return self._jobs.state

    @property
    def turns(self) -> tuple[ConversationTurn, ...]:
        return self._history.turns

    def build_context(self) -> str:
        return self._history.build_context()

    def context_tokens(self) -> int:
        return self._history.estimate_tokens()

    def clear_history(self) -> None:
        self._history.clear()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send(self, prompt: str, config: ProviderConfig | None = None) -> Job:
        """Start streaming a response to *prompt* and return its job.

        Raises ``EmptyPromptError``, ``UnknownProviderError`` or
        ``MissingCredentialError`` before anything is sent; in those cases
        no job is created and the running job (if any) is left alone.
        """
        if not prompt or not prompt.strip():
            raise EmptyPromptError()
        config = config or self._config
        if config is None:
            raise ValueError("No provider configured")
        adapter = get_adapter(config.kind)
        if not config.credential:
            env_var = credential_env_var(config.kind)
            raise MissingCredentialError(
                config.kind, f"Set {env_var} or add it to llm_buffer.yaml" if env_var else "",
            )

        context = self._history.build_context()
        self._history.append_prompt(prompt)
        response = self._history.append_response_placeholder()

        job = Job(prompt=prompt, provider=config.kind, response=response)
        self._jobs.start(job)

        request = adapter.build_request(prompt, context, config)
        _logger.debug(
            "Job %d: %s %s (model=%s)",
            job.id, request.method, _redact(request.url), config.model,
        )
        job.task = asyncio.get_running_loop().create_task(
            self._run(job, adapter, request),
        )
        job.task.add_done_callback(lambda task: self._on_exit(job, task))

        self._event_bus.emit_nowait(JobEvent(
            type=EventType.JOB_STARTED,
            data={
                "job_id": job.id,
                "provider": config.kind,
                "model": config.model,
                "context_tokens": estimate_tokens(context),
                "prompt_tokens": estimate_tokens(prompt),
            },
        ))
        return job

    def cancel(self) -> bool:
        """Cancel the running job.  No-op if nothing is running."""
        return self._jobs.cancel()

    def cancel_threadsafe(self, loop: asyncio.AbstractEventLoop) -> None:
        """Request cancellation from a thread other than *loop*'s."""
        loop.call_soon_threadsafe(self._jobs.cancel)

    async def wait(self, job: Job | None = None) -> JobState:
        """Wait for *job* (default: current) and for its output to land.

        On return the sink has received every extracted delta and the
        terminal event has been delivered.
        """
        job = job or self._jobs.current
        state = await job.wait() if job is not None else JobState.IDLE
        await self._writer.flush()
        await self._event_bus.drain()
        return state

    async def ask(self, prompt: str, config: ProviderConfig | None = None) -> Job:
        """Send *prompt* and wait for the job to finish."""
        job = await self.send(prompt, config)
        await self.wait(job)
        return job

    async def close(self) -> None:
        self._jobs.cancel()
        job = self._jobs.current
        if job is not None:
            await job.wait()
        await self._writer.close()
        await self._event_bus.drain()
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> StreamingClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _run(
        self, job: Job, adapter: ProviderAdapter, request: RequestSpec,
    ) -> tuple[bool, str]:
        """Stream one request.  Returns ``(ok, detail)`` for the exit callback."""
        state = adapter.new_state()
        try:
            async with self._http.stream(
                request.method,
                request.url,
                headers=request.headers,
                json=request.body,
            ) as resp:
                async for line in resp.aiter_lines():
                    self._ingest(job, adapter, state, line)
                ok = resp.is_success
                detail = "" if ok else f"HTTP {resp.status_code}"
        except httpx.HTTPError as e:
            _logger.warning("Job %d transport error: %s", job.id, e)
            return False, f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
        return ok, detail

    def _ingest(
        self, job: Job, adapter: ProviderAdapter, state: AdapterState, line: str,
    ) -> None:
        job.raw_output.append(line)
        event = adapter.parse_line(line, state)
        if isinstance(event, TextDelta):
            if self._history.update_response(job.response, job.response.content + event.text):
                self._writer.write(event.text)
        elif isinstance(event, ProviderError):
            _logger.debug("Job %d provider error: %s", job.id, event.message)
            if job.provider_error is None:
                job.provider_error = event.message

    def _on_exit(self, job: Job, task: asyncio.Task) -> None:
        if task.cancelled():
            ok, detail = False, "cancelled"
        elif task.exception() is not None:
            exc = task.exception()
            _logger.error("Job %d crashed", job.id, exc_info=exc)
            ok, detail = False, f"{type(exc).__name__}: {exc}"
        else:
            ok, detail = task.result()
        self._jobs.finish(job, ok, detail)


def _redact(url: str) -> str:
    """Drop the query string, which may carry an API key."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}"
