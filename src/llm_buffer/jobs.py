"""Lifecycle of the single in-flight request.

    Idle -> Running -> {Cancelling -> Cancelled, Completed, Failed} -> Idle

At most one job is Running or Cancelling at a time.  All state changes
happen on the event loop thread, which is the serialization point between
the transport task, its exit callback and user-triggered cancellation.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass, field

from llm_buffer.events.bus import EventBus
from llm_buffer.providers.base import error_message
from llm_buffer.types import ConversationTurn, EventType, JobEvent, JobState

_logger = logging.getLogger(__name__)

_job_ids = itertools.count(1)

MSG_COMPLETED = "LLM Request Completed"
MSG_FAILED = "LLM Request Failed"
MSG_CANCELLED = "LLM Request Cancelled"

_STATE_EVENTS = {
    JobState.COMPLETED: EventType.JOB_COMPLETED,
    JobState.FAILED: EventType.JOB_FAILED,
    JobState.CANCELLED: EventType.JOB_CANCELLED,
}


@dataclass(eq=False)
class Job:
    """One request/response exchange with a provider."""

    prompt: str
    provider: str
    response: ConversationTurn
    id: int = field(default_factory=lambda: next(_job_ids))
    state: JobState = JobState.IDLE
    cancel_requested: bool = False
    raw_output: list[str] = field(default_factory=list)
    provider_error: str | None = None
    error: str | None = None
    task: asyncio.Task | None = None
    _finished: asyncio.Event = field(
        default_factory=asyncio.Event, init=False, repr=False,
    )

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def text(self) -> str:
        return self.response.content

    async def wait(self) -> JobState:
        """Wait for the job to reach a terminal state and return it."""
        await self._finished.wait()
        return self.state


def extract_provider_error(raw_output: list[str]) -> str | None:
    """Parse the accumulated body as JSON and pull out an error message.

    Error bodies (HTTP 4xx/5xx) are plain, possibly pretty-printed JSON,
    so the lines are rejoined before decoding.
    """
    body = "\n".join(raw_output).strip()
    if not body:
        return None
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, ValueError):
        return None
    return error_message(data)


class JobController:
    """Owns the current job, its cancellation flag and its exit disposition."""

    def __init__(self, event_bus: EventBus | None = None) -> None:
        self._event_bus = event_bus or EventBus()
        self._current: Job | None = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def current(self) -> Job | None:
        return self._current

    @property
    def state(self) -> JobState:
        if self._current is None:
            return JobState.IDLE
        return self._current.state

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self, job: Job) -> Job:
        """Make *job* the running job, cancelling any predecessor first.

        The predecessor is resolved as Cancelled right here; its exit
        callback may still fire later and is then ignored.
        """
        previous = self._current
        if previous is not None and not previous.is_terminal:
            _logger.debug("Superseding job %d with job %d", previous.id, job.id)
            self.cancel(previous)
            self._resolve(previous, JobState.CANCELLED, MSG_CANCELLED)
        self._current = job
        job.state = JobState.RUNNING
        return job

    def cancel(self, job: Job | None = None) -> bool:
        """Request cancellation of *job* (default: the current job).

        Idempotent: returns ``False`` when the job is already cancelling or
        terminal.  The flag is set before the transport task is cancelled
        so the exit callback can tell a cancel from a transport failure.
        """
        job = job or self._current
        if job is None or job.state is not JobState.RUNNING:
            return False
        job.cancel_requested = True
        job.state = JobState.CANCELLING
        if job.task is not None and not job.task.done():
            job.task.cancel()
        _logger.debug("Cancelling job %d", job.id)
        return True

    def finish(self, job: Job, ok: bool, detail: str = "") -> JobState:
        """Exit callback: classify *job*'s outcome.

        *ok* is the transport's own verdict (clean exit, 2xx status) and
        *detail* describes what went wrong when it is ``False``.
        """
        if job.is_terminal or job is not self._current:
            _logger.debug("Ignoring exit of superseded job %d", job.id)
            return job.state

        provider_error = job.provider_error or extract_provider_error(job.raw_output)
        if provider_error:
            return self._resolve(job, JobState.FAILED, provider_error)
        if job.cancel_requested:
            return self._resolve(job, JobState.CANCELLED, MSG_CANCELLED)
        if not ok:
            message = f"{MSG_FAILED}: {detail}" if detail else MSG_FAILED
            return self._resolve(job, JobState.FAILED, message)
        return self._resolve(job, JobState.COMPLETED, MSG_COMPLETED)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve(self, job: Job, state: JobState, message: str) -> JobState:
        job.state = state
        job.response.freeze()
        if state is not JobState.COMPLETED:
            job.error = message
        if job is self._current:
            self._current = None
        job._finished.set()

        log = _logger.warning if state is JobState.FAILED else _logger.info
        log("Job %d (%s) %s: %s", job.id, job.provider, state.value, message)

        self._event_bus.emit_nowait(JobEvent(
            type=_STATE_EVENTS[state],
            data={
                "job_id": job.id,
                "provider": job.provider,
                "message": message,
                "chars": len(job.response.content),
            },
        ))
        return state
