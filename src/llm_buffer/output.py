"""Output sinks and ordered, non-blocking delivery to them.

The transport read loop never calls a sink directly: chunks go through a
:class:`SinkWriter` queue drained by a single worker task, so a slow sink
delays rendering but not line ingestion, and chunks keep their order.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Any, Protocol

from rich.console import Console

_logger = logging.getLogger(__name__)


class OutputSink(Protocol):
    """Destination for streamed text; ``append`` may be sync or async."""

    def append(self, text: str) -> Any:
        ...


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------

class CollectingSink:
    """Keeps every chunk in memory."""

    def __init__(self) -> None:
        self.chunks: list[str] = []

    def append(self, text: str) -> None:
        self.chunks.append(text)

    @property
    def text(self) -> str:
        return "".join(self.chunks)


class ConsoleSink:
    """Streams chunks to the terminal as they arrive."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def append(self, text: str) -> None:
        self.console.print(
            text, end="", markup=False, highlight=False, soft_wrap=True,
        )


class FileSink:
    """Appends chunks to a Markdown document on disk.

    *lead* is written once, just before the first chunk, to separate the
    answer from the text above it.
    """

    def __init__(self, path: str | Path, lead: str = "") -> None:
        self.path = Path(path)
        self._lead = lead

    def append(self, text: str) -> None:
        with open(self.path, "a", encoding="utf-8") as f:
            if self._lead:
                f.write(self._lead)
                self._lead = ""
            f.write(text)


# ---------------------------------------------------------------------------
# Ordered delivery
# ---------------------------------------------------------------------------

class SinkWriter:
    """FIFO delivery of chunks to one sink from a background task."""

    def __init__(self, sink: OutputSink) -> None:
        self._sink = sink
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None

    @property
    def sink(self) -> OutputSink:
        return self._sink

    def write(self, text: str) -> None:
        """Queue *text* for delivery.  Never blocks."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._drain())
        self._queue.put_nowait(text)

    async def flush(self) -> None:
        """Wait until every queued chunk has been handed to the sink."""
        if self._worker is not None and not self._worker.done():
            await self._queue.join()

    async def close(self) -> None:
        await self.flush()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    async def _drain(self) -> None:
        while True:
            text = await self._queue.get()
            try:
                result = self._sink.append(text)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                _logger.exception("Output sink %r failed", self._sink)
            finally:
                self._queue.task_done()
