"""Rolling conversation history re-injected into new prompts.

The bound is a turn count, not a token budget.  ``estimate_tokens`` is the
same coarse chars-per-token heuristic used elsewhere and is only ever shown
to the user.
"""

from __future__ import annotations

import logging
import math
from collections import deque

from llm_buffer.types import ConversationTurn, Role

_logger = logging.getLogger(__name__)

# Rough bytes-per-token ratio for advisory estimates
_BYTES_PER_TOKEN = 4

DEFAULT_MAX_TURNS = 10  # 5 prompt/response pairs

_CONTEXT_OPEN = "<context>"
_CONTEXT_CLOSE = "</context>"
_LABELS = {Role.PROMPT: "User", Role.RESPONSE: "Assistant"}


def _check_limit(max_turns: int) -> None:
    if max_turns < 1:
        raise ValueError(f"max_turns must be positive, got {max_turns}")


def estimate_tokens(text: str) -> int:
    """Rough token count estimate: ``ceil(utf8 bytes / 4)``."""
    return math.ceil(len(text.encode("utf-8")) / _BYTES_PER_TOKEN)


class ConversationHistory:
    """Bounded FIFO of conversation turns.

    Turns are evicted oldest first once more than *max_turns* are held.
    A response turn is appended empty before the request goes out and
    filled in via :meth:`update_response`, so an interrupted request still
    leaves its (possibly partial) answer behind.
    """

    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS) -> None:
        _check_limit(max_turns)
        self._max_turns = max_turns
        self._turns: deque[ConversationTurn] = deque(maxlen=max_turns)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def append_prompt(self, text: str) -> ConversationTurn:
        turn = ConversationTurn(role=Role.PROMPT, content=text)
        self._turns.append(turn)
        return turn

    def append_response_placeholder(self) -> ConversationTurn:
        turn = ConversationTurn(role=Role.RESPONSE)
        self._turns.append(turn)
        return turn

    def update_response(self, turn: ConversationTurn, text: str) -> bool:
        """Replace *turn*'s content with *text*.

        *text* must extend the current content; anything else would
        reorder the stream and raises ``ValueError``.  Returns ``False``
        without changing anything when the turn is already frozen.
        """
        if turn.role is not Role.RESPONSE:
            raise ValueError("only response turns can be updated")
        if turn.frozen:
            _logger.debug("Ignoring update to frozen response turn")
            return False
        if not text.startswith(turn.content):
            raise ValueError("response text must grow monotonically")
        turn.content = text
        return True

    def clear(self) -> None:
        self._turns.clear()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def max_turns(self) -> int:
        return self._max_turns

    @max_turns.setter
    def max_turns(self, max_turns: int) -> None:
        # shrinking drops the oldest turns right away
        _check_limit(max_turns)
        self._max_turns = max_turns
        self._turns = deque(self._turns, maxlen=max_turns)

    @property
    def turns(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def build_context(self) -> str:
        """Render the held turns, oldest first, inside a context block."""
        if not self._turns:
            return ""
        lines = [_CONTEXT_OPEN]
        for turn in self._turns:
            lines.append(f"{_LABELS[turn.role]}: {turn.content}")
        lines.append(_CONTEXT_CLOSE)
        return "\n".join(lines) + "\n\n"

    def estimate_tokens(self) -> int:
        return estimate_tokens(self.build_context())
