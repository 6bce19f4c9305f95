"""
In-memory conversation history with dual eviction.

After every append the store evicts, in order:

1.  the oldest entries while the entry count exceeds ``max_history``;
2.  the oldest entries while the summed token estimate exceeds
    ``max_tokens`` *and* more than two entries remain.

The two-entry floor keeps the latest exchange even under a budget that a
single message already exceeds.  Token estimates are computed once, when an
entry is appended, and never recomputed.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

from canvasai.llm.token_counter import DEFAULT_ATTACHMENT_TOKENS, TokenCounter
from canvasai.llm.types import Message

logger = logging.getLogger(__name__)

_MIN_ENTRIES = 2


@dataclass(frozen=True)
class ConversationEntry:
    message: Message
    has_attachment: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    estimated_tokens: int = 0


class ConversationStore:
    """
    Append-only message history bounded by entry count and token estimate.

    Parameters
    ----------
    max_history:
        Maximum number of entries kept.
    max_tokens:
        Maximum summed token estimate kept (subject to the two-entry floor).
    attachment_tokens:
        Surcharge added to an entry's estimate per attachment.
    """

    def __init__(
        self,
        max_history: int = 50,
        max_tokens: int = 100_000,
        attachment_tokens: int = DEFAULT_ATTACHMENT_TOKENS,
    ) -> None:
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self.max_history = max_history
        self.max_tokens = max_tokens
        self._counter = TokenCounter(attachment_tokens)
        self._entries: deque[ConversationEntry] = deque()
        self._total_tokens = 0

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def append(self, message: Message, has_attachment: bool = False) -> ConversationEntry:
        entry = ConversationEntry(
            message=message,
            has_attachment=has_attachment,
            estimated_tokens=self._counter.count_message(message, has_attachment),
        )
        self._entries.append(entry)
        self._total_tokens += entry.estimated_tokens
        self._evict()
        return entry

    def add_user_message(self, text: str, has_attachment: bool = False) -> ConversationEntry:
        return self.append(Message.user(text), has_attachment)

    def add_assistant_message(self, text: str) -> ConversationEntry:
        return self.append(Message.assistant(text))

    def clear(self) -> None:
        self._entries.clear()
        self._total_tokens = 0

    def _evict(self) -> None:
        while len(self._entries) > self.max_history:
            self._drop_oldest()
        while self._total_tokens > self.max_tokens and len(self._entries) > _MIN_ENTRIES:
            self._drop_oldest()

    def _drop_oldest(self) -> None:
        dropped = self._entries.popleft()
        self._total_tokens -= dropped.estimated_tokens
        logger.debug(
            "Evicted %s message (%d tokens)", dropped.message.role, dropped.estimated_tokens
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_last_messages(self, n: int) -> list[Message]:
        """The *n* most recent messages, oldest first."""
        if n <= 0:
            return []
        entries = list(self._entries)[-n:]
        return [e.message for e in entries]

    @property
    def messages(self) -> list[Message]:
        return [e.message for e in self._entries]

    @property
    def entries(self) -> list[ConversationEntry]:
        return list(self._entries)

    @property
    def total_tokens(self) -> int:
        return self._total_tokens

    def summary(self) -> str:
        """One-paragraph description of the history, for status displays."""
        if not self._entries:
            return "No conversation history."
        user_count = sum(1 for e in self._entries if e.message.role == "user")
        parts = [
            f"{len(self._entries)} messages ({user_count} from the user), "
            f"~{self._total_tokens} tokens."
        ]
        last_user = next(
            (e.message for e in reversed(self._entries) if e.message.role == "user"),
            None,
        )
        if last_user is not None:
            text = last_user.text
            if len(text) > 100:
                text = text[:100] + "..."
            parts.append(f'Last request: "{text}"')
        return " ".join(parts)

    def __len__(self) -> int:
        return len(self._entries)
