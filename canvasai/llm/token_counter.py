"""
Fixed token estimator.

Every component that budgets tokens (conversation store, context assembler)
uses the same heuristic so their numbers agree: the character-based estimate
(~4 characters per token) averaged with a word-based one (~1.3 tokens per
word), rounded up.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

_WHITESPACE = re.compile(r"\s+")

# Flat surcharge for an attached image (screenshot, file).
DEFAULT_ATTACHMENT_TOKENS = 1000


def estimate_tokens(text: str) -> int:
    """Return the estimated token count for a plain string."""
    word_count = len(_WHITESPACE.split(text))
    char_estimate = len(text) / 4
    word_estimate = word_count * 1.3
    return math.ceil((char_estimate + word_estimate) / 2)


class TokenCounter:
    """
    Estimate token counts for text, messages and tool catalogs.

    Parameters
    ----------
    attachment_tokens:
        Tokens charged for each attachment on a message.
    """

    def __init__(self, attachment_tokens: int = DEFAULT_ATTACHMENT_TOKENS) -> None:
        self.attachment_tokens = attachment_tokens

    def count_text(self, text: str) -> int:
        return estimate_tokens(text)

    def count_message(self, message: Any, has_attachment: bool = False) -> int:
        """
        Estimate a single message.

        Images embedded in the message and the *has_attachment* flag each add
        one attachment surcharge; the flag counts once even if the message
        also embeds the image.
        """
        tokens = estimate_tokens(getattr(message, "text", "") or "")
        attachments = len(getattr(message, "images", []) or [])
        if has_attachment:
            attachments = max(attachments, 1)
        return tokens + attachments * self.attachment_tokens

    def count_json(self, value: Any) -> int:
        return estimate_tokens(json.dumps(value))
