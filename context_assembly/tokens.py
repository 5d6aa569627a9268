"""
Token estimation for prompt budgeting.

Counts are a characters-per-token heuristic, not the model's tokenizer:
they only have to be cheap, deterministic and roughly proportional to
prompt size.
"""

from __future__ import annotations

import math
from typing import Iterable

from .models import CHARS_PER_TOKEN, Message, PromptBudget


def _round_half_up(value: float) -> int:
    # Half-up: 2.5 -> 3, unlike round().
    return int(math.floor(value + 0.5))


def estimate_text_tokens(text: str | None, chars_per_token: float = CHARS_PER_TOKEN) -> int:
    """Estimate tokens for raw text. Empty or missing text costs nothing."""
    if not text:
        return 0
    return _round_half_up(len(text) / chars_per_token)


def estimate_tokens(message: Message | None, chars_per_token: float = CHARS_PER_TOKEN) -> int:
    """Estimate tokens a message will cost in the prompt (``text`` only)."""
    if message is None:
        return 0
    return estimate_text_tokens(message.text, chars_per_token)


def truncate_text(text: str, max_tokens: int, chars_per_token: float = CHARS_PER_TOKEN) -> str:
    """Keep the first ``max_tokens`` worth of characters."""
    max_chars = int(max_tokens * chars_per_token)
    if len(text) <= max_chars:
        return text
    return text[:max_chars]


class TokenEstimator:
    """
    Token estimator bound to one characters-per-token ratio.

    Attributes:
        chars_per_token: Ratio taken from the active PromptBudget
    """

    def __init__(self, chars_per_token: float = CHARS_PER_TOKEN) -> None:
        if chars_per_token <= 0:
            raise ValueError(f"chars_per_token must be positive, got {chars_per_token}")
        self.chars_per_token = chars_per_token

    @classmethod
    def from_budget(cls, budget: PromptBudget) -> TokenEstimator:
        return cls(chars_per_token=budget.chars_per_token)

    def estimate(self, message: Message | None) -> int:
        return estimate_tokens(message, self.chars_per_token)

    def estimate_text(self, text: str | None) -> int:
        return estimate_text_tokens(text, self.chars_per_token)

    def estimate_many(self, messages: Iterable[Message]) -> int:
        """Total estimate for a sequence of messages."""
        return sum(self.estimate(message) for message in messages)

    def truncate(self, text: str, max_tokens: int) -> str:
        return truncate_text(text, max_tokens, self.chars_per_token)
