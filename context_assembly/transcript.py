"""
Transcript - Conversation History Under a Token Budget
======================================================

A Transcript is the ordered list of Interactions for one conversation. It
owns two jobs:

1. Prompt assembly: flatten interactions into messages, splice in the
   context of exactly one interaction, and truncate to the token budget.
2. Serialization: ``to_json()`` / ``from_json()`` round-trip.

Truncation Policy:
-----------------

    oldest                                                  newest
    [h1 a1] [h2 a2] [h3 a3] [ctx.. h4 a4] [h5 a5]
                      ▲                      ◀── walk pairs backward
                      └─ first pair that does not fit: it and
                         everything older is dropped

Pairs are atomic and recency wins. The policy is greedy on purpose: a
smaller older pair is never pulled in past a pair that did not fit.

A Transcript has a single owner and no internal locking; the owning
session serializes calls into it.
"""

from __future__ import annotations

import json
from typing import Any, Iterator, Sequence

import structlog
from pydantic import ValidationError

from .interaction import Interaction, is_valid_timestamp, utc_now_iso
from .models import ChatMessage, Message, PromptBudget, Speaker, TranscriptJSON
from .tokens import TokenEstimator

logger = structlog.get_logger(__name__)

SERVER_ERROR_TEXT = "Failed to generate a response due to server error."


class TranscriptFormatError(ValueError):
    """Raised when serialized data does not describe a valid transcript."""


# =============================================================================
# TRUNCATION
# =============================================================================


def truncate_prompt(
    messages: Sequence[Message],
    max_tokens: int,
    estimator: TokenEstimator | None = None,
) -> list[Message]:
    """
    Keep the newest (human, assistant) pairs that fit in ``max_tokens``.

    Messages are paired from the end: ``(messages[-2], messages[-1])``,
    then ``(messages[-4], messages[-3])`` and so on. With an odd count the
    oldest message has no partner and is never emitted.

    Args:
        messages: Flattened prompt messages in chat order
        max_tokens: Budget available after the preamble
        estimator: Token estimator (defaults to the standard ratio)

    Returns:
        Kept messages, in chat order (older -> newer)
    """
    estimator = estimator or TokenEstimator()
    kept: list[Message] = []
    available = max_tokens

    index = len(messages) - 1
    while index >= 1:
        human_message = messages[index - 1]
        assistant_message = messages[index]
        combined = estimator.estimate(human_message) + estimator.estimate(assistant_message)

        if combined > available:
            logger.debug(
                "prompt_truncated",
                dropped_messages=index + 1,
                kept_messages=len(kept),
                pair_tokens=combined,
                available_tokens=available,
            )
            break

        kept.append(assistant_message)
        kept.append(human_message)
        available -= combined
        index -= 2

    kept.reverse()
    return kept


# =============================================================================
# TRANSCRIPT
# =============================================================================


class Transcript:
    """
    Ordered history of Interactions for one conversation.

    The id is fixed at construction: the explicit value if given, else the
    timestamp of the earliest interaction whose timestamp is a valid date,
    else the current time. Only ``reset()`` assigns a new one.

    Args:
        interactions: Initial interactions, oldest first
        id: Explicit transcript id
        budget: Token budget used by ``to_prompt()``
    """

    def __init__(
        self,
        interactions: Sequence[Interaction] | None = None,
        id: str | None = None,
        budget: PromptBudget | None = None,
    ) -> None:
        self._interactions: list[Interaction] = list(interactions or [])
        self.budget = budget or PromptBudget()
        self.estimator = TokenEstimator.from_budget(self.budget)
        self._id = id or self._first_valid_timestamp() or utc_now_iso()

    def _first_valid_timestamp(self) -> str | None:
        for interaction in self._interactions:
            if is_valid_timestamp(interaction.timestamp):
                return interaction.timestamp
        return None

    @property
    def id(self) -> str:
        return self._id

    @property
    def is_empty(self) -> bool:
        return not self._interactions

    @property
    def interactions(self) -> tuple[Interaction, ...]:
        return tuple(self._interactions)

    @property
    def last_interaction_timestamp(self) -> str:
        for interaction in reversed(self._interactions):
            if is_valid_timestamp(interaction.timestamp):
                return interaction.timestamp
        return utc_now_iso()

    def __len__(self) -> int:
        return len(self._interactions)

    def __iter__(self) -> Iterator[Interaction]:
        return iter(self._interactions)

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def add_interaction(self, interaction: Interaction | None) -> None:
        if interaction is None:
            return
        self._interactions.append(interaction)

    def get_last_interaction(self) -> Interaction | None:
        return self._interactions[-1] if self._interactions else None

    def remove_last_interaction(self) -> None:
        if self._interactions:
            self._interactions.pop()

    def add_assistant_response(self, text: str, display_text: str | None = None) -> None:
        last = self.get_last_interaction()
        if last is None:
            return
        last.set_assistant_message(
            Message(
                speaker=Speaker.ASSISTANT,
                text=text,
                display_text=display_text if display_text is not None else text,
            )
        )

    def add_error_as_assistant_response(self, error_text: str) -> None:
        """
        Record a failed response on the last interaction.

        The model sees a fixed failure notice; the user keeps whatever was
        already displayed, followed by the error annotation.
        """
        last = self.get_last_interaction()
        if last is None:
            return

        shown = last.get_assistant_message().display_text or ""
        last.set_assistant_message(
            Message(
                speaker=Speaker.ASSISTANT,
                text=SERVER_ERROR_TEXT,
                display_text=(
                    f'{shown}<div class="chat-error"><span>Request failed: </span>{error_text}</div>'
                ),
            )
        )
        logger.warning("assistant_response_failed", transcript_id=self._id, error=error_text)

    def reset(self) -> None:
        self._interactions = []
        self._id = utc_now_iso()

    # -------------------------------------------------------------------------
    # Prompt assembly
    # -------------------------------------------------------------------------

    async def _last_interaction_with_context_index(self) -> int:
        for index in range(len(self._interactions) - 1, -1, -1):
            if await self._interactions[index].has_context():
                return index
        return -1

    async def to_prompt(self, preamble: Sequence[Message] | None = None) -> list[Message]:
        """
        Assemble the budget-truncated prompt.

        Only the most recent interaction whose context resolved to at least
        one message contributes context; every other interaction
        contributes just its human/assistant pair.

        Args:
            preamble: Fixed leading messages; their cost is taken off the
                budget first and they are always emitted

        Returns:
            Preamble followed by the kept messages in chat order
        """
        preamble = list(preamble or [])
        context_index = await self._last_interaction_with_context_index()

        messages: list[Message] = []
        for index, interaction in enumerate(self._interactions):
            messages.extend(await interaction.to_prompt(include_context=index == context_index))

        preamble_tokens = self.estimator.estimate_many(preamble)
        max_tokens = self.budget.max_available_prompt_length - preamble_tokens
        truncated = truncate_prompt(messages, max_tokens, self.estimator)

        logger.debug(
            "prompt_assembled",
            transcript_id=self._id,
            interaction_count=len(self._interactions),
            context_interaction=context_index,
            message_count=len(messages),
            kept_count=len(truncated),
            preamble_tokens=preamble_tokens,
        )
        return [*preamble, *truncated]

    def to_chat(self) -> list[ChatMessage]:
        return [message for interaction in self._interactions for message in interaction.to_chat()]

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    async def to_json(self) -> TranscriptJSON:
        interactions = [await interaction.to_json() for interaction in self._interactions]
        return TranscriptJSON(
            id=self._id,
            interactions=interactions,
            last_interaction_timestamp=self.last_interaction_timestamp,
        )

    def to_json_blocking(self) -> TranscriptJSON:
        """Synchronous ``to_json()``; resolves pending context by blocking."""
        return TranscriptJSON(
            id=self._id,
            interactions=[interaction.to_json_blocking() for interaction in self._interactions],
            last_interaction_timestamp=self.last_interaction_timestamp,
        )

    @classmethod
    def from_json(
        cls,
        data: TranscriptJSON | dict[str, Any] | str | bytes,
        budget: PromptBudget | None = None,
    ) -> Transcript:
        """
        Rebuild a transcript from ``to_json()`` output.

        Accepts the model itself, a plain dict using the camelCase keys, or
        a JSON document.

        Raises:
            TranscriptFormatError: If required fields are missing or invalid
        """
        try:
            if isinstance(data, TranscriptJSON):
                parsed = data
            elif isinstance(data, (str, bytes)):
                parsed = TranscriptJSON.model_validate_json(data)
            else:
                parsed = TranscriptJSON.model_validate(data)
            interactions = [Interaction.from_json(item) for item in parsed.interactions]
        except (ValidationError, ValueError, TypeError) as e:
            raise TranscriptFormatError(f"Invalid transcript data: {e}") from e

        return cls(interactions, id=parsed.id, budget=budget)

    def dumps(self, indent: int | None = 2) -> str:
        """Serialize to a JSON document (blocking on pending context)."""
        return json.dumps(self.to_json_blocking().model_dump(mode="json", by_alias=True), indent=indent)

    def __repr__(self) -> str:
        return f"Transcript(id={self._id!r}, interactions={len(self._interactions)})"
