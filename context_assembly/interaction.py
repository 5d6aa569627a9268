"""
A single exchange: one human turn, one assistant turn, and the background
context gathered for it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from .deferred import ContextFactory, DeferredContext
from .models import (
    ChatMessage,
    ContextMessage,
    InteractionJSON,
    Message,
    MessageJSON,
    Speaker,
)


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision."""
    now = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return now.replace("+00:00", "Z")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, returning None for anything malformed."""
    if not value or not isinstance(value, str):
        return None
    candidate = value.strip()
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(candidate)
    except ValueError:
        return None


def is_valid_timestamp(value: str | None) -> bool:
    return parse_timestamp(value) is not None


class Interaction:
    """
    One human/assistant message pair plus its deferred context.

    The human message never changes after construction. The assistant
    message is replaced as a response streams in or fails.

    Attributes:
        timestamp: ISO-8601 creation time
    """

    def __init__(
        self,
        human_message: Message,
        assistant_message: Message | None = None,
        context: DeferredContext | ContextFactory | Sequence[ContextMessage] | None = None,
        timestamp: str | None = None,
    ) -> None:
        if human_message.speaker != Speaker.HUMAN:
            raise ValueError(f"human_message must have speaker 'human', got {human_message.speaker.value!r}")
        if assistant_message is not None and assistant_message.speaker != Speaker.ASSISTANT:
            raise ValueError(
                f"assistant_message must have speaker 'assistant', got {assistant_message.speaker.value!r}"
            )

        self._human_message = human_message
        self._assistant_message = assistant_message or Message(speaker=Speaker.ASSISTANT)
        self._context = context if isinstance(context, DeferredContext) else DeferredContext(context)
        self.timestamp = timestamp or utc_now_iso()

    @property
    def human_message(self) -> Message:
        return self._human_message

    @property
    def context(self) -> DeferredContext:
        return self._context

    def get_assistant_message(self) -> Message:
        return self._assistant_message

    def set_assistant_message(self, message: Message) -> None:
        if message.speaker != Speaker.ASSISTANT:
            raise ValueError(f"assistant message must have speaker 'assistant', got {message.speaker.value!r}")
        self._assistant_message = message

    async def has_context(self) -> bool:
        """True once the context resolved to at least one message."""
        return len(await self._context.get()) > 0

    async def to_prompt(self, include_context: bool) -> list[Message]:
        """
        Messages this interaction contributes to a prompt.

        Context messages, when included, come before the human turn so the
        question sits closest to the assistant's answer.
        """
        messages: list[Message] = []
        if include_context:
            messages.extend(await self._context.get())
        messages.append(self._human_message)
        messages.append(self._assistant_message)
        return [message.for_prompt() for message in messages]

    def context_files(self) -> list[str]:
        """Files behind the resolved context; empty while still pending."""
        files: list[str] = []
        for message in self._context.peek() or []:
            if message.file and message.file not in files:
                files.append(message.file)
        return files

    def to_chat(self) -> list[ChatMessage]:
        """Display messages; never waits for pending context."""
        human = ChatMessage(
            speaker=self._human_message.speaker,
            text=self._human_message.text,
            display_text=self._human_message.display_text,
            context_files=self.context_files(),
            timestamp=self.timestamp,
        )
        assistant = ChatMessage(
            speaker=self._assistant_message.speaker,
            text=self._assistant_message.text,
            display_text=self._assistant_message.display_text,
            timestamp=self.timestamp,
        )
        return [human, assistant]

    async def to_json(self) -> InteractionJSON:
        return self._build_json(await self._context.get())

    def to_json_blocking(self) -> InteractionJSON:
        return self._build_json(self._context.wait())

    def _build_json(self, context: Sequence[ContextMessage]) -> InteractionJSON:
        return InteractionJSON(
            human_message=_message_to_json(self._human_message),
            assistant_message=_message_to_json(self._assistant_message),
            context=[_message_to_json(message) for message in context],
            timestamp=self.timestamp,
        )

    @classmethod
    def from_json(cls, data: InteractionJSON) -> Interaction:
        human = Message(
            speaker=data.human_message.speaker,
            text=data.human_message.text,
            display_text=data.human_message.display_text,
        )
        assistant = Message(
            speaker=data.assistant_message.speaker,
            text=data.assistant_message.text,
            display_text=data.assistant_message.display_text,
        )
        context = [
            ContextMessage(
                speaker=message.speaker,
                text=message.text,
                display_text=message.display_text,
                file=message.file,
            )
            for message in data.context
        ]
        return cls(human, assistant, DeferredContext.resolved(context), data.timestamp or utc_now_iso())

    def __repr__(self) -> str:
        return f"Interaction(timestamp={self.timestamp!r}, context={self._context!r})"


def _message_to_json(message: Message) -> MessageJSON:
    return MessageJSON(
        speaker=message.speaker,
        text=message.text,
        display_text=message.display_text,
        file=getattr(message, "file", None),
    )
