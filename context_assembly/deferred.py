"""
Lazily fetched context for an interaction.

Gathering context may need I/O (searching, reading files), so an
Interaction holds a DeferredContext instead of a list. It is an explicit
two-state value:

    PENDING ──(first await get())──▶ RESOLVED

The fetch runs at most once; every later access sees the memoized
messages. ``peek()`` never blocks and ``wait()`` is the blocking accessor
for synchronous callers such as serialization.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Sequence

import structlog

from .models import ContextMessage

logger = structlog.get_logger(__name__)

ContextFactory = Callable[[], Awaitable[Sequence[ContextMessage]]]


class DeferredState(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class DeferredContext:
    """
    Memoized, lazily computed sequence of context messages.

    A factory that raises is logged and resolves to an empty sequence.

    Args:
        source: Either an async factory producing the messages, or an
            already available sequence (None means no context)
    """

    def __init__(self, source: ContextFactory | Sequence[ContextMessage] | None = None) -> None:
        self._factory: ContextFactory | None = None
        self._messages: list[ContextMessage] | None = None
        self._task: asyncio.Task[list[ContextMessage]] | None = None

        if source is None:
            self._messages = []
        elif callable(source):
            self._factory = source
        else:
            self._messages = list(source)

    @classmethod
    def resolved(cls, messages: Sequence[ContextMessage] = ()) -> DeferredContext:
        return cls(list(messages))

    @property
    def state(self) -> DeferredState:
        return DeferredState.RESOLVED if self._messages is not None else DeferredState.PENDING

    @property
    def is_resolved(self) -> bool:
        return self._messages is not None

    def peek(self) -> list[ContextMessage] | None:
        """Messages if already resolved, else None. Never triggers the fetch."""
        if self._messages is None:
            return None
        return list(self._messages)

    async def get(self) -> list[ContextMessage]:
        """
        Resolve (once) and return the context messages.

        Concurrent awaiters on the same loop share a single fetch task.
        """
        if self._messages is not None:
            return list(self._messages)

        loop = asyncio.get_running_loop()
        if self._task is None or self._task.get_loop() is not loop or self._task.cancelled():
            self._task = loop.create_task(self._fetch())

        messages = await self._task
        return list(messages)

    def wait(self) -> list[ContextMessage]:
        """
        Blocking accessor for synchronous code.

        Raises:
            RuntimeError: If called from inside a running event loop,
                where blocking would deadlock; use ``await get()`` there.
        """
        if self._messages is not None:
            return list(self._messages)

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.get())

        raise RuntimeError(
            "DeferredContext.wait() called inside a running event loop; use 'await get()'"
        )

    async def _fetch(self) -> list[ContextMessage]:
        factory = self._factory
        if factory is None:
            return []

        try:
            messages = list(await factory())
        except Exception as e:
            logger.warning("context_fetch_failed", error=str(e), error_type=type(e).__name__)
            messages = []

        self._messages = messages
        self._factory = None
        self._task = None
        return messages

    def __repr__(self) -> str:
        if self._messages is None:
            return "DeferredContext(pending)"
        return f"DeferredContext(resolved, {len(self._messages)} messages)"
