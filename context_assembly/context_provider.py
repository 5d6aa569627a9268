"""
Keyword Context Provider
========================

Glues term extraction and relevance ranking to the host's collaborators
and produces context messages for an Interaction.

Pipeline:
--------

    query
      │
      ▼
    extract_terms ──▶ search(term) ×N  (concurrent, one task per term)
                              │
                              ▼  join, then fold
                      FileMatches ──▶ rank_files ──▶ top K, reversed
                                                        │
                                                        ▼
                                         read(file) ×K (concurrent)
                                                        │
                                                        ▼
                                       [ContextMessage(human), "Ok."] ...

Each search task builds its own ``file -> count`` map; maps are merged
only after every task has finished, so no state is shared between tasks.

Collaborators are injected and the provider holds no global state. There
is no timeout or cancellation for a slow search capability: the whole
fetch waits for it.
"""

from __future__ import annotations

import asyncio
from pathlib import PurePosixPath
from typing import AbstractSet, Protocol, Sequence, runtime_checkable

import structlog

from .deferred import ContextFactory
from .models import ContextMessage, ContextMode, PromptBudget, RankedFile, SearchMatch
from .prompts import context_message_with_response, populate_code_context_template
from .ranking import TermWeight, fold_file_matches, rank_files, select_for_context, symbol_weight
from .terms import STOPWORDS, extract_terms

logger = structlog.get_logger(__name__)


# =============================================================================
# COLLABORATOR INTERFACES
# =============================================================================


@runtime_checkable
class SearchCapability(Protocol):
    """Symbol/keyword search supplied by the host. Returns paths, not contents."""

    async def search(self, term: str) -> Sequence[SearchMatch | str]: ...


@runtime_checkable
class FileReader(Protocol):
    """Reads full file text. Raises FileNotFoundError for vanished paths."""

    async def read(self, file_path: str) -> str: ...


@runtime_checkable
class WorkspaceRootResolver(Protocol):
    def current_root(self) -> str | None: ...


def _normalize_root(root: str) -> str:
    if root.startswith("file://"):
        root = root[len("file://"):]
    return root.rstrip("/") or "/"


def is_under_root(file_path: str, root: str) -> bool:
    """Path-prefix check on whole path segments (``/a/bc`` is not under ``/a/b``)."""
    return PurePosixPath(file_path).is_relative_to(PurePosixPath(_normalize_root(root)))


def relative_to_root(file_path: str, root: str) -> str:
    try:
        return PurePosixPath(file_path).relative_to(PurePosixPath(_normalize_root(root))).as_posix()
    except ValueError:
        return file_path


def _match_path(match: SearchMatch | str) -> str:
    return match if isinstance(match, str) else match.file_path


# =============================================================================
# PROVIDER
# =============================================================================


class KeywordContextProvider:
    """
    Builds context messages from keyword-ranked workspace files.

    Usage:
    -----
        provider = KeywordContextProvider(searcher, reader, resolver)
        messages = await provider.get_context_messages("where is parseJSON used")

    Args:
        searcher: Host search capability
        reader: Host file reader
        root_resolver: Resolves the current workspace root
        budget: Supplies ``keyword_top_k`` and ``use_context``
        term_weight: Symbol weight function for scoring
        stopwords: Words dropped from queries
    """

    def __init__(
        self,
        searcher: SearchCapability,
        reader: FileReader,
        root_resolver: WorkspaceRootResolver,
        budget: PromptBudget | None = None,
        term_weight: TermWeight = symbol_weight,
        stopwords: AbstractSet[str] = STOPWORDS,
    ) -> None:
        self.searcher = searcher
        self.reader = reader
        self.root_resolver = root_resolver
        self.budget = budget or PromptBudget()
        self.term_weight = term_weight
        self.stopwords = stopwords

    @property
    def top_k(self) -> int:
        return self.budget.keyword_top_k

    def context_factory(self, query: str) -> ContextFactory:
        """Deferred fetch for ``query``, suitable for an Interaction."""

        async def fetch() -> list[ContextMessage]:
            return await self.get_context_messages(query)

        return fetch

    async def get_context_messages(self, query: str) -> list[ContextMessage]:
        """
        Context messages for the top ranked files.

        Returns an empty list, never an error, when context is disabled or
        no workspace root is resolvable.
        """
        if self.budget.use_context == ContextMode.NONE:
            return []

        root = self.root_resolver.current_root()
        if not root:
            logger.info("context_skipped", reason="no_workspace_root")
            return []

        ranked = await self._rank(query, root)
        selected = select_for_context(ranked, self.top_k)
        contents = await asyncio.gather(*(self._read(item.filename) for item in selected))

        messages: list[ContextMessage] = []
        for item, text in zip(selected, contents):
            if text is None:
                continue
            file_name = relative_to_root(item.filename, root)
            message_text = populate_code_context_template(text, file_name)
            messages.extend(context_message_with_response(message_text, file_name))

        logger.info(
            "context_fetched",
            ranked_count=len(ranked),
            file_count=len(messages) // 2,
        )
        return messages

    async def rank_files(self, query: str) -> list[RankedFile]:
        """Full ranking for ``query``; empty when no workspace root resolves."""
        root = self.root_resolver.current_root()
        if not root:
            logger.info("ranking_skipped", reason="no_workspace_root")
            return []
        return await self._rank(query, root)

    async def _rank(self, query: str, root: str) -> list[RankedFile]:
        terms = extract_terms(query, self.stopwords)
        if not terms:
            logger.debug("no_search_terms", query=query)
            return []

        per_term_counts = await asyncio.gather(*(self._search_term(term, root) for term in terms))
        matches = fold_file_matches(terms, per_term_counts)
        return rank_files(terms, matches, self.term_weight)

    async def _search_term(self, term: str, root: str) -> dict[str, int]:
        try:
            results = await self.searcher.search(term)
        except Exception as e:
            logger.warning("term_search_failed", term=term, error=str(e))
            return {}

        file_counts: dict[str, int] = {}
        for match in results:
            path = _match_path(match)
            if not is_under_root(path, root):
                continue
            file_counts[path] = file_counts.get(path, 0) + 1
        return file_counts

    async def _read(self, file_path: str) -> str | None:
        try:
            return await self.reader.read(file_path)
        except FileNotFoundError:
            logger.warning("context_file_missing", file=file_path)
            return None
        except OSError as e:
            logger.warning("context_file_unreadable", file=file_path, error=str(e))
            return None
