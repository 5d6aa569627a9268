"""
Context Assembly - Bounded Prompts from Conversations and Code
==============================================================

This package turns an open-ended conversation plus a codebase into one
prompt that fits a token budget.

Modules:
--------
- models: Data structures, serialization shapes and budgets
- tokens: Characters-per-token estimation
- deferred: Lazily fetched, memoized interaction context
- interaction: One human/assistant exchange with its context
- transcript: Conversation history, prompt truncation, JSON round-trip
- terms: Query term extraction
- ranking: IDF-weighted keyword relevance ranking
- context_provider: Search fan-out, ranking and file reading
- prompts: Context snippet templates
- recipes: Human input to Interaction
- workspace: Filesystem search/read/root collaborators
- store: Transcript persistence
- cli: Debugging command line

Quick Start:
-----------
    from context_assembly import (
        ChatQuestion, KeywordContextProvider, Transcript,
        WorkspaceSearcher, FileSystemReader, StaticRootResolver,
    )

    provider = KeywordContextProvider(
        WorkspaceSearcher(root), FileSystemReader(), StaticRootResolver(root)
    )
    transcript = Transcript()
    transcript.add_interaction(ChatQuestion(provider).get_interaction("where is parseJSON used"))
    prompt = await transcript.to_prompt(preamble)

CLI Usage:
---------
    python -m context_assembly rank "where is parseJSON used"
"""

__version__ = "0.1.0"

# Expose main classes at package level
from .models import (
    CHARS_PER_TOKEN,
    MAX_AVAILABLE_PROMPT_LENGTH,
    MAX_HUMAN_INPUT_TOKENS,
    MAX_RECIPE_INPUT_TOKENS,
    MAX_RECIPE_SURROUNDING_TOKENS,
    ChatMessage,
    ContextMessage,
    ContextMode,
    FileMatches,
    Message,
    PromptBudget,
    RankedFile,
    SearchMatch,
    Speaker,
    TranscriptJSON,
)

from .tokens import (
    TokenEstimator,
    estimate_tokens,
    truncate_text,
)

from .deferred import DeferredContext, DeferredState

from .interaction import Interaction

from .transcript import (
    Transcript,
    TranscriptFormatError,
    truncate_prompt,
)

from .terms import STOPWORDS, extract_terms

from .ranking import (
    fold_file_matches,
    idf,
    rank_files,
    select_for_context,
    symbol_weight,
)

from .context_provider import (
    FileReader,
    KeywordContextProvider,
    SearchCapability,
    WorkspaceRootResolver,
)

from .recipes import ChatQuestion, EditorSelection, InlineChat

from .workspace import FileSystemReader, StaticRootResolver, WorkspaceSearcher

from .store import TranscriptStore

__all__ = [
    # Version
    "__version__",

    # Models
    "CHARS_PER_TOKEN",
    "MAX_AVAILABLE_PROMPT_LENGTH",
    "MAX_HUMAN_INPUT_TOKENS",
    "MAX_RECIPE_INPUT_TOKENS",
    "MAX_RECIPE_SURROUNDING_TOKENS",
    "ChatMessage",
    "ContextMessage",
    "ContextMode",
    "FileMatches",
    "Message",
    "PromptBudget",
    "RankedFile",
    "SearchMatch",
    "Speaker",
    "TranscriptJSON",

    # Tokens
    "TokenEstimator",
    "estimate_tokens",
    "truncate_text",

    # Transcript
    "DeferredContext",
    "DeferredState",
    "Interaction",
    "Transcript",
    "TranscriptFormatError",
    "truncate_prompt",

    # Ranking
    "STOPWORDS",
    "extract_terms",
    "fold_file_matches",
    "idf",
    "rank_files",
    "select_for_context",
    "symbol_weight",

    # Context
    "FileReader",
    "KeywordContextProvider",
    "SearchCapability",
    "WorkspaceRootResolver",
    "ChatQuestion",
    "EditorSelection",
    "InlineChat",

    # Collaborators & persistence
    "FileSystemReader",
    "StaticRootResolver",
    "WorkspaceSearcher",
    "TranscriptStore",
]
