"""
Pydantic Models for Context Assembly
====================================

This module defines the data structures shared by the transcript,
ranking and context-provider layers. Using Pydantic v2 for:
- Immutable message values
- JSON serialization with the camelCase wire names of saved transcripts
- Validation of budgets and configuration

Architecture Note:
-----------------
These models form the contract between components:

    ┌──────────────┐     ┌─────────────────┐     ┌──────────────┐
    │ Context      │────▶│ ContextMessage  │────▶│ Interaction  │
    │ Provider     │     │ (file snippets) │     │ / Transcript │
    └──────────────┘     └─────────────────┘     └──────┬───────┘
                                                        │
                                                        ▼
                                               list[Message] prompt

Transcript persistence goes through TranscriptJSON only, so a saved
transcript can always be reloaded with Transcript.from_json().
"""

from __future__ import annotations

import os
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# DEFAULT LIMITS - Plain numeric budgets
# =============================================================================

CHARS_PER_TOKEN = 4.0
MAX_AVAILABLE_PROMPT_LENGTH = 7000
MAX_HUMAN_INPUT_TOKENS = 1000
MAX_RECIPE_INPUT_TOKENS = 2000
MAX_RECIPE_SURROUNDING_TOKENS = 500
MAX_CURRENT_FILE_TOKENS = 1000
KEYWORD_TOP_K = 10


# =============================================================================
# ENUMS
# =============================================================================


class Speaker(str, Enum):
    """Who produced a message."""

    HUMAN = "human"
    ASSISTANT = "assistant"


class ContextMode(str, Enum):
    """
    Where background context comes from.

    KEYWORD uses the IDF-weighted keyword ranking over host search results.
    NONE disables context gathering entirely.
    """

    KEYWORD = "keyword"
    NONE = "none"


# =============================================================================
# MESSAGES - Units of a prompt
# =============================================================================


class _WireModel(BaseModel):
    """Base for models serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Message(_WireModel):
    """
    One turn of conversation.

    ``text`` is what the model receives; ``display_text`` is what a user
    sees and may carry annotations (rendered selections, error markup)
    that ``text`` lacks.

    Attributes:
        speaker: Human or assistant
        text: Prompt text sent to the model
        display_text: Text rendered for the user (None means "same as text")
    """

    speaker: Speaker
    text: str = Field(default="")
    display_text: str | None = Field(default=None)

    def for_prompt(self) -> Message:
        """Strip display-only data before handing the message to a model."""
        return self.model_copy(update={"display_text": None})


class ContextMessage(Message):
    """
    A message carrying background context rather than a conversational turn.

    Attributes:
        file: Source file identifier for UI attribution (None for
            context that does not come from a file)
    """

    file: str | None = Field(default=None)


class ChatMessage(Message):
    """Display form of a message, annotated with the files that grounded it."""

    context_files: list[str] = Field(default_factory=list)
    timestamp: str | None = Field(default=None)


# =============================================================================
# SEARCH & RANKING
# =============================================================================


class SearchMatch(BaseModel):
    """A single hit reported by a search capability. Paths only, never contents."""

    model_config = ConfigDict(frozen=True)

    file_path: str


class RankedFile(BaseModel):
    """
    A file with its relevance score.

    Attributes:
        filename: File identifier as reported by the search capability
        score: Sum of per-term IDF-weighted contributions (always >= 0)
        score_components: Contribution of each term, for debugging
    """

    filename: str
    score: float = Field(ge=0.0)
    score_components: dict[str, float] = Field(default_factory=dict)


class FileMatches(BaseModel):
    """
    Per-query fold of all term searches.

    Attributes:
        file_term_counts: file -> term -> match count (the match matrix)
        term_total_files: term -> number of distinct files it matched
        total_files: Sum over terms of distinct matching files
    """

    file_term_counts: dict[str, dict[str, int]] = Field(default_factory=dict)
    term_total_files: dict[str, int] = Field(default_factory=dict)
    total_files: int = Field(default=0, ge=0)


# =============================================================================
# SERIALIZATION - Saved transcript shape
# =============================================================================


class MessageJSON(_WireModel):
    """Serialized message. Context messages keep their ``file`` tag."""

    speaker: Speaker
    text: str = ""
    display_text: str | None = None
    file: str | None = None


class InteractionJSON(_WireModel):
    human_message: MessageJSON
    assistant_message: MessageJSON
    context: list[MessageJSON] = Field(default_factory=list)
    timestamp: str | None = None


class TranscriptJSON(_WireModel):
    """
    Saved transcript.

    Example JSON:
    ------------
    {
        "id": "2023-06-01T10:30:00.000Z",
        "interactions": [
            {
                "humanMessage": {"speaker": "human", "text": "..."},
                "assistantMessage": {"speaker": "assistant", "text": "..."},
                "context": [],
                "timestamp": "2023-06-01T10:30:00.000Z"
            }
        ],
        "lastInteractionTimestamp": "2023-06-01T10:30:00.000Z"
    }
    """

    id: str = Field(min_length=1)
    interactions: list[InteractionJSON]
    last_interaction_timestamp: str | None = None


# =============================================================================
# CONFIGURATION - Token budgets and context policy
# =============================================================================


class PromptBudget(BaseModel):
    """
    Token budgets consumed by prompt assembly.

    All values are supplied by configuration and never computed. Token
    counts are estimates derived from ``chars_per_token``.

    Attributes:
        chars_per_token: Characters per estimated token
        max_available_prompt_length: Total prompt budget in tokens
        max_human_input_tokens: Cap on the human question text
        max_recipe_input_tokens: Cap on selected code in recipes
        max_recipe_surrounding_tokens: Cap on code around a selection
        max_current_file_tokens: Cap on a whole-file snippet
        use_context: Where background context comes from
        keyword_top_k: How many ranked files become context
    """

    chars_per_token: float = Field(default=CHARS_PER_TOKEN, gt=0.0)
    max_available_prompt_length: int = Field(default=MAX_AVAILABLE_PROMPT_LENGTH, ge=0)
    max_human_input_tokens: int = Field(default=MAX_HUMAN_INPUT_TOKENS, ge=0)
    max_recipe_input_tokens: int = Field(default=MAX_RECIPE_INPUT_TOKENS, ge=0)
    max_recipe_surrounding_tokens: int = Field(default=MAX_RECIPE_SURROUNDING_TOKENS, ge=0)
    max_current_file_tokens: int = Field(default=MAX_CURRENT_FILE_TOKENS, ge=0)
    use_context: ContextMode = Field(default=ContextMode.KEYWORD)
    keyword_top_k: int = Field(default=KEYWORD_TOP_K, ge=0)

    @property
    def max_recipe_content_tokens(self) -> int:
        """Selected code plus the surrounding code on both sides."""
        return self.max_recipe_input_tokens + self.max_recipe_surrounding_tokens * 2

    @classmethod
    def from_env(cls, prefix: str = "CONTEXT_ASSEMBLY_") -> PromptBudget:
        """
        Build a budget from environment overrides.

        Every field can be set as ``<prefix><FIELD_NAME>`` in upper case,
        e.g. ``CONTEXT_ASSEMBLY_MAX_AVAILABLE_PROMPT_LENGTH=12000``.
        Values are validated like any other input.
        """
        overrides: dict[str, str] = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{prefix}{name.upper()}")
            if raw is not None and raw.strip():
                overrides[name] = raw.strip()
        return cls.model_validate(overrides)
