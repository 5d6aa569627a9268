"""
Recipes - Human Input to Interaction
====================================

A recipe turns what the user typed (plus, for editor-driven recipes, the
selection the host hands over) into an Interaction whose context is
fetched lazily by the keyword context provider.

- ChatQuestion: free-form question about the codebase
- InlineChat: question about a selected region of a file

Both cap the human text at ``max_human_input_tokens``; InlineChat also caps
the selection at the recipe input budget plus surrounding code on both
sides. When the host also hands over the open file's text, it becomes one
more context pair capped at ``max_current_file_tokens``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from .context_provider import KeywordContextProvider
from .interaction import Interaction
from .models import ContextMessage, Message, PromptBudget, Speaker
from .prompts import (
    context_message_with_response,
    populate_code_context_template,
    populate_selected_code_template,
)
from .tokens import truncate_text


class EditorSelection(BaseModel):
    """
    Selected code as supplied by the host editor.

    Attributes:
        file_name: Workspace-relative file name
        selected_text: The selected code
        preceding_text: Code just above the selection
        following_text: Code just below the selection
        file_text: Whole text of the open file, when the host supplies it
    """

    file_name: str = Field(min_length=1)
    selected_text: str
    preceding_text: str = ""
    following_text: str = ""
    file_text: str | None = None


def selection_context_messages(selection: EditorSelection, budget: PromptBudget) -> list[ContextMessage]:
    """Selected code (with its surroundings) as one context pair."""
    cpt = budget.chars_per_token
    surrounding_chars = int(budget.max_recipe_surrounding_tokens * cpt)
    # Keep the end of the preceding code, nearest the selection.
    preceding = selection.preceding_text[-surrounding_chars:] if surrounding_chars else ""
    following = truncate_text(selection.following_text, budget.max_recipe_surrounding_tokens, cpt)
    selected = truncate_text(selection.selected_text, budget.max_recipe_input_tokens, cpt)

    text = populate_selected_code_template(
        "".join(part for part in (preceding, selected, following) if part),
        selection.file_name,
    )
    return context_message_with_response(text, selection.file_name)


def current_file_context_messages(selection: EditorSelection, budget: PromptBudget) -> list[ContextMessage]:
    """The open file as one context pair, capped at ``max_current_file_tokens``."""
    if not selection.file_text:
        return []
    text = truncate_text(selection.file_text, budget.max_current_file_tokens, budget.chars_per_token)
    return context_message_with_response(
        populate_code_context_template(text, selection.file_name),
        selection.file_name,
    )


class ChatQuestion:
    """Free-form question; context comes from keyword ranking."""

    id = "chat-question"

    def __init__(
        self,
        provider: KeywordContextProvider | None = None,
        budget: PromptBudget | None = None,
    ) -> None:
        self.provider = provider
        self.budget = budget or (provider.budget if provider else PromptBudget())

    def get_interaction(
        self,
        human_input: str,
        selection: EditorSelection | None = None,
    ) -> Interaction | None:
        """
        Build the interaction for ``human_input``.

        Returns:
            None for blank input, else an Interaction with pending context
        """
        if not human_input or not human_input.strip():
            return None

        truncated = truncate_text(human_input, self.budget.max_human_input_tokens, self.budget.chars_per_token)

        async def fetch() -> list[ContextMessage]:
            messages: list[ContextMessage] = []
            if self.provider is not None:
                messages.extend(await self.provider.get_context_messages(truncated))
            if selection is not None:
                messages.extend(selection_context_messages(selection, self.budget))
                messages.extend(current_file_context_messages(selection, self.budget))
            return messages

        return Interaction(
            Message(speaker=Speaker.HUMAN, text=truncated, display_text=human_input),
            Message(speaker=Speaker.ASSISTANT),
            fetch,
        )


class InlineChat:
    """Question about a selection, asked from inside the editor."""

    id = "inline-chat"

    PROMPT = """I have questions about this part of the code from {file_name}:
```
{selected_text}
```

As my coding assistant, please help me with my questions:
{human_input}

## Instruction
- Do not enclose your answer with tags.
- Do not remove code that might be being used by the other part of the code that was not shared.
- Your answers and suggestions should based on the provided context only.
- You may make references to other part of the shared code.
- Do not suggest code that are not related to any of the shared context.
- Do not suggest anything that would break the working code."""

    DISPLAY_PROMPT = "\nQuestions based on the code below:\n```\n{selected_text}\n```\n"

    def __init__(
        self,
        provider: KeywordContextProvider | None = None,
        budget: PromptBudget | None = None,
    ) -> None:
        self.provider = provider
        self.budget = budget or (provider.budget if provider else PromptBudget())

    def get_interaction(self, human_input: str, selection: EditorSelection | None) -> Interaction | None:
        """None when there is no input or no selection to ask about."""
        if not human_input or not human_input.strip() or selection is None:
            return None

        cpt = self.budget.chars_per_token
        truncated_input = truncate_text(human_input, self.budget.max_human_input_tokens, cpt)
        truncated_selection = truncate_text(
            selection.selected_text, self.budget.max_recipe_content_tokens, cpt
        )

        prompt_text = self.PROMPT.format(
            file_name=selection.file_name,
            selected_text=truncated_selection,
            human_input=truncated_input,
        )
        display_text = human_input + self.DISPLAY_PROMPT.format(selected_text=selection.selected_text)

        async def fetch() -> list[ContextMessage]:
            messages = selection_context_messages(selection, self.budget)
            messages.extend(current_file_context_messages(selection, self.budget))
            if self.provider is not None:
                messages.extend(await self.provider.get_context_messages(truncated_input))
            return messages

        return Interaction(
            Message(speaker=Speaker.HUMAN, text=prompt_text, display_text=display_text),
            Message(speaker=Speaker.ASSISTANT),
            fetch,
        )
