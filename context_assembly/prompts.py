"""Prompt templates for context snippets."""

from __future__ import annotations

from pathlib import PurePosixPath

from .models import ContextMessage, Speaker

CODE_CONTEXT_TEMPLATE = """Use following code snippet from file `{file_path}`:
```{language}
{text}
```"""

SELECTED_CODE_CONTEXT_TEMPLATE = """I am currently looking at this selected code from file `{file_path}`:
```{language}
{text}
```"""

CONTEXT_ACKNOWLEDGEMENT = "Ok."

_LANGUAGE_BY_EXTENSION = {
    ".py": "python",
    ".js": "javascript",
    ".ts": "typescript",
    ".jsx": "jsx",
    ".tsx": "tsx",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".c": "c",
    ".cpp": "cpp",
    ".h": "c",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".swift": "swift",
    ".kt": "kotlin",
    ".scala": "scala",
    ".sh": "bash",
    ".sql": "sql",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".md": "markdown",
}


def detect_language(file_path: str) -> str:
    """Markdown fence language for a file, empty when unknown."""
    return _LANGUAGE_BY_EXTENSION.get(PurePosixPath(file_path).suffix.lower(), "")


def populate_code_context_template(text: str, file_path: str) -> str:
    return CODE_CONTEXT_TEMPLATE.format(
        file_path=file_path,
        language=detect_language(file_path),
        text=text,
    )


def populate_selected_code_template(text: str, file_path: str) -> str:
    return SELECTED_CODE_CONTEXT_TEMPLATE.format(
        file_path=file_path,
        language=detect_language(file_path),
        text=text,
    )


def context_message_with_response(text: str, file_path: str | None) -> list[ContextMessage]:
    """
    A context snippet as a (human, assistant) pair.

    The acknowledgement keeps context pairs aligned with conversational
    pairs, which prompt truncation relies on.
    """
    return [
        ContextMessage(speaker=Speaker.HUMAN, text=text, file=file_path),
        ContextMessage(speaker=Speaker.ASSISTANT, text=CONTEXT_ACKNOWLEDGEMENT, file=file_path),
    ]
