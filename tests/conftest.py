"""Shared fakes for the host collaborators."""

from __future__ import annotations

import asyncio

import pytest

from context_assembly.models import Message, SearchMatch, Speaker


class FakeSearcher:
    """Returns canned paths per term and records concurrency."""

    def __init__(self, results: dict[str, list[str]], fail_terms: set[str] | None = None) -> None:
        self.results = results
        self.fail_terms = fail_terms or set()
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def search(self, term: str) -> list[SearchMatch]:
        self.calls.append(term)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            if term in self.fail_terms:
                raise RuntimeError(f"search backend down for {term}")
            return [SearchMatch(file_path=path) for path in self.results.get(term, [])]
        finally:
            self.in_flight -= 1


class FakeReader:
    def __init__(self, files: dict[str, str]) -> None:
        self.files = files
        self.reads: list[str] = []

    async def read(self, file_path: str) -> str:
        self.reads.append(file_path)
        if file_path not in self.files:
            raise FileNotFoundError(file_path)
        return self.files[file_path]


class FakeRootResolver:
    def __init__(self, root: str | None) -> None:
        self.root = root

    def current_root(self) -> str | None:
        return self.root


def human(text: str, display_text: str | None = None) -> Message:
    return Message(speaker=Speaker.HUMAN, text=text, display_text=display_text)


def assistant(text: str, display_text: str | None = None) -> Message:
    return Message(speaker=Speaker.ASSISTANT, text=text, display_text=display_text)


@pytest.fixture
def workspace_files() -> dict[str, str]:
    return {
        "/ws/src/parser.ts": "export function parseJSON(raw) { return JSON.parse(raw) }\n",
        "/ws/src/util.ts": "import { parseJSON } from './parser'\nparseJSON(a)\nparseJSON(b)\n",
        "/ws/README.md": "The parser module parses things.\n",
    }
