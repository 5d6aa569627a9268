"""
Filesystem Collaborators
========================

Local implementations of the three host interfaces the context provider
consumes, for use outside an editor (the CLI, tests, scripts):

- WorkspaceSearcher: regex term search over the workspace tree
- FileSystemReader: file text reader
- StaticRootResolver: a fixed workspace root

Blocking filesystem work runs in the default executor so concurrent
per-term searches do not stall the event loop.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path

import structlog

from .models import SearchMatch

logger = structlog.get_logger(__name__)


class WorkspaceSearcher:
    """
    Keyword search over source files under a root directory.

    Every occurrence of the term is reported as one match, so a file's
    match count is its number of occurrences. Terms arrive regex-escaped
    and are compiled as-is.

    Attributes:
        root: Workspace directory to search
        max_file_size: Skip files larger than this (bytes)
        ignore_case: Case-insensitive matching
    """

    # File extensions searched by default
    CODE_EXTENSIONS = {
        ".py", ".js", ".ts", ".jsx", ".tsx", ".go", ".rs", ".java",
        ".c", ".cpp", ".h", ".hpp", ".cs", ".rb", ".php", ".swift",
        ".kt", ".scala", ".sh", ".bash", ".sql",
    }

    CONFIG_EXTENSIONS = {".json", ".yaml", ".yml", ".toml", ".ini", ".cfg"}

    DOC_EXTENSIONS = {".md", ".txt", ".rst"}

    # Directories never searched
    IGNORE_DIRS = {
        "node_modules", ".git", "__pycache__", ".venv", "venv",
        "dist", "build", ".next", "target", "bin", "obj",
        ".pytest_cache", ".mypy_cache", ".ruff_cache", "coverage",
    }

    def __init__(
        self,
        root: Path | str,
        max_file_size: int = 100_000,
        ignore_case: bool = True,
        extensions: set[str] | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.max_file_size = max_file_size
        self.ignore_case = ignore_case
        self.extensions = extensions or (
            self.CODE_EXTENSIONS | self.CONFIG_EXTENSIONS | self.DOC_EXTENSIONS
        )

    async def search(self, term: str) -> list[SearchMatch]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._search_sync, term)

    def _search_sync(self, term: str) -> list[SearchMatch]:
        flags = re.IGNORECASE if self.ignore_case else 0
        try:
            pattern = re.compile(term, flags)
        except re.error:
            pattern = re.compile(re.escape(term), flags)

        matches: list[SearchMatch] = []
        for path in self.walk_files():
            try:
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.warning("file_read_error", file=str(path), error=str(e))
                continue
            occurrences = sum(1 for _ in pattern.finditer(text))
            matches.extend(SearchMatch(file_path=path.as_posix()) for _ in range(occurrences))

        logger.debug("term_searched", term=term, match_count=len(matches))
        return matches

    def walk_files(self) -> list[Path]:
        """
        Files under the root matching the searched extensions.

        Respects directory exclusions and the size cap.
        """
        files: list[Path] = []

        for path in sorted(self.root.rglob("*")):
            if path.is_dir():
                continue

            if any(ignored in path.relative_to(self.root).parts for ignored in self.IGNORE_DIRS):
                continue

            if path.suffix.lower() not in self.extensions:
                continue

            try:
                if path.stat().st_size > self.max_file_size:
                    continue
            except OSError:
                continue

            files.append(path)

        return files


class FileSystemReader:
    """Reads files as UTF-8 text (undecodable bytes replaced)."""

    async def read(self, file_path: str) -> str:
        path = Path(file_path)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: path.read_text(encoding="utf-8", errors="replace"),
        )


class StaticRootResolver:
    """Resolves to a fixed directory, or to nothing when it does not exist."""

    def __init__(self, root: Path | str | None) -> None:
        self.root = Path(root).resolve() if root is not None else None

    def current_root(self) -> str | None:
        if self.root is None or not self.root.is_dir():
            return None
        return self.root.as_posix()
