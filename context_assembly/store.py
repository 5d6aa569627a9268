"""
Transcript Store
================

Saves and restores transcripts as JSON files, one per transcript, using
only the ``Transcript.to_json()`` / ``Transcript.from_json()`` contract.

Enables:
- Resuming a conversation after a restart
- Inspecting exactly what history a prompt was built from

Files live in ``.chat_transcripts/`` by default, named after a filesystem
safe form of the transcript id.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path

import structlog

from .models import PromptBudget
from .transcript import Transcript, TranscriptFormatError

logger = structlog.get_logger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class TranscriptStore:
    """
    Directory-backed transcript persistence.

    Attributes:
        storage_dir: Directory holding one ``<id>.json`` per transcript
    """

    def __init__(self, storage_dir: Path | None = None, budget: PromptBudget | None = None) -> None:
        self.storage_dir = storage_dir or Path(".chat_transcripts")
        self.budget = budget

    def path_for(self, transcript_id: str) -> Path:
        return self.storage_dir / f"{_UNSAFE_FILENAME_CHARS.sub('_', transcript_id)}.json"

    async def save(self, transcript: Transcript) -> Path:
        """
        Write a transcript, resolving any pending context first.

        Returns:
            Path to the written file
        """
        data = (await transcript.to_json()).model_dump_json(by_alias=True, indent=2)
        path = self.path_for(transcript.id)

        def write() -> None:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(data, encoding="utf-8")

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, write)

        logger.info("transcript_saved", transcript_id=transcript.id, path=str(path))
        return path

    async def load(self, transcript_id: str) -> Transcript | None:
        """
        Load a transcript.

        Returns:
            The transcript, or None if nothing was saved under this id

        Raises:
            TranscriptFormatError: If the saved file is not a valid transcript
        """
        path = self.path_for(transcript_id)
        if not path.exists():
            return None

        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(None, lambda: path.read_text(encoding="utf-8"))

        try:
            transcript = Transcript.from_json(data, budget=self.budget)
        except TranscriptFormatError:
            logger.error("transcript_load_failed", path=str(path))
            raise

        logger.info("transcript_loaded", transcript_id=transcript.id, path=str(path))
        return transcript

    async def delete(self, transcript_id: str) -> bool:
        """
        Delete a saved transcript.

        Returns:
            True if deleted, False if not found
        """
        path = self.path_for(transcript_id)

        if path.exists():
            path.unlink()
            logger.info("transcript_deleted", path=str(path))
            return True

        return False

    def list_paths(self) -> list[Path]:
        """Saved transcript files, newest first by modification time."""
        if not self.storage_dir.is_dir():
            return []
        return sorted(self.storage_dir.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True)
