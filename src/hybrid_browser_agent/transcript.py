"""Transcript storage abstractions for conversation sessions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class TranscriptEntry(BaseModel):
    """A persisted message of a session conversation."""

    session_id: str
    role: str
    content: str
    screenshot_path: Optional[Path] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TranscriptStore(ABC):
    """Interface for storing and retrieving session transcripts."""

    @abstractmethod
    def add(self, entry: TranscriptEntry) -> None:
        """Persist a transcript entry."""

    @abstractmethod
    def get(self, session_id: str) -> List[TranscriptEntry]:
        """Return the entries for ``session_id`` in insertion order."""

    @abstractmethod
    def prune(self, session_id: str, max_entries: int) -> None:
        """Optionally prune a session transcript to a maximum count."""


class InMemoryTranscriptStore(TranscriptStore):
    """Simple in-memory store useful for testing and single-process use."""

    def __init__(self, max_entries: int = 200) -> None:
        self._entries: dict[str, List[TranscriptEntry]] = {}
        self._max_entries = max_entries

    def add(self, entry: TranscriptEntry) -> None:
        self._entries.setdefault(entry.session_id, []).append(entry)
        self.prune(entry.session_id, self._max_entries)

    def get(self, session_id: str) -> List[TranscriptEntry]:
        return list(self._entries.get(session_id, []))

    def prune(self, session_id: str, max_entries: int) -> None:
        entries = self._entries.get(session_id)
        if entries is None:
            return
        if max_entries <= 0:
            entries.clear()
            return
        overflow = len(entries) - max_entries
        if overflow > 0:
            self._entries[session_id] = entries[overflow:]
