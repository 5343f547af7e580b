"""Editing session — one loaded video, its transcript, and its deletions."""

import logging
from pathlib import Path
from typing import Iterable, Sequence

from textcut import transcript as store
from textcut.models import TimeRange, Word
from textcut.segments import DeletedSegmentSet

logger = logging.getLogger(__name__)


class EditSession:
    """Owns the deleted-segment set; pipelines and playback only read from it."""

    def __init__(self, video_path: Path | None = None, duration: float = 0.0) -> None:
        self.video_path = video_path
        self.duration = duration
        self.words: list[Word] = []
        self.deleted = DeletedSegmentSet()

    # transcript ------------------------------------------------------
    def set_transcript(self, words: Iterable[Word]) -> None:
        self.words = list(words)

    @property
    def transcript_text(self) -> str:
        return store.transcript_text(self.words)

    def search(self, query: str) -> list[tuple[Word, int]]:
        return store.search(query, self.words)

    def is_word_deleted(self, index: int) -> bool:
        return store.is_word_deleted(self.words[index], self.deleted)

    # editing ---------------------------------------------------------
    def _insert(self, start: float, end: float) -> bool:
        start = max(start, 0.0)
        if end <= start:
            return False
        rng = TimeRange(start=start, end=end)
        self.deleted.add(rng)
        logger.debug("Deleted %.2f-%.2f (%d ranges)", rng.start, rng.end, len(self.deleted))
        return True

    def delete_word(self, index: int) -> bool:
        if not 0 <= index < len(self.words):
            return False
        word = self.words[index]
        return self._insert(word.start, word.end)

    def delete_words(self, indices: Sequence[int]) -> int:
        """Delete several selected words; each counts as its own undo step."""
        return sum(1 for i in sorted(set(indices), reverse=True) if self.delete_word(i))

    def delete_text_range(self, start_index: int, end_index: int) -> bool:
        if start_index > end_index:
            start_index, end_index = end_index, start_index
        if start_index < 0 or end_index >= len(self.words):
            return False
        return self._insert(self.words[start_index].start, self.words[end_index].end)

    def delete_time_range(self, start: float, end: float) -> bool:
        return self._insert(start, end)

    def undo(self) -> TimeRange | None:
        return self.deleted.undo_last()

    def clear(self) -> None:
        self.deleted.clear()

    def reset(self) -> None:
        self.video_path = None
        self.duration = 0.0
        self.words = []
        self.deleted.clear()

    # stats -----------------------------------------------------------
    @property
    def deleted_duration(self) -> float:
        return self.deleted.deleted_duration()

    @property
    def remaining_duration(self) -> float:
        return sum(r.duration for r in self.kept_segments())

    def kept_segments(self) -> list[TimeRange]:
        if self.duration <= 0:
            return []
        return self.deleted.kept(self.duration)
