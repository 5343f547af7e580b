"""Lookups over a timed transcript and the deleted-segment set."""

from typing import Iterable, Sequence

from textcut.models import TimeRange, Word


def is_time_deleted(time: float, deleted: Iterable[TimeRange]) -> bool:
    """True if ``time`` falls in ``[start, end)`` of any deleted range."""
    return any(r.start <= time < r.end for r in deleted)


def is_word_deleted(word: Word, deleted: Iterable[TimeRange]) -> bool:
    """True only when a single deleted range fully contains the word.

    Partial overlap does not count: direct word deletion always covers
    whole words, and timeline drags that clip a word leave it visible.
    """
    return any(word.start >= r.start and word.end <= r.end for r in deleted)


def is_word_active(word: Word, current_time: float) -> bool:
    return word.start <= current_time <= word.end


def search(query: str, words: Sequence[Word]) -> list[tuple[Word, int]]:
    """Case-insensitive substring search returning ``(word, original_index)`` pairs.

    An empty query matches every word.
    """
    needle = query.lower()
    return [(w, i) for i, w in enumerate(words) if needle in w.text.lower()]


def transcript_text(words: Iterable[Word]) -> str:
    return " ".join(w.text for w in words)


def active_word_index(words: Sequence[Word], current_time: float) -> int | None:
    """Index of the first word being spoken at ``current_time``, if any."""
    for i, w in enumerate(words):
        if is_word_active(w, current_time):
            return i
    return None
