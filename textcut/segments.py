"""Deleted-segment bookkeeping: merge, undo, and the kept-segment complement."""

from typing import Iterable, Sequence

from textcut.models import TimeRange


def merge_ranges(ranges: Iterable[TimeRange]) -> list[TimeRange]:
    """Collapse ranges into a sorted list with no overlapping or touching members.

    Ranges are swept left to right by start time. A range that starts at or
    before the end of the current accumulator extends it; anything else
    closes the accumulator and starts a new one.
    """
    ordered = sorted(ranges, key=lambda r: r.start)
    if not ordered:
        return []

    merged: list[TimeRange] = []
    current = ordered[0]
    for nxt in ordered[1:]:
        if nxt.start <= current.end:
            if nxt.end > current.end:
                current = TimeRange(start=current.start, end=nxt.end)
        else:
            merged.append(current)
            current = nxt
    merged.append(current)
    return merged


def insert_and_merge(existing: Sequence[TimeRange], addition: TimeRange) -> list[TimeRange]:
    """Return a new merged list covering ``existing`` plus ``addition``."""
    return merge_ranges([*existing, addition])


def derive_kept(total_duration: float, deleted: Iterable[TimeRange]) -> list[TimeRange]:
    """Return the parts of ``[0, total_duration]`` not covered by ``deleted``.

    ``deleted`` need not be sorted or merged. Ranges reaching past the end of
    the video are clipped. An empty result means the whole video is deleted.
    """
    kept: list[TimeRange] = []
    cursor = 0.0

    for rng in sorted(deleted, key=lambda r: r.start):
        if cursor >= total_duration:
            break
        if cursor < rng.start:
            kept.append(TimeRange(start=cursor, end=min(rng.start, total_duration)))
        cursor = max(cursor, rng.end)

    if cursor < total_duration:
        kept.append(TimeRange(start=cursor, end=total_duration))
    return kept


def total_length(ranges: Iterable[TimeRange]) -> float:
    """Sum of the durations of ``ranges`` (callers pass merged ranges)."""
    return sum(r.duration for r in ranges)


class DeletedSegmentSet:
    """The time ranges of the source video marked for removal.

    Every insertion is appended to a raw history and the merged view is
    rebuilt from it, so undo removes exactly the most recent insertion even
    when it had fused with earlier ones.
    """

    def __init__(self, ranges: Iterable[TimeRange] = ()) -> None:
        self._history: list[TimeRange] = []
        self._merged: list[TimeRange] = []
        for rng in ranges:
            self.add(rng)

    @property
    def ranges(self) -> list[TimeRange]:
        return list(self._merged)

    @property
    def history(self) -> list[TimeRange]:
        return list(self._history)

    def add(self, rng: TimeRange) -> list[TimeRange]:
        merged = insert_and_merge(self._merged, rng)
        self._history.append(rng)
        self._merged = merged
        return self.ranges

    def undo_last(self) -> TimeRange | None:
        """Drop the most recent insertion and replay the rest. Returns what was removed."""
        if not self._history:
            return None
        removed = self._history[-1]
        remaining = self._history[:-1]
        self._merged = merge_ranges(remaining)
        self._history = remaining
        return removed

    def clear(self) -> None:
        self._history = []
        self._merged = []

    def deleted_duration(self) -> float:
        return total_length(self._merged)

    def kept(self, total_duration: float) -> list[TimeRange]:
        return derive_kept(total_duration, self._merged)

    def __len__(self) -> int:
        return len(self._merged)

    def __iter__(self):
        return iter(list(self._merged))

    def __bool__(self) -> bool:
        return bool(self._merged)
