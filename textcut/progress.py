"""Progress events, stage composition, and delivery throttling."""

import time
from dataclasses import dataclass, field
from typing import Callable

from textcut.models import Word

ProgressCallback = Callable[[float, str], None]


@dataclass
class ProgressEvent:
    """Overall pipeline progress, in percent."""

    stage: str
    progress: float
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "type": "progress",
            "stage": self.stage,
            "progress": round(self.progress, 2),
            "message": self.message,
        }


@dataclass
class PartialTranscript:
    """Cumulative words recognized so far."""

    words: list[Word] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"type": "partial", "words": [w.to_dict() for w in self.words]}


def scaled(
    report: Callable[[float], None], base: float, span: float
) -> Callable[[float], None]:
    """Return a callback that maps a collaborator's [0,1] to [base, base+span] percent."""

    def cb(frac: float) -> None:
        frac = min(max(frac, 0.0), 1.0)
        report(base + frac * span)

    return cb


class ProgressThrottle:
    """Coalesce progress updates for UI delivery.

    An update is dropped when it is both less than ``min_delta`` points away
    from the last delivered value and less than ``min_interval`` seconds
    after it. 0% and 100% always go through. Delivered values never decrease.
    """

    def __init__(
        self,
        min_delta: float = 1.0,
        min_interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.min_delta = min_delta
        self.min_interval = min_interval
        self._clock = clock
        self._last_value: float | None = None
        self._last_time = 0.0

    @property
    def last_value(self) -> float | None:
        return self._last_value

    def offer(self, value: float) -> float | None:
        """Return the value to deliver, or None if this update is coalesced."""
        if self._last_value is not None:
            value = max(value, self._last_value)
        now = self._clock()

        if self._last_value is None or value <= 0.0 or value >= 100.0:
            return self._accept(value, now)

        close_in_value = abs(value - self._last_value) < self.min_delta
        close_in_time = (now - self._last_time) < self.min_interval
        if close_in_value and close_in_time:
            return None
        return self._accept(value, now)

    def _accept(self, value: float, now: float) -> float:
        self._last_value = value
        self._last_time = now
        return value
