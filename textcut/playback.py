"""Skip deleted ranges during preview playback."""

import logging
from typing import Callable, Iterable

from textcut.models import TimeRange

logger = logging.getLogger(__name__)

# Positions this close to a range's end are left alone so a jump that lands
# exactly on the boundary does not trigger again.
SKIP_EPSILON = 0.1


class SkipController:
    """Decide on every position tick whether the player must jump forward.

    ``deleted`` is a callable returning the current deleted ranges, so the
    controller always sees the latest edits.
    """

    def __init__(
        self,
        deleted: Callable[[], Iterable[TimeRange]],
        epsilon: float = SKIP_EPSILON,
    ) -> None:
        self._deleted = deleted
        self.epsilon = epsilon
        self.skips = 0

    def find_range(self, position: float) -> TimeRange | None:
        for rng in self._deleted():
            if rng.start <= position < rng.end - self.epsilon:
                return rng
        return None

    def tick(self, position: float) -> float:
        """Return the position playback should continue from."""
        rng = self.find_range(position)
        if rng is None:
            return position
        self.skips += 1
        logger.debug("Skipping deleted range %.2f-%.2f", rng.start, rng.end)
        return rng.end
