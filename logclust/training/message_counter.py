"""
First training pass: how many intervals each message id appears in.

Only ids seen in more than min_appear_thresh intervals take part in
clustering.
"""

import logging
from collections import Counter
from typing import Dict, Set

from logclust.core.exceptions import StreamStateError

from .intervals import Interval, TimeSeparator

logger = logging.getLogger(__name__)


class MessageIdCounter:
    """Counts, per message internal id, the intervals it occurs in."""

    def __init__(self, min_appear_thresh: int = 3):
        self.min_appear_thresh = min_appear_thresh
        self._counts: Counter = Counter()
        self._closed = False

    def incoming_object(self, interval: Interval) -> None:
        if self._closed:
            raise StreamStateError("Cannot count intervals after end of stream")
        self._counts.update(interval.internal_ids())

    def incoming_separator(self, separator: TimeSeparator) -> None:
        pass

    def end_of_stream(self) -> None:
        seen = len(self._counts)
        self._counts = Counter(
            {k: v for k, v in self._counts.items() if v > self.min_appear_thresh}
        )
        self._closed = True
        logger.info(
            f"{len(self._counts)} of {seen} message ids appear in more than "
            f"{self.min_appear_thresh} intervals"
        )

    @property
    def counts(self) -> Dict[int, int]:
        return dict(self._counts)

    def legal_ids(self) -> Set[int]:
        return set(self._counts)

    def __len__(self) -> int:
        return len(self._counts)
