"""
Interval data model consumed by the trainers.

An Interval is one time slice of a log: the set of message ids that
occurred in it, each with an instance count and, optionally, a timeline
of positions inside the interval (0..TIMELINE_RESOLUTION).

A TimeSeparator marks a gap between logically unrelated stretches of
intervals; estimators that carry state between intervals drop it there.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple, Union

# Subdivisions of one interval on the timeline.
TIMELINE_RESOLUTION = 120


@dataclass(frozen=True)
class MessageSummary:
    """Occurrences of one message id inside one interval."""
    message_internal_id: int
    message_id: Optional[str] = None
    num_instances: Optional[int] = None
    timeline: Optional[Tuple[int, ...]] = None

    def __post_init__(self):
        if self.timeline is not None:
            object.__setattr__(self, "timeline", tuple(sorted(int(t) for t in self.timeline)))

    @property
    def name(self) -> str:
        return self.message_id if self.message_id is not None else str(self.message_internal_id)


@dataclass(frozen=True)
class Interval:
    """One interval: the message summaries that occurred in it."""
    message_summaries: Tuple[MessageSummary, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "message_summaries", tuple(self.message_summaries))

    @classmethod
    def of(cls, *internal_ids: int) -> "Interval":
        """Interval holding one plain summary per id."""
        return cls(tuple(MessageSummary(i) for i in internal_ids))

    def internal_ids(self) -> Tuple[int, ...]:
        return tuple(ms.message_internal_id for ms in self.message_summaries)

    def __len__(self) -> int:
        return len(self.message_summaries)


@dataclass(frozen=True)
class TimeSeparator:
    """Gap marker between unrelated stretches of intervals."""
    reason: str = ""


StreamItem = Union[Interval, TimeSeparator]
IntervalStream = Sequence[StreamItem]
