"""
Streaming Mutual Information Estimator

Builds the similarity matrix consumed by IClust from a stream of intervals.

Accumulation: for every interval, every legal message id present increments
its diagonal cell, and every unordered pair of distinct legal ids
increments its pair cell (by the count factor). Ids get dense matrix
indices in first-seen order.

Finalization (end_of_stream): each cell is turned, in the same buffer, into
the signed mutual information of the two ids' occurrence:

    p11 = c(i,j) / T                 both present
    p10 = (c(i,i) - c(i,j)) / T      only i
    p01 = (c(j,j) - c(i,j)) / T      only j
    p00 = (T - c(i,i) - c(j,j) + c(i,j)) / T

    MI   = H(p1.) + H(p.1) - H(p11, p10, p01, p00)     (base 2, 0 log 0 = 0)
    sign = +1 if p11 * p00 - p10 * p01 >= 0 else -1

The smoothed estimator treats consecutive intervals as a continuous
timeline and weights co-occurrences by the overlap of the tail of one
interval with the head of the next.
"""

import logging
import math
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Union

import numpy as np
import pandas as pd

from logclust.core.exceptions import StreamStateError
from logclust.core.matrix import CoOccurrenceMatrix, SimilarityMatrix

from .intervals import Interval, MessageSummary, TimeSeparator, TIMELINE_RESOLUTION

logger = logging.getLogger(__name__)

DELIM = "\t"
REPORT_HEADER = DELIM.join(
    ["% msg-id1", "msg-internal-id", "msg-id2", "msg-internal-id2", "information"]
)


class IndexMap:
    """Message internal id <-> dense matrix index, assigned in first-seen order."""

    def __init__(self):
        self._index_of: Dict[int, int] = {}
        self._ids: List[int] = []

    def add(self, msg_id: int) -> int:
        index = self._index_of.get(msg_id)
        if index is None:
            index = len(self._ids)
            self._index_of[msg_id] = index
            self._ids.append(msg_id)
        return index

    def index_of(self, msg_id: int) -> int:
        """Matrix index of msg_id, or -1 if it was never seen."""
        return self._index_of.get(msg_id, -1)

    def id_of(self, index: int) -> int:
        return self._ids[index]

    def ids(self) -> List[int]:
        return list(self._ids)

    def __contains__(self, msg_id: int) -> bool:
        return msg_id in self._index_of

    def __len__(self) -> int:
        return len(self._ids)


def _round_half_up(x: np.ndarray) -> np.ndarray:
    return np.floor(x + 0.5)


def _entropy(*masses: np.ndarray) -> np.ndarray:
    total = np.zeros_like(masses[0])
    for p in masses:
        positive = p > 0
        total -= np.where(positive, p, 0.0) * np.log2(np.where(positive, p, 1.0))
    return total


def signed_mutual_information(counts: np.ndarray, total: float) -> np.ndarray:
    """Signed MI for every cell of a full co-occurrence count matrix."""
    diag = np.diag(counts)
    di = diag[:, None]
    dj = diag[None, :]
    p11 = _round_half_up(counts) / total
    p10 = _round_half_up(di - counts) / total
    p01 = _round_half_up(dj - counts) / total
    p00 = _round_half_up(total - di - dj + counts) / total

    mi = _entropy(p10 + p11, p00 + p01) + _entropy(p01 + p11, p00 + p10) - _entropy(p00, p01, p10, p11)
    sign = np.where(p11 * p00 - p01 * p10 >= 0, 1.0, -1.0)
    return sign * mi


class MsgMutualInformation:
    """
    Signed mutual information between message ids over a stream of intervals.

    Usage:
        mi = MsgMutualInformation(legal_ids)
        for item in stream:
            if isinstance(item, TimeSeparator):
                mi.incoming_separator(item)
            else:
                mi.incoming_object(item)
        mi.end_of_stream()
        similarity = mi.mutual_information_matrix
    """

    count_factor: int = 1
    interval_factor: int = 1

    def __init__(self, legal_msg_ids: Iterable[int]):
        self._legal_ids: Set[int] = set(legal_msg_ids)
        self._counts: Optional[CoOccurrenceMatrix] = CoOccurrenceMatrix(len(self._legal_ids))
        self._similarity: Optional[SimilarityMatrix] = None
        self._index_map = IndexMap()
        self._names: Dict[int, str] = {}
        self.total_num_intervals = 0
        self._total_msg_id_count = 0
        self._stream_closed = False

    # -------------------------------------------------------------------------
    # Stream
    # -------------------------------------------------------------------------

    def incoming_object(self, interval: Interval) -> None:
        self._ensure_open()
        self._record_names(interval.message_summaries)
        self.total_num_intervals += self.interval_factor
        self._add_joint_occurrences(interval.internal_ids())

    def incoming_separator(self, separator: TimeSeparator) -> None:
        # the basic estimator keeps no state between intervals
        pass

    def end_of_stream(self) -> None:
        self._ensure_open()
        self._stream_closed = True
        self._total_msg_id_count = len(self._index_map)
        logger.info("Create MI model")
        self._calculate_model()

    @property
    def stream_closed(self) -> bool:
        return self._stream_closed

    def _ensure_open(self) -> None:
        if self._stream_closed:
            raise StreamStateError("Cannot add interval to a closed stream.")

    def _record_names(self, summaries: Iterable[MessageSummary]) -> None:
        for ms in summaries:
            if ms.message_id is not None:
                self._names[ms.message_internal_id] = ms.message_id

    def _add_joint_occurrences(self, msg_ids) -> None:
        ids = list(msg_ids)
        for i, msg1 in enumerate(ids):
            self._increase_joint_occurrences(msg1, msg1, self.count_factor)
            for msg2 in ids[i + 1:]:
                self._increase_joint_occurrences(msg1, msg2, self.count_factor)

    def _increase_joint_occurrences(self, msg1: int, msg2: int, count: int) -> None:
        if msg1 not in self._legal_ids or msg2 not in self._legal_ids:
            return
        index1 = self._index_map.add(msg1)
        index2 = self._index_map.add(msg2)
        self._counts.add(index1, index2, count)

    def _calculate_model(self) -> None:
        n = len(self._index_map)
        if n < self._counts.row_num:
            self._counts.resize(n)
        logger.info(f"MI matrix size (num of valid message IDs) is {n} X {n}")

        counts = self._counts.to_numpy()
        rows, cols = np.tril_indices(n, k=-1)
        non_zero_pairs = int(np.count_nonzero(counts[rows, cols].astype(np.int64)))

        if n:
            mi = signed_mutual_information(counts, float(self.total_num_intervals))
        else:
            mi = counts
        self._counts.assign(mi)
        self._similarity = self._counts.finalize()
        self._counts = None
        logger.info(f"number of non-zero message ID pairs is {non_zero_pairs}")

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    @property
    def mutual_information_matrix(self) -> SimilarityMatrix:
        if self._similarity is None:
            raise StreamStateError(
                "Mutual information matrix not calculated yet. end_of_stream() must be called."
            )
        return self._similarity

    @property
    def total_msg_id_count(self) -> int:
        return self._total_msg_id_count

    def index_of_msg_id(self, msg_id: int) -> int:
        return self._index_map.index_of(msg_id)

    @property
    def mat_index_to_msg_internal_id(self) -> List[int]:
        return self._index_map.ids()

    def msg_name(self, msg_internal_id: int) -> str:
        return self._names.get(msg_internal_id, str(msg_internal_id))

    def calc_similarity_sum(self, cluster: Iterable[int]) -> float:
        """Average non-NaN value over all ordered pairs (self pairs included) of matrix indices."""
        idx = np.fromiter(cluster, dtype=np.intp)
        if len(idx) == 0:
            return float("nan")
        block = self.mutual_information_matrix.to_numpy()[np.ix_(idx, idx)]
        valid = block[~np.isnan(block)]
        if len(valid) == 0:
            return float("nan")
        return float(valid.mean())

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    def report_frame(self) -> pd.DataFrame:
        """Lower triangle (diagonal included) as one row per pair."""
        similarity = self.mutual_information_matrix
        values = similarity.to_numpy()
        ids = self.mat_index_to_msg_internal_id
        records = []
        for i in range(similarity.row_num):
            for j in range(i + 1):
                records.append({
                    "msg_id1": self.msg_name(ids[i]),
                    "msg_internal_id1": ids[i],
                    "msg_id2": self.msg_name(ids[j]),
                    "msg_internal_id2": ids[j],
                    "information": values[i, j],
                })
        return pd.DataFrame(
            records,
            columns=["msg_id1", "msg_internal_id1", "msg_id2", "msg_internal_id2", "information"],
        )

    def print_report(self, path: Union[str, Path]) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as out:
            out.write(REPORT_HEADER + "\n")
            self.report_frame().to_csv(out, sep=DELIM, header=False, index=False)

    def _member_str(self, index: int) -> str:
        if index < 0:
            return "NONE"
        msg_id = self._index_map.id_of(index)
        return f"{self.msg_name(msg_id)}({msg_id})"

    def member_report(self, member: int, cluster: Iterable[int]) -> str:
        """In-cluster relations of member (descending) and its 5 strongest outside ones."""
        values = self.mutual_information_matrix.to_numpy()[member]
        cluster = set(cluster)

        inside = sorted(((values[i], self._member_str(i)) for i in cluster), reverse=True)
        outside = sorted(
            ((values[i], self._member_str(i)) for i in range(len(values)) if i not in cluster),
            reverse=True,
        )[:5]

        lines = [
            f"{self._member_str(member):<15s}:",
            "\t\tCluster relations:" + "".join(f" {v:f}:{s}" for v, s in inside),
            "\t\tTop 5 out of cluster relations:" + "".join(f" {v:f}:{s}" for v, s in outside),
        ]
        return "\n".join(lines) + "\n"


class MsgMutualInformationSmoothed(MsgMutualInformation):
    """
    Mutual information over a continuous timeline.

    Each pair of consecutive intervals contributes TIMELINE_RESOLUTION units
    spanning from the tail of the previous interval to the head of the
    current one. A message is absent from its last position in the previous
    interval up to its first position in the current one, and present
    elsewhere; two messages co-occur wherever neither is absent.

    Without a recorded timeline, positions are approximated from the
    instance count n as 0.5/sqrt(n) of the interval from either edge.

    The previous interval is forgotten at every separator and at the end of
    the stream.
    """

    count_factor = TIMELINE_RESOLUTION
    interval_factor = TIMELINE_RESOLUTION

    def __init__(self, legal_msg_ids: Iterable[int]):
        super().__init__(legal_msg_ids)
        self._last_interval: Optional[Interval] = None

    @property
    def previous_interval(self) -> Optional[Interval]:
        return self._last_interval

    def incoming_object(self, interval: Interval) -> None:
        self._ensure_open()
        if self._last_interval is None:
            # counted as a discrete interval at full weight
            self._last_interval = interval
            super().incoming_object(interval)
            return

        self._record_names(interval.message_summaries)
        last_positions: Dict[int, int] = {}
        first_positions: Dict[int, int] = {}
        for ms in self._last_interval.message_summaries:
            first_positions[ms.message_internal_id] = TIMELINE_RESOLUTION
        for ms in interval.message_summaries:
            last_positions[ms.message_internal_id] = 0
        for ms in self._last_interval.message_summaries:
            last_positions[ms.message_internal_id] = self._edge_position(ms, first=False)
        for ms in interval.message_summaries:
            first_positions[ms.message_internal_id] = self._edge_position(ms, first=True)

        self._add_overlap_occurrences(last_positions, first_positions)
        self.total_num_intervals += TIMELINE_RESOLUTION
        self._last_interval = interval

    @staticmethod
    def _edge_position(ms: MessageSummary, first: bool) -> int:
        if ms.timeline:
            return ms.timeline[0] if first else ms.timeline[-1]
        n = ms.num_instances
        if n is not None and n > 0:
            offset = 0.5 / math.sqrt(n)
            return int(TIMELINE_RESOLUTION * (offset if first else 1.0 - offset))
        return TIMELINE_RESOLUTION // 2

    def _add_overlap_occurrences(self, last_positions: Dict[int, int], first_positions: Dict[int, int]) -> None:
        ids = sorted(last_positions)
        spans = {}
        for msg in ids:
            start = last_positions[msg]
            end = first_positions[msg]
            spans[msg] = (start, end, max(0, end - start))

        for i, msg1 in enumerate(ids):
            from1, to1, length1 = spans[msg1]
            self._increase_joint_occurrences(msg1, msg1, TIMELINE_RESOLUTION - length1)
            for msg2 in ids[i + 1:]:
                from2, to2, length2 = spans[msg2]
                overlap = max(0, min(to1, to2) - max(from1, from2))
                self._increase_joint_occurrences(
                    msg1, msg2, TIMELINE_RESOLUTION - length1 - length2 + overlap
                )

    def incoming_separator(self, separator: TimeSeparator) -> None:
        self.flush_state()

    def end_of_stream(self) -> None:
        super().end_of_stream()
        self.flush_state()

    def flush_state(self) -> None:
        self._last_interval = None
