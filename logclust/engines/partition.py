"""
IClust Partition Model

A Partition assigns N elements to K clusters over a symmetric similarity
matrix. Every cluster keeps, incrementally:

    size          number of members
    sim_sum       sum of non-NaN similarities over ordered member pairs
                  (self pairs included)
    sim_n         number of pairs summed into sim_sum

and contributes size * sim_sum / sim_n to the partition's total score
(0 when sim_n is 0). Moving one element touches only the source and the
target cluster, so a local-search step costs O(cluster size), never O(N^2).

"Extra terms" of an element against a cluster are what it adds to the sums
when it joins: twice its similarity to each other member, plus its own
diagonal entry. Each cluster caches the extra terms of the last element it
evaluated; the cache is dropped whenever the membership changes.

Partition score:

    score = total_score / N + alpha * H(cluster sizes)

with H the base-2 Shannon entropy of the non-empty cluster sizes.
"""

import logging
import math
from typing import List, NamedTuple, Optional, Sequence, Set

import numpy as np

from logclust.core.exceptions import ClusteringInternalError, ConfigurationError

from .base import BasePartition

logger = logging.getLogger(__name__)


def plogp(p: float) -> float:
    """p * log2(p), with 0 for p == 0."""
    if p <= 0:
        return 0.0
    return p * math.log2(p)


def entropy_diff(size: int, num_elements: int) -> float:
    """Entropy term for a cluster of the given size gaining one member."""
    if size == 0:
        return 0.0
    return plogp(size / num_elements) - plogp((size + 1) / num_elements)


def entropy_diff_for_member(size: int, num_elements: int) -> float:
    """Entropy term for a cluster of the given size keeping one of its members."""
    if size <= 1:
        return 0.0
    return plogp((size - 1) / num_elements) - plogp(size / num_elements)


class CandidateCache(NamedTuple):
    """Extra terms of one element against one cluster."""
    candidate: int
    extra_sum: float
    extra_n: int


class Cluster:
    """One cluster of a Partition with its running similarity sums."""

    def __init__(self, partition: "Partition", index: int, members: Sequence[int]):
        self._partition = partition
        self.index = index
        self.members: Set[int] = set()
        for m in members:
            self.members.add(m)
            partition._cluster_indices[m] = index
        self.size = len(self.members)
        self.sim_sum = 0.0
        self.sim_n = 0
        self.candidate = -1
        self._cache: Optional[CandidateCache] = None
        self._calc_similarity_sum()
        partition._total_score += self.score_contribution()

    @property
    def cache(self) -> Optional[CandidateCache]:
        return self._cache

    # -------------------------------------------------------------------------
    # Sums
    # -------------------------------------------------------------------------

    def _calc_similarity_sum(self) -> None:
        self.sim_sum = 0.0
        self.sim_n = 0
        if not self.members:
            return
        idx = np.fromiter(self.members, dtype=np.intp, count=len(self.members))
        block = self._partition.similarity[np.ix_(idx, idx)]
        valid = ~np.isnan(block)
        self.sim_sum = float(block[valid].sum())
        self.sim_n = int(valid.sum())

    def _extra_terms(self, element: int) -> CandidateCache:
        cached = self._cache
        if cached is not None and cached.candidate == element:
            return cached

        sim = self._partition.similarity
        others = [m for m in self.members if m != element]
        extra_sum = 0.0
        extra_n = 0
        if others:
            values = sim[element, others]
            valid = ~np.isnan(values)
            extra_sum = 2.0 * float(values[valid].sum())
            extra_n = 2 * int(valid.sum())
        diagonal = sim[element, element]
        if not np.isnan(diagonal):
            extra_sum += float(diagonal)
            extra_n += 1

        self._cache = CandidateCache(element, extra_sum, extra_n)
        return self._cache

    def score_contribution(self) -> float:
        if self.sim_n == 0:
            return 0.0
        return self.size * self.sim_sum / self.sim_n

    def average_similarity(self) -> float:
        if self.sim_n == 0:
            return 0.0
        return self.sim_sum / self.sim_n

    def _candidate_contribution(self, extra: CandidateCache) -> float:
        total_n = self.sim_n + extra.extra_n
        new_score = 0.0
        if total_n > 0:
            new_score = (self.size + 1) * (self.sim_sum + extra.extra_sum) / total_n
        return new_score - self.score_contribution()

    def _member_contribution(self, extra: CandidateCache) -> float:
        total_n = self.sim_n - extra.extra_n
        new_score = 0.0
        if total_n > 0:
            new_score = (self.size - 1) * (self.sim_sum - extra.extra_sum) / total_n
        return self.score_contribution() - new_score

    # -------------------------------------------------------------------------
    # Moves
    # -------------------------------------------------------------------------

    def check_candidate(self, element: int) -> float:
        """Score gain of adding element (a non-member) to this cluster."""
        self.candidate = element
        extra = self._extra_terms(element)
        if self.size == 0:
            return self._partition.single_element_score
        return self._candidate_contribution(extra)

    def calculate_similarity_gain_for_member(self, element: int) -> float:
        """Score this cluster would lose if element (a member) left it."""
        self.candidate = element
        extra = self._extra_terms(element)
        gain = self._member_contribution(extra)
        if self.size <= 1:
            return gain + self._partition.single_element_score
        return gain

    def accept_last_candidate(self) -> None:
        """Add the last checked candidate, updating the sums and the total score."""
        if self.candidate == -1:
            raise ClusteringInternalError(f"Cluster {self.index} has no candidate to accept")
        element = self.candidate
        extra = self._extra_terms(element)
        self._partition._total_score += self._candidate_contribution(extra)
        self.members.add(element)
        self._partition._cluster_indices[element] = self.index
        self.size += 1
        self.sim_sum += extra.extra_sum
        self.sim_n += extra.extra_n
        self.candidate = -1
        self._cache = None

    def demote_to_candidate(self, element: int) -> float:
        """Remove element and return the score it took with it."""
        if element not in self.members:
            raise ClusteringInternalError(
                f"Element {element} is not a member of cluster {self.index}"
            )
        self.members.discard(element)
        self.size -= 1
        self.candidate = element
        self._partition._cluster_indices[element] = -1
        self._cache = None
        extra = self._extra_terms(element)
        self.sim_sum -= extra.extra_sum
        self.sim_n -= extra.extra_n
        contribution = self._candidate_contribution(extra)
        self._partition._total_score -= contribution
        self._cache = None
        if self.size == 0:
            return contribution + self._partition.single_element_score
        return contribution

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------

    def refresh(self) -> None:
        """Recompute the sums from scratch and add the contribution to the total."""
        self._calc_similarity_sum()
        self._partition._total_score += self.score_contribution()
        self._cache = None

    def refresh_and_verify(self, warn_epsilon: float) -> float:
        for m in self.members:
            if self._partition._cluster_indices[m] != self.index:
                raise ClusteringInternalError(
                    f"Element {m} is a member of cluster {self.index} but assigned to "
                    f"{self._partition._cluster_indices[m]}"
                )
        old_sum = self.sim_sum
        old_n = self.sim_n
        self.refresh()
        if old_n != self.sim_n:
            raise ClusteringInternalError(
                f"Cluster {self.index}: pair count changed from {old_n} to {self.sim_n}"
            )
        diff = abs(old_sum - self.sim_sum)
        if diff > warn_epsilon:
            logger.warning(
                f"Cluster {sorted(self.members)} similarity sum drifted "
                f"from {old_sum} to {self.sim_sum}"
            )
        return diff

    def __repr__(self) -> str:
        return (
            f"Cluster(index={self.index}, members={sorted(self.members)}, "
            f"size={self.size}, sim_sum={self.sim_sum}, candidate={self.candidate})"
        )


class Partition(BasePartition):
    """
    Assignment of N elements to clusters, scored incrementally.

    Build with Partition.random() or Partition.from_labels().
    """

    def __init__(
        self,
        similarity: np.ndarray,
        groups: Sequence[Sequence[int]],
        alpha: float = 0.0,
        single_element_score: float = 0.2,
        seed: int = 0,
    ):
        self.similarity = similarity
        self.alpha = alpha
        self.single_element_score = single_element_score
        self.seed = seed
        self._num_elements = similarity.shape[0]
        self._cluster_indices = np.full(self._num_elements, -1, dtype=np.intp)
        self._total_score = 0.0
        self.clusters: List[Cluster] = [
            Cluster(self, i, members) for i, members in enumerate(groups)
        ]
        unassigned = np.flatnonzero(self._cluster_indices < 0)
        if len(unassigned):
            raise ConfigurationError(
                f"Partition leaves elements {unassigned[:10].tolist()} unassigned"
            )

    @classmethod
    def random(
        cls,
        similarity: np.ndarray,
        cluster_num: int,
        rng: np.random.Generator,
        **kwargs,
    ) -> "Partition":
        """Even split of a shuffled element order: cluster i gets every K-th element from i."""
        order = rng.permutation(similarity.shape[0])
        groups = [order[i::cluster_num].tolist() for i in range(cluster_num)]
        return cls(similarity, groups, **kwargs)

    @classmethod
    def from_labels(cls, similarity: np.ndarray, labels: Sequence[int], **kwargs) -> "Partition":
        """Partition from arbitrary labels, compacted to 0..K-1 in first-seen order."""
        if len(labels) != similarity.shape[0]:
            raise ConfigurationError(
                f"Initial partition has {len(labels)} labels for {similarity.shape[0]} elements"
            )
        compact = {}
        groups: List[List[int]] = []
        for element, label in enumerate(labels):
            if label not in compact:
                compact[label] = len(groups)
                groups.append([])
            groups[compact[label]].append(element)
        return cls(similarity, groups, **kwargs)

    # -------------------------------------------------------------------------
    # Scores
    # -------------------------------------------------------------------------

    @property
    def total_score(self) -> float:
        """Sum of the cluster contributions, maintained incrementally."""
        return self._total_score

    def entropy(self) -> float:
        n = self._num_elements
        return -sum(plogp(c.size / n) for c in self.clusters if c.size > 0)

    @property
    def score(self) -> float:
        return self._total_score / self._num_elements + self.alpha * self.entropy()

    def cluster_score(self, cluster_index: int) -> float:
        if not 0 <= cluster_index < len(self.clusters):
            return float("nan")
        return self.clusters[cluster_index].score_contribution()

    # -------------------------------------------------------------------------
    # Partition interface
    # -------------------------------------------------------------------------

    @property
    def cluster_indices(self) -> List[int]:
        return self._cluster_indices.tolist()

    @property
    def num_elements(self) -> int:
        return self._num_elements

    @property
    def num_clusters(self) -> int:
        return len(self.clusters)

    @property
    def num_populated_clusters(self) -> int:
        return sum(1 for c in self.clusters if c.size != 0)

    def cluster_of_element(self, index: int) -> int:
        return int(self._cluster_indices[index])

    def cluster_elements(self, cluster_index: int) -> Set[int]:
        if not 0 <= cluster_index < len(self.clusters):
            return set()
        return set(self.clusters[cluster_index].members)

    def cluster_size(self, cluster_index: int) -> int:
        if not 0 <= cluster_index < len(self.clusters):
            return -1
        return self.clusters[cluster_index].size

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------

    def refresh_and_verify(self, warn_epsilon: float = 1e-9) -> float:
        """
        Recompute every sum from scratch and compare with the running values.

        Raises ClusteringInternalError on inconsistent bookkeeping, logs a
        warning for drift above warn_epsilon, and returns the largest drift.
        """
        k = len(self.clusters)
        for element, c in enumerate(self._cluster_indices):
            if not 0 <= c < k:
                raise ClusteringInternalError(f"Element {element} has invalid cluster index {c}")
            if element not in self.clusters[c].members:
                raise ClusteringInternalError(
                    f"Inconsistency in cluster bookkeeping: element {element} missing from cluster {c}"
                )

        old_total = self._total_score
        self._total_score = 0.0
        diff = 0.0
        for cluster in self.clusters:
            diff = max(diff, cluster.refresh_and_verify(warn_epsilon))

        total_diff = abs(self._total_score - old_total)
        if total_diff > warn_epsilon:
            logger.warning(f"Total score drifted by {total_diff}")
        diff = max(diff, total_diff)
        logger.debug(f"Refresh (diff={diff})")
        return diff

    def refresh_with_new_similarity(self, similarity: np.ndarray) -> None:
        """Rescore the current assignment against another similarity matrix."""
        if similarity.shape != self.similarity.shape:
            raise ConfigurationError(
                f"New similarity matrix {similarity.shape} does not match {self.similarity.shape}"
            )
        self.similarity = similarity
        self._total_score = 0.0
        for cluster in self.clusters:
            cluster.refresh()

    def summary_string(self) -> str:
        """Seed, score and the cluster index of every element on one line."""
        return " ".join(
            [f"{self.seed} {self.score:f}"] + [str(c) for c in self._cluster_indices]
        )

    def __repr__(self) -> str:
        lines = [f"Partition(total_score={self._total_score}"]
        lines.extend(f"  {c!r}" for c in self.clusters)
        return "\n".join(lines) + ")"
