"""
logclust IClust Engine

Iterative local-search clustering over a symmetric similarity matrix.

Each run starts from a random balanced partition (or a caller-supplied
one) and repeatedly draws an element, evaluates keeping it against moving
it into every other cluster, and applies the best move:

- elements are drawn without replacement from a per-run permutation
  (swap-to-front); any move resets the cursor so every element is
  reconsidered against the changed landscape
- staying wins ties; ties among moves are broken uniformly at random
- a run stops at max_trials, at max_idle_trial_num consecutive idle trials,
  or once a whole pass over the elements made no move

Runs are independent and can be spread over worker processes; the result
is identical to running them one after another.

Phase: Clustering
Input: similarity matrix (symmetric, diagonally dominant, NaN = no data)
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, Any, Iterable, List, Optional, Sequence

import numpy as np

from logclust.core.exceptions import ClusteringInternalError, ConfigurationError
from logclust.core.matrix import MatrixLike, as_array, assert_diagonally_dominant, assert_symmetric
from logclust.utils.parallel import run_parallel

from .base import BaseClusteringEngine, IClustRunSummary
from .partition import Partition, entropy_diff, entropy_diff_for_member


logger = logging.getLogger(__name__)

SYMMETRY_EPSILON = 1e-16


@dataclass
class IClustRunTask:
    """Everything one independent run needs; picklable for worker processes."""
    similarity: np.ndarray
    seed: int
    cluster_num: int
    initial_labels: Optional[List[int]]
    max_trials: int
    max_idle_trials: int
    alpha: float
    min_cluster_size: int
    single_element_score: float
    enable_empty_clusters: bool
    archive_scores: bool = False


@dataclass
class IClustRunOutcome:
    partition: Partition
    trials: int
    idle_trials: int
    time_ms: int
    scores: Optional[List[float]] = None


class LocalSearch:
    """Trial loop of one IClust run."""

    def __init__(self, task: IClustRunTask):
        self.task = task
        self.rng = np.random.default_rng(task.seed)
        kwargs = dict(
            alpha=task.alpha,
            single_element_score=task.single_element_score,
            seed=task.seed,
        )
        if task.initial_labels is not None:
            self.partition = Partition.from_labels(task.similarity, task.initial_labels, **kwargs)
        else:
            self.partition = Partition.random(task.similarity, task.cluster_num, self.rng, **kwargs)

        self.num_elements = self.partition.num_elements
        self.permutation = list(range(self.num_elements))
        self.cursor = 0
        self.trials = 0
        self.idle_trials = 0
        self.scores: Optional[List[float]] = [] if task.archive_scores else None

    def next_element(self) -> int:
        """Draw an element not yet settled in this pass and swap it to the cursor."""
        index = int(self.rng.integers(self.num_elements - self.cursor)) + self.cursor
        element = self.permutation[index]
        self.permutation[index] = self.permutation[self.cursor]
        self.permutation[self.cursor] = element
        return element

    def done(self) -> bool:
        return (
            self.trials >= self.task.max_trials
            or self.idle_trials >= self.task.max_idle_trials
            or self.cursor >= self.num_elements
        )

    def trial(self) -> None:
        task = self.task
        partition = self.partition
        n = self.num_elements

        element = self.next_element()
        src_index = partition.cluster_of_element(element)
        if src_index < 0:
            raise ClusteringInternalError(f"Element {element} is not assigned to any cluster")
        src = partition.clusters[src_index]

        if not task.enable_empty_clusters and src.size <= task.min_cluster_size:
            self.trials += 1
            return

        best_gain = (
            src.calculate_similarity_gain_for_member(element)
            + task.alpha * entropy_diff_for_member(src.size, n)
        )
        stay = True
        candidates = [src_index]
        for i, cluster in enumerate(partition.clusters):
            if i == src_index:
                continue
            gain = cluster.check_candidate(element) + task.alpha * entropy_diff(cluster.size, n)
            if gain > best_gain:
                candidates = [i]
                best_gain = gain
                stay = False
            elif gain == best_gain and not stay:
                candidates.append(i)

        if len(candidates) > 1:
            chosen = candidates[int(self.rng.integers(len(candidates)))]
        else:
            chosen = candidates[0]

        if stay:
            self.idle_trials += 1
            self.cursor += 1
        else:
            src.demote_to_candidate(element)
            partition.clusters[chosen].accept_last_candidate()
            self.idle_trials = 0
            self.cursor = 0
        self.trials += 1

    def run(self) -> Partition:
        if self.scores is not None:
            self.scores.append(self.partition.score)
        while not self.done():
            self.trial()
            if self.scores is not None:
                self.scores.append(self.partition.score)
        return self.partition


def execute_run(task: IClustRunTask) -> IClustRunOutcome:
    """Run one independent IClust run (module level so worker processes can pickle it)."""
    started = time.perf_counter()
    search = LocalSearch(task)
    logger.debug(f"Starting run with seed={task.seed}")
    partition = search.run()
    elapsed_ms = int(round((time.perf_counter() - started) * 1000))
    logger.debug(
        f"Finished run seed={task.seed}: score={partition.score:.6f} "
        f"trials={search.trials} idle={search.idle_trials}"
    )
    return IClustRunOutcome(
        partition=partition,
        trials=search.trials,
        idle_trials=search.idle_trials,
        time_ms=elapsed_ms,
        scores=search.scores,
    )


class IClustEngine(BaseClusteringEngine):
    """
    IClust multi-run local search.

    Parameters beyond the shared contract:
        max_idle_trial_num: consecutive idle trials that end a run
        alpha: weight of the cluster-size entropy in the score
        min_cluster_size: elements of clusters this small are not moved (>= 1)
        single_element_score: gain credited for an empty cluster
        enable_empty_clusters: allow moves that empty a cluster
        max_workers: worker processes for independent runs (1 = in process)
    """

    name = "iclust"
    default_seed = 0
    default_run_num = 10
    default_max_iterations = 10000

    def __init__(
        self,
        cluster_num: int = -1,
        run_num: Optional[int] = None,
        max_iterations: Optional[int] = None,
        seed: Optional[int] = None,
        max_idle_trial_num: int = 100,
        alpha: float = 0.0,
        min_cluster_size: int = 1,
        single_element_score: float = 0.2,
        enable_empty_clusters: bool = False,
        max_workers: Optional[int] = 1,
    ):
        super().__init__(cluster_num, run_num, max_iterations, seed)
        self.max_idle_trial_num = max_idle_trial_num
        self.alpha = alpha
        self.min_cluster_size = min_cluster_size
        self.single_element_score = single_element_score
        self.enable_empty_clusters = enable_empty_clusters
        self.max_workers = max_workers
        self._initial_labels: Optional[List[int]] = None
        self._score_archive: Optional[List[float]] = None
        self._converged = False

    @property
    def min_cluster_size(self) -> int:
        return self._min_cluster_size

    @min_cluster_size.setter
    def min_cluster_size(self, value: int) -> None:
        if value < 1:
            raise ConfigurationError("Cannot set min cluster size to value less than 1")
        self._min_cluster_size = value

    @property
    def converged(self) -> bool:
        """Whether the best run of the last run() stopped before the trial cap."""
        return self._converged

    def set_initial_partition(self, labels: Optional[Sequence[int]]) -> None:
        self._initial_labels = None if labels is None else [int(x) for x in labels]

    def store_all_scores(self, archive: Optional[List[float]]) -> None:
        """Append the partition score after every trial of every run to archive."""
        self._score_archive = archive

    def parameters(self) -> Dict[str, Any]:
        params = super().parameters()
        params.update(
            max_idle_trial_num=self.max_idle_trial_num,
            alpha=self.alpha,
            min_cluster_size=self.min_cluster_size,
            single_element_score=self.single_element_score,
            enable_empty_clusters=self.enable_empty_clusters,
        )
        return params

    def _resolve_clusters(self, n: int) -> int:
        if self._initial_labels is not None:
            if len(self._initial_labels) != n:
                raise ConfigurationError(
                    f"Initial partition has {len(self._initial_labels)} labels for {n} elements"
                )
            cluster_num = len(set(self._initial_labels))
        else:
            cluster_num = self.resolve_cluster_num(n)
        if cluster_num < 2:
            raise ConfigurationError("Must have at least two clusters")
        if cluster_num >= n:
            raise ConfigurationError(
                f"Cluster number ({cluster_num}) must be smaller than elements number ({n})"
            )
        return cluster_num

    def _tasks(self, similarity: np.ndarray, cluster_num: int) -> List[IClustRunTask]:
        return [
            IClustRunTask(
                similarity=similarity,
                seed=self.seed + i,
                cluster_num=cluster_num,
                initial_labels=self._initial_labels,
                max_trials=self.max_iterations,
                max_idle_trials=self.max_idle_trial_num,
                alpha=self.alpha,
                min_cluster_size=self.min_cluster_size,
                single_element_score=self.single_element_score,
                enable_empty_clusters=self.enable_empty_clusters,
                archive_scores=self._score_archive is not None,
            )
            for i in range(self.run_num)
        ]

    def run(self, matrix: MatrixLike) -> Partition:
        """
        Cluster a similarity matrix.

        Raises:
            ConfigurationError: matrix not symmetric / not diagonally dominant,
                smaller than 3x3, or cluster count outside [2, N-1]
        """
        similarity = as_array(matrix)
        assert_diagonally_dominant(similarity)
        assert_symmetric(similarity, SYMMETRY_EPSILON)
        n = similarity.shape[0]
        if n <= 2:
            raise ConfigurationError("Minimal matrix size 3x3")
        cluster_num = self._resolve_clusters(n)

        if self._runs_summary is not None:
            self._runs_summary.clear()
        self._converged = False

        tasks = self._tasks(similarity, cluster_num)
        logger.info(f"Starting {len(tasks)} runs: {n} elements, {cluster_num} clusters")

        outcomes: Iterable[IClustRunOutcome]
        if self.max_workers == 1:
            outcomes = map(execute_run, tasks)
        else:
            outcomes = run_parallel(execute_run, tasks, max_workers=self.max_workers)

        best: Optional[Partition] = None
        for task, outcome in zip(tasks, outcomes):
            partition = outcome.partition
            if self._runs_summary is not None:
                self._runs_summary.append(
                    IClustRunSummary(
                        score=partition.total_score,
                        iterations=outcome.trials,
                        time_ms=outcome.time_ms,
                        seed=task.seed,
                        idle_trials=outcome.idle_trials,
                    )
                )
            if self._score_archive is not None and outcome.scores is not None:
                self._score_archive.extend(outcome.scores)

            if best is None or partition.total_score > best.total_score:
                self._converged = outcome.trials < self.max_iterations
                best = partition
            if partition.score >= 1:
                logger.debug(f"Run with seed={task.seed} reached score {partition.score:.4f}; stopping")
                break

        logger.info(f"Finished all runs with score={best.score:.6f} (converged={self._converged})")
        return best

    def metrics(self, matrix: MatrixLike, partition: Partition) -> Dict[str, Any]:
        metrics = super().metrics(matrix, partition)
        metrics.update(
            total_score=float(partition.total_score),
            entropy=float(partition.entropy()),
            n_populated_clusters=partition.num_populated_clusters,
            converged=self._converged,
        )
        return metrics
