"""
logclust K-Means Engine

Centroid-based companion to IClust for points in a feature space.

Each run picks K distinct rows as initial centroids, then alternates
"assign every point to its nearest centroid" and "move every centroid to
the mean of its members" until the assignment stops changing (or the
iteration cap is reached). The run with the lowest total distance wins.

Distances come from scipy.spatial.distance; any callable taking two 1-D
vectors can be plugged in instead.

Phase: Clustering
Input: point matrix, one row per element
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np
from scipy.spatial import distance as sp_distance
from sklearn.metrics import silhouette_score

from logclust.core.exceptions import ConfigurationError, UnsupportedOperationError
from logclust.core.matrix import MatrixLike, as_array

from .base import BaseClusteringEngine, BasePartition, RunSummary


logger = logging.getLogger(__name__)

DistanceFunc = Callable[[np.ndarray, np.ndarray], float]

# name -> scipy cdist metric
DISTANCE_FUNCTIONS: Dict[str, str] = {
    "l2_squared": "sqeuclidean",
    "l2": "euclidean",
    "l1": "cityblock",
    "cosine": "cosine",
}


def pairwise_distances(
    centroids: np.ndarray, points: np.ndarray, metric: Union[str, DistanceFunc]
) -> np.ndarray:
    """Distance of every point (rows) to every centroid (columns)."""
    if callable(metric):
        return sp_distance.cdist(points, centroids, metric=metric)
    return sp_distance.cdist(points, centroids, metric=DISTANCE_FUNCTIONS[metric])


class KMeansPartition(BasePartition):
    """One K-Means run: assignment, centroids and total distance."""

    def __init__(
        self,
        points: np.ndarray,
        cluster_num: int,
        rng: np.random.Generator,
        metric: Union[str, DistanceFunc],
    ):
        self._points = points
        self._metric = metric
        self._labels = np.full(points.shape[0], -1, dtype=np.intp)
        self._counts = np.zeros(cluster_num, dtype=np.intp)
        self._total_score = float("inf")

        picked = rng.permutation(points.shape[0])[:cluster_num]
        self.centroids = points[picked].astype(np.float64, copy=True)

    def iterate_once(self) -> bool:
        """One assign + update step; True when the assignment did not change."""
        previous = self._labels
        distances = pairwise_distances(self.centroids, self._points, self._metric)
        self._labels = np.argmin(distances, axis=1)
        self._total_score = float(distances[np.arange(len(self._labels)), self._labels].sum())
        self._update_centroids()
        return bool(np.array_equal(self._labels, previous))

    def _update_centroids(self) -> None:
        k = self.centroids.shape[0]
        self._counts = np.bincount(self._labels, minlength=k)
        for c in range(k):
            # empty clusters keep their previous centroid
            if self._counts[c]:
                self.centroids[c] = self._points[self._labels == c].mean(axis=0)

    @property
    def score(self) -> float:
        """Total distance of the points to their centroids at the last assignment."""
        return self._total_score

    @property
    def cluster_indices(self) -> List[int]:
        return self._labels.tolist()

    @property
    def labels(self) -> np.ndarray:
        return self._labels.copy()

    @property
    def num_clusters(self) -> int:
        return self.centroids.shape[0]

    def cluster_size(self, cluster_index: int) -> int:
        if not 0 <= cluster_index < self.num_clusters:
            return -1
        return int(self._counts[cluster_index])

    def cluster_elements(self, cluster_index: int):
        if not 0 <= cluster_index < self.num_clusters:
            return set()
        return set(np.flatnonzero(self._labels == cluster_index).tolist())

    def centroid_of_cluster(self, cluster_index: int) -> np.ndarray:
        if not 0 <= cluster_index < self.num_clusters:
            return np.zeros(0)
        return self.centroids[cluster_index].copy()

    def cluster_score(self, cluster_index: int) -> float:
        """Mean distance of the members to their centroid."""
        if not 0 <= cluster_index < self.num_clusters:
            return float("nan")
        members = self._points[self._labels == cluster_index]
        if len(members) == 0:
            return float("nan")
        d = pairwise_distances(self.centroids[cluster_index : cluster_index + 1], members, self._metric)
        return float(d.mean())


class KMeansEngine(BaseClusteringEngine):
    """
    K-Means over the rows of a point matrix.

    Run summaries are always collected. Initial partitions are not supported.
    """

    name = "kmeans"
    default_seed = 101
    default_run_num = 10
    default_max_iterations = None  # unlimited

    def __init__(
        self,
        cluster_num: int = -1,
        run_num: Optional[int] = None,
        max_iterations: Optional[int] = None,
        seed: Optional[int] = None,
        distance: Union[str, DistanceFunc] = "l2_squared",
    ):
        super().__init__(cluster_num, run_num, max_iterations, seed)
        self.set_distance_function(distance)
        self._runs_summary = []

    def set_distance_function(self, distance: Union[str, DistanceFunc]) -> None:
        if not callable(distance) and distance not in DISTANCE_FUNCTIONS:
            raise ConfigurationError(
                f"Unknown distance: {distance}. Options: {list(DISTANCE_FUNCTIONS.keys())}"
            )
        self.distance = distance

    def set_initial_partition(self, labels: Optional[Sequence[int]]) -> None:
        raise UnsupportedOperationError("Initial partition currently not supported for k-means")

    def collect_runs_summary(self) -> None:
        # always collected
        pass

    def parameters(self) -> Dict[str, Any]:
        params = super().parameters()
        params["distance"] = self.distance if isinstance(self.distance, str) else getattr(
            self.distance, "__name__", repr(self.distance)
        )
        return params

    def run(self, matrix: MatrixLike) -> KMeansPartition:
        points = as_array(matrix)
        if points.ndim != 2:
            raise ConfigurationError(f"Expected a 2-D point matrix, got {points.ndim} dimensions")
        n = points.shape[0]
        cluster_num = self.resolve_cluster_num(n)
        if not 1 <= cluster_num <= n:
            raise ConfigurationError(f"Cluster number ({cluster_num}) must be in [1, {n}]")

        global_rng = np.random.default_rng(self.seed)
        self._runs_summary = []
        best: Optional[KMeansPartition] = None

        for _ in range(self.run_num):
            local_seed = int(global_rng.integers(2 ** 62))
            partition = KMeansPartition(points, cluster_num, np.random.default_rng(local_seed), self.distance)

            started = time.perf_counter()
            j = 0
            while not partition.iterate_once() and (self.max_iterations is None or j < self.max_iterations):
                j += 1
            elapsed_ms = int(round((time.perf_counter() - started) * 1000))

            self._runs_summary.append(
                RunSummary(score=partition.score, iterations=j, time_ms=elapsed_ms, seed=local_seed)
            )
            logger.debug(f"k-means run seed={local_seed}: cost={partition.score:.6f} iterations={j}")

            if best is None or partition.score < best.score:
                best = partition

        logger.info(f"k-means finished: {cluster_num} clusters, cost={best.score:.6f}")
        return best

    def metrics(self, matrix: MatrixLike, partition: KMeansPartition) -> Dict[str, Any]:
        metrics = super().metrics(matrix, partition)
        points = as_array(matrix)
        n_labels = len(set(partition.cluster_indices))
        silhouette = None
        if 1 < n_labels < points.shape[0]:
            metric = DISTANCE_FUNCTIONS.get(self.distance, "euclidean") if isinstance(self.distance, str) else self.distance
            silhouette = float(silhouette_score(points, partition.labels, metric=metric))
        metrics["silhouette_score"] = silhouette
        return metrics
