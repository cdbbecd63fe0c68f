"""
logclust K-Means Engine Tests

Run with:
    pytest tests/test_kmeans.py -v
"""

import numpy as np
import pytest

from logclust.core import ConfigurationError, DoubleMatrix, UnsupportedOperationError
from logclust.engines import KMeansEngine, RunSummary
from logclust.engines.kmeans import pairwise_distances


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def blobs():
    """Three well separated 2-D blobs of 20 points each."""
    rng = np.random.default_rng(42)
    centers = np.array([[0.0, 0.0], [10.0, 10.0], [-10.0, 10.0]])
    points = np.vstack([c + rng.normal(0, 0.5, size=(20, 2)) for c in centers])
    labels = np.repeat([0, 1, 2], 20)
    return points, labels


def same_grouping(a, b):
    """True when two label vectors describe the same partition."""
    pairs = set(zip(a, b))
    return len(pairs) == len(set(a)) == len(set(b))


# =============================================================================
# Clustering
# =============================================================================

class TestKMeans:

    def test_recovers_blobs(self, blobs):
        points, labels = blobs
        partition = KMeansEngine(cluster_num=3).run(points)
        assert same_grouping(partition.cluster_indices, labels.tolist())

    def test_centroids_are_member_means(self, blobs):
        points, _ = blobs
        partition = KMeansEngine(cluster_num=3).run(points)
        for c in range(3):
            members = points[partition.labels == c]
            assert np.allclose(partition.centroid_of_cluster(c), members.mean(axis=0))
        assert partition.centroid_of_cluster(3).size == 0

    def test_cost_is_total_distance(self, blobs):
        """Default cost: sum of squared euclidean distances to the centroids."""
        points, _ = blobs
        partition = KMeansEngine(cluster_num=3).run(points)
        centroids = np.array([partition.centroid_of_cluster(c) for c in range(3)])
        expected = ((points - centroids[partition.labels]) ** 2).sum()
        assert partition.score == pytest.approx(expected)

    def test_lowest_cost_run_wins(self, blobs):
        points, _ = blobs
        engine = KMeansEngine(cluster_num=3, run_num=6)
        partition = engine.run(points)
        assert len(engine.runs_summary) == 6
        assert partition.score == min(s.score for s in engine.runs_summary)
        assert all(isinstance(s, RunSummary) for s in engine.runs_summary)

    def test_deterministic(self, blobs):
        points, _ = blobs
        a = KMeansEngine(cluster_num=3, seed=5).run(points)
        b = KMeansEngine(cluster_num=3, seed=5).run(points)
        assert a.cluster_indices == b.cluster_indices
        assert a.score == b.score

    def test_iteration_cap(self, blobs):
        points, _ = blobs
        engine = KMeansEngine(cluster_num=3, run_num=2, max_iterations=0)
        engine.run(points)
        assert all(s.iterations == 0 for s in engine.runs_summary)

    @pytest.mark.parametrize("distance", ["l2_squared", "l2", "l1", "cosine"])
    def test_distance_functions(self, blobs, distance):
        points, _ = blobs
        partition = KMeansEngine(cluster_num=3, distance=distance, run_num=3).run(points)
        assert partition.num_clusters == 3
        assert sum(partition.cluster_size(c) for c in range(3)) == len(points)

    def test_callable_distance(self, blobs):
        points, labels = blobs

        def chebyshev(u, v):
            return float(np.max(np.abs(u - v)))

        partition = KMeansEngine(cluster_num=3, distance=chebyshev).run(points)
        assert same_grouping(partition.cluster_indices, labels.tolist())

    def test_single_cluster(self, blobs):
        points, _ = blobs
        partition = KMeansEngine(cluster_num=1, run_num=1).run(DoubleMatrix.from_array(points))
        assert set(partition.cluster_indices) == {0}
        assert np.allclose(partition.centroid_of_cluster(0), points.mean(axis=0))

    def test_cluster_score(self, blobs):
        points, _ = blobs
        partition = KMeansEngine(cluster_num=3).run(points)
        assert partition.cluster_score(0) > 0
        assert np.isnan(partition.cluster_score(3))
        assert partition.cluster_size(3) == -1


# =============================================================================
# Execution and validation
# =============================================================================

class TestKMeansEngine:

    def test_execute_reports_silhouette(self, blobs):
        points, _ = blobs
        result = KMeansEngine(cluster_num=3).execute(points)
        assert result.engine_name == "kmeans"
        assert result.metrics["silhouette_score"] > 0.8
        assert result.metrics["n_clusters"] == 3
        assert result.parameters["distance"] == "l2_squared"

    def test_no_silhouette_for_one_cluster(self, blobs):
        points, _ = blobs
        result = KMeansEngine(cluster_num=1, run_num=1).execute(points)
        assert result.metrics["silhouette_score"] is None

    def test_unknown_distance(self):
        with pytest.raises(ConfigurationError):
            KMeansEngine(distance="hamming-ish")

    def test_initial_partition_unsupported(self):
        with pytest.raises(UnsupportedOperationError):
            KMeansEngine().set_initial_partition([0, 1])

    @pytest.mark.parametrize("cluster_num", [0, 61])
    def test_cluster_num_bounds(self, blobs, cluster_num):
        points, _ = blobs
        with pytest.raises(ConfigurationError):
            KMeansEngine(cluster_num=cluster_num).run(points)

    def test_pairwise_distances_shape(self):
        points = np.array([[0.0, 0.0], [3.0, 4.0], [1.0, 0.0]])
        centroids = np.array([[0.0, 0.0], [3.0, 4.0]])
        d = pairwise_distances(centroids, points, "l2")
        assert d.shape == (3, 2)
        assert d[1, 0] == pytest.approx(5.0)
