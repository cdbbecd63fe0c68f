"""
logclust Cluster Trainer Tests

End-to-end: interval stream -> mutual information -> IClust -> filtered,
named clusters.

Run with:
    pytest tests/test_trainer.py -v
"""

import io

import numpy as np
import pytest

from logclust.config import ClusteringConfig
from logclust.core import ConfigurationError
from logclust.engines import Partition
from logclust.training import (
    ClusterModel,
    ClusterTrainer,
    ClusterUsage,
    Interval,
    calc_cluster_data,
    calc_cluster_mean_info,
    calc_mean_info,
)


def fit(stream, **overrides):
    params = dict(num_clusters=3)
    params.update(overrides)
    trainer = ClusterTrainer(ClusteringConfig(**params))
    return trainer, trainer.fit(stream)


# =============================================================================
# Training
# =============================================================================

class TestClusterTrainer:

    def test_groups_are_found(self, cyclic_stream):
        """{1,2,3} and {4,5,6} are kept; the lowest scoring {7,8} is dropped."""
        trainer, model = fit(cyclic_stream)

        assert model.num_clusters == 2
        assert model.clusters_before_filtering == 3
        first = model.message_status("1")
        second = model.message_status("4")
        assert first["status"] == "clustered"
        assert first["clusterSize"] == 3
        assert model.message_status("3")["clusterId"] == first["clusterId"]
        assert second["clusterId"] != first["clusterId"]
        assert {first["clusterName"], second["clusterName"]} == {"CLUSTER_0", "CLUSTER_1"}

        usages = sorted(str(cd.usage) for cd in trainer.cluster_data)
        assert usages == ["LOWEST_SCORE", "USED", "USED"]

    def test_message_status(self, cyclic_stream):
        _, model = fit(cyclic_stream)
        # 7 and 8 form the dropped cluster; 9 is below the appearance threshold
        assert model.message_status("7") == {"status": "unclustered"}
        assert model.message_status("9") == {"status": "unclustered"}
        assert model.message_status("42") == {"status": "new"}

    def test_counts(self, cyclic_stream):
        _, model = fit(cyclic_stream)
        assert model.total_interval_count == 24
        assert len(model.seen_msg_ids) == 9
        assert model.msg_count_above_threshold == 8
        assert model.clustered_msg_count == 6
        assert model.msg_appear_threshold == 3
        assert model.converged
        assert model.cluster_sizes == [3, 3]

    def test_user_summary(self, cyclic_stream):
        _, model = fit(cyclic_stream)
        out = io.StringIO()
        model.print_user_summary(out)
        lines = out.getvalue().splitlines()

        assert lines[0].startswith("Mean information in similarity matrix: ")
        assert lines[1] == "Runs:"
        assert lines[2].startswith("  run 0: [IClust run: score=")
        assert "Resulting clusters: 3" in lines
        assert "Remaining after filtering clusters: 2" in lines
        assert "Total intervals scanned: 24" in lines
        assert "Total msg-ids found: 9" in lines
        assert "Total msg-ids above min appear threshold 3: 8" in lines
        assert "Total msg-ids clustered: 6" in lines
        assert lines[-1] == "Converged: true"

    def test_fewer_than_three_ids(self):
        """Two ids end up together in a single cluster without running IClust."""
        trainer, model = fit([Interval.of(1, 2) for _ in range(5)])
        assert trainer.engine is None
        assert model.num_clusters == 1
        status = model.message_status("2")
        assert status["status"] == "clustered"
        assert status["clusterId"] == 0
        assert status["clusterSize"] == 2
        assert "No data" in model.user_summary()

    def test_empty_stream(self):
        _, model = fit([])
        assert model.num_clusters == 0
        assert model.message_status("1") == {"status": "new"}

    def test_cluster_count_is_clamped(self, cyclic_stream):
        _, model = fit(cyclic_stream, num_clusters=30)
        assert model.clusters_before_filtering == 7

    def test_sqrt_cluster_count(self, cyclic_stream):
        _, model = fit(cyclic_stream, num_clusters_sqrt_num_msgs=True)
        # max(2, int(sqrt(8)))
        assert model.clusters_before_filtering == 2

    def test_occurrence_partition_falls_back(self, cyclic_stream):
        """All ids occur equally often: no initial partition, two clusters."""
        trainer, model = fit(cyclic_stream, initial_partition_occurrence=True)
        assert trainer.clustering_partition.initial_partition is None
        assert model.clusters_before_filtering == 2

    def test_noisy_clusters_are_dropped(self, cyclic_stream):
        _, model = fit(cyclic_stream, cluster_min_avg_info=100.0)
        assert model.num_clusters == 0
        assert model.message_status("1") == {"status": "unclustered"}

    def test_timeline_estimator(self, cyclic_stream):
        trainer, model = fit(cyclic_stream, use_timeline=True)
        assert model.total_interval_count == 24
        assert trainer.partition.num_elements == 8

    def test_generator_stream(self, cyclic_stream):
        """A one-shot generator is read into memory before both passes."""
        _, from_list = fit(cyclic_stream)
        _, from_generator = fit(item for item in cyclic_stream)

        assert from_generator.total_interval_count == 24
        assert from_generator.msg_count_above_threshold == 8
        assert from_generator.msg_internal_id_to_cluster == from_list.msg_internal_id_to_cluster

    def test_deterministic(self, cyclic_stream):
        _, a = fit(cyclic_stream, num_runs=3, seed=4)
        _, b = fit(cyclic_stream, num_runs=3, seed=4)
        assert a.msg_internal_id_to_cluster == b.msg_internal_id_to_cluster


# =============================================================================
# Initial partition file and trace output
# =============================================================================

class TestTraceAndInitialFile:

    def test_trace_files(self, cyclic_stream, tmp_path):
        trace = tmp_path / "trace"
        fit(cyclic_stream, trace=True, trace_output_path=trace)

        for name in (
            "clustering.matrix.txt",
            "clustering.clusters.txt",
            "clustering.clusterMembers.txt",
            "clustering.clusteringDetails.txt",
        ):
            assert (trace / name).exists(), name
        assert not (trace / "clustering.clusteringChanges.txt").exists()

        clusters = (trace / "clustering.clusters.txt").read_text().splitlines()
        assert clusters[0].startswith("Mean information in similarity matrix:")
        assert clusters[1] == "Clusters:"
        assert clusters[2].startswith("0. Cluster id=")
        assert any("Used=LOWEST_SCORE" in line for line in clusters)
        assert any(line.startswith("\t1. ") for line in clusters)

        members = (trace / "clustering.clusterMembers.txt").read_text().splitlines()
        assert len(members) == 2

    def test_initial_partition_from_file(self, cyclic_stream, tmp_path):
        members = tmp_path / "members.txt"
        members.write_text("OLD_A\t1\t2\t3\nOLD_B\t4\t5\t6\n")
        trace = tmp_path / "trace"
        trainer, model = fit(
            cyclic_stream,
            initial_partition_file=members,
            trace=True,
            trace_output_path=trace,
        )

        assert set(model.cluster_names.values()) == {"OLD_A", "OLD_B"}
        assert model.message_status("2")["clusterName"] == "OLD_A"
        changes = (trace / "clustering.clusteringChanges.txt").read_text()
        assert "OLD_A [1, 2, 3]  did not change." in changes
        assert "2 clusters did not change." in changes

    def test_previous_members_file_as_input(self, cyclic_stream, tmp_path):
        """The members file of one training primes the next one."""
        trace = tmp_path / "first"
        fit(cyclic_stream, trace=True, trace_output_path=trace)
        _, model = fit(cyclic_stream, initial_partition_file=trace / "clustering.clusterMembers.txt")
        assert set(model.cluster_names.values()) == {"CLUSTER_0", "CLUSTER_1"}

    def test_missing_initial_file(self, cyclic_stream, tmp_path):
        with pytest.raises(ConfigurationError):
            fit(cyclic_stream, initial_partition_file=tmp_path / "none.txt")


# =============================================================================
# Cluster statistics
# =============================================================================

class TestClusterStatistics:

    @pytest.fixture
    def information(self):
        info = np.array([
            [1.0, 0.8, 0.7, 0.0, 0.1],
            [0.8, 1.0, np.nan, 0.1, 0.0],
            [0.7, np.nan, 1.0, 0.0, 0.2],
            [0.0, 0.1, 0.0, 1.0, 0.3],
            [0.1, 0.0, 0.2, 0.3, 1.0],
        ])
        return info

    def test_mean_info_skips_nan(self, information):
        upper = [0.8, 0.7, 0.0, 0.1, 0.1, 0.0, 0.0, 0.2, 0.3]
        assert calc_mean_info(information) == pytest.approx(np.mean(upper))
        assert np.isnan(calc_mean_info(np.full((2, 2), np.nan)))

    def test_cluster_mean_info(self, information):
        assert calc_cluster_mean_info(information, [0, 1, 2]) == pytest.approx(0.75)
        assert calc_cluster_mean_info(information, [3]) == 0.0
        assert calc_cluster_mean_info(information, [1, 2]) == 0.0

    def test_cluster_data_usage(self, information):
        sim = np.nan_to_num(information, nan=0.0)
        partition = Partition(sim, [[0, 1, 2], [3, 4], []])
        mean_info = calc_mean_info(information)

        data = calc_cluster_data(partition, information, mean_info)
        assert [cd.usage for cd in data] == [
            ClusterUsage.USED,
            ClusterUsage.LOWEST_SCORE,
            ClusterUsage.TOO_SMALL,
        ]
        assert data[0].mean_info == pytest.approx(0.75)
        assert np.isnan(data[2].score)

        noisy = calc_cluster_data(partition, information, mean_info, cluster_min_avg_info=2.0)
        assert noisy[0].usage == ClusterUsage.TOO_NOISY
        assert noisy[1].usage == ClusterUsage.LOWEST_SCORE


class TestClusterModel:

    def test_set_clusters(self):
        model = ClusterModel()
        model.set_clusters({10: 0, 11: 0, 12: 1}, 2, {0: "A", 1: "B"})
        assert model.cluster_sizes == [2, 1]
        assert model.cluster_name(1) == "B"
        assert model.cluster_name(5) is None
