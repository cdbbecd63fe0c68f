"""
logclust Cluster Trainer

Two passes over a stream of intervals produce a ClusterModel:

1. MessageIdCounter keeps the message ids that appear in more than
   min_appear_thresh intervals.
2. The (basic or smoothed) mutual information estimator builds the
   similarity matrix over those ids; IClust clusters it; clusters that are
   too small, too noisy or have the lowest score are filtered out and the
   rest become the model's clusters.

Usage:
    config = ClusteringConfig.from_config(num_clusters=10)
    model = ClusterTrainer(config).fit(intervals)
    model.print_user_summary(sys.stdout)
    model.message_status("IEA123I")
"""

import logging
import math
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, TextIO, Union

import numpy as np

from logclust.config import ClusteringConfig
from logclust.config.clustering import MIN_CLUSTER_SIZE
from logclust.core.exceptions import ClusteringInternalError
from logclust.engines.iclust import IClustEngine
from logclust.engines.partition import Partition

from .clustering_partition import ClusterData, ClusteringPartition, ClusterUsage
from .intervals import StreamItem, TimeSeparator
from .message_counter import MessageIdCounter
from .mutual_information import MsgMutualInformation, MsgMutualInformationSmoothed

logger = logging.getLogger(__name__)

MIN_NUM_CLUSTERS = 2

MATRIX_REPORT = "clustering.matrix.txt"
CLUSTERS_REPORT = "clustering.clusters.txt"
CLUSTER_MEMBERS_FILE = "clustering.clusterMembers.txt"
CLUSTERING_DETAILS_FILE = "clustering.clusteringDetails.txt"
CLUSTERING_CHANGES_FILE = "clustering.clusteringChanges.txt"


# =============================================================================
# Model
# =============================================================================

@dataclass
class ClusterModel:
    """Result of training: which message id belongs to which cluster."""
    mean_info: float = float("nan")
    msg_internal_id_to_cluster: Dict[int, int] = field(default_factory=dict)
    cluster_names: Dict[int, str] = field(default_factory=dict)
    cluster_sizes: List[int] = field(default_factory=list)
    actual_clusters: int = 0
    clusters_before_filtering: int = 0
    total_interval_count: int = 0
    clustered_msg_count: int = 0
    seen_msg_ids: Dict[str, int] = field(default_factory=dict)
    msg_count_above_threshold: int = 0
    msg_appear_threshold: int = 0
    converged: bool = False
    runs_summary: Optional[List[str]] = None

    def set_clusters(
        self,
        id_to_cluster: Dict[int, int],
        num: int,
        cluster_names: Optional[Dict[int, str]] = None,
    ) -> None:
        self.msg_internal_id_to_cluster = dict(id_to_cluster)
        self.actual_clusters = num
        self.cluster_sizes = [0] * num
        for cluster_id in self.msg_internal_id_to_cluster.values():
            self.cluster_sizes[cluster_id] += 1
        self.cluster_names = dict(cluster_names or {})

    @property
    def num_clusters(self) -> int:
        return self.actual_clusters

    def cluster_name(self, cluster_id: int) -> Optional[str]:
        return self.cluster_names.get(cluster_id)

    def cluster_size(self, cluster_id: int) -> int:
        return self.cluster_sizes[cluster_id]

    def message_status(self, msg_id: str) -> Dict[str, object]:
        """
        Where a message id ended up.

        Returns:
            {"status": "new"} for ids never seen in training,
            {"status": "unclustered"} for seen ids outside every used cluster,
            otherwise status "clustered" with clusterId, clusterName, clusterSize.
        """
        internal_id = self.seen_msg_ids.get(msg_id)
        if internal_id is None:
            return {"status": "new"}
        cluster_id = self.msg_internal_id_to_cluster.get(internal_id)
        if cluster_id is None or cluster_id < 0:
            return {"status": "unclustered"}
        return {
            "status": "clustered",
            "clusterId": cluster_id,
            "clusterName": self.cluster_name(cluster_id),
            "clusterSize": self.cluster_size(cluster_id),
        }

    def user_summary(self) -> str:
        lines = []
        if not math.isnan(self.mean_info):
            lines.append(f"Mean information in similarity matrix: {self.mean_info:f}")
        lines.append("Runs:")
        if self.runs_summary is None:
            lines.append("No data")
        else:
            lines.extend(f"  run {i}: {s}" for i, s in enumerate(self.runs_summary))
        lines.append(f"Resulting clusters: {self.clusters_before_filtering}")
        lines.append(f"Remaining after filtering clusters: {self.actual_clusters}")
        lines.append(f"Total intervals scanned: {self.total_interval_count}")
        lines.append(f"Total msg-ids found: {len(self.seen_msg_ids)}")
        lines.append(
            f"Total msg-ids above min appear threshold {self.msg_appear_threshold}: "
            f"{self.msg_count_above_threshold}"
        )
        lines.append(f"Total msg-ids clustered: {self.clustered_msg_count}")
        lines.append(f"Converged: {str(self.converged).lower()}")
        return "\n".join(lines) + "\n"

    def print_user_summary(self, out: TextIO = sys.stdout) -> None:
        out.write(self.user_summary())


# =============================================================================
# Cluster statistics
# =============================================================================

def calc_mean_info(information: np.ndarray) -> float:
    """Mean of the non-NaN strictly upper triangle; NaN when there is none."""
    rows, cols = np.triu_indices(information.shape[0], k=1)
    values = information[rows, cols]
    values = values[~np.isnan(values)]
    if len(values) == 0:
        return float("nan")
    return float(values.mean())


def calc_cluster_mean_info(information: np.ndarray, members: Sequence[int]) -> float:
    """Mean non-NaN information over member pairs; 0 for singletons or no data."""
    members = sorted(members)
    if len(members) == 1:
        return 0.0
    idx = np.asarray(members, dtype=np.intp)
    block = information[np.ix_(idx, idx)]
    rows, cols = np.tril_indices(len(idx), k=-1)
    values = block[rows, cols]
    values = values[~np.isnan(values)]
    if len(values) == 0:
        return 0.0
    return float(values.mean())


def calc_cluster_data(
    partition: Partition,
    information: np.ndarray,
    mean_info: float,
    cluster_min_avg_info: Optional[float] = None,
) -> List[ClusterData]:
    """
    Classify every cluster of the partition.

    Clusters below MIN_CLUSTER_SIZE are TOO_SMALL; clusters whose mean
    information is below cluster_min_avg_info * mean_info are TOO_NOISY;
    of the remaining ones (noisy included) the lowest scoring becomes
    LOWEST_SCORE. Everything else is USED.
    """
    threshold = -1.0 if cluster_min_avg_info is None else cluster_min_avg_info * mean_info
    cluster_data: List[ClusterData] = []
    lowest_score = sys.float_info.max
    lowest_index = -1

    for i in range(partition.num_clusters):
        members = sorted(partition.cluster_elements(i))
        cd = ClusterData(members=members)
        cluster_data.append(cd)
        if len(members) < MIN_CLUSTER_SIZE:
            cd.usage = ClusterUsage.TOO_SMALL
            continue

        cd.mean_info = calc_cluster_mean_info(information, members)
        if cd.mean_info < threshold:
            cd.usage = ClusterUsage.TOO_NOISY
        else:
            cd.usage = ClusterUsage.USED
        cd.score = partition.cluster_score(i)
        if cd.score < lowest_score:
            lowest_index = i
            lowest_score = cd.score

    if lowest_index >= 0:
        cluster_data[lowest_index].usage = ClusterUsage.LOWEST_SCORE
    return cluster_data


# =============================================================================
# Trainer
# =============================================================================

class ClusterTrainer:
    """
    Trains a ClusterModel from a stream of intervals.

    The stream is read twice; one-shot iterators (generators) are
    materialized into a list first.
    """

    def __init__(self, config: Optional[ClusteringConfig] = None):
        self.config = config or ClusteringConfig()
        self.model = ClusterModel()
        self.counter: Optional[MessageIdCounter] = None
        self.mutual_information: Optional[MsgMutualInformation] = None
        self.clustering_partition: Optional[ClusteringPartition] = None
        self.engine: Optional[IClustEngine] = None
        self.partition: Optional[Partition] = None
        self.cluster_data: Optional[List[ClusterData]] = None

    @property
    def trace_path(self) -> Optional[Path]:
        if not self.config.trace:
            return None
        return self.config.trace_output_path

    @staticmethod
    def _feed(target, stream: Iterable[StreamItem]) -> int:
        intervals = 0
        for item in stream:
            if isinstance(item, TimeSeparator):
                target.incoming_separator(item)
            else:
                target.incoming_object(item)
                intervals += 1
        target.end_of_stream()
        return intervals

    def fit(self, stream: Iterable[StreamItem]) -> ClusterModel:
        """Run both passes and return the trained model."""
        if iter(stream) is stream:
            stream = list(stream)
        self.model = ClusterModel()
        logger.info("Counting message ids")
        self.counter = MessageIdCounter(self.config.min_appear_thresh)
        self._feed(self.counter, stream)

        logger.info("Computing mutual information")
        self._train_mutual_information(stream)
        return self.model

    def _train_mutual_information(self, stream: Iterable[StreamItem]) -> None:
        config = self.config
        legal_ids = self.counter.legal_ids()
        if config.use_timeline:
            mi = MsgMutualInformationSmoothed(legal_ids)
        else:
            mi = MsgMutualInformation(legal_ids)
        self.mutual_information = mi

        total_intervals = 0
        seen: Dict[str, int] = {}
        for item in stream:
            if isinstance(item, TimeSeparator):
                mi.incoming_separator(item)
                continue
            mi.incoming_object(item)
            for ms in item.message_summaries:
                seen[ms.name] = ms.message_internal_id
            total_intervals += 1
        mi.end_of_stream()
        self.model.seen_msg_ids = dict(sorted(seen.items()))
        self.model.total_interval_count = total_intervals

        trace_path = self.trace_path
        if trace_path is not None:
            trace_path.mkdir(parents=True, exist_ok=True)
            mi.print_report(trace_path / MATRIX_REPORT)

        num_ids = mi.mutual_information_matrix.row_num
        max_idle_trials = num_ids if config.max_idle_trials == -1 else config.max_idle_trials
        max_trials = num_ids * 100 if config.max_trials == -1 else config.max_trials

        num_clusters = config.num_clusters
        if config.num_clusters_sqrt_num_msgs:
            num_clusters = max(MIN_NUM_CLUSTERS, int(config.sqrt_factor * math.sqrt(num_ids)))

        self.clustering_partition = ClusteringPartition(
            num_clusters, config.cluster_similarity_level, config.seed
        )
        initial_partition = None
        if config.initial_partition_occurrence:
            self.clustering_partition.create_initial_partition_by_occurrences(
                self.counter.counts, MIN_NUM_CLUSTERS, mi
            )
            initial_partition = self.clustering_partition.initial_partition
            num_clusters = self.clustering_partition.num_clusters
        if config.initial_partition_file is not None:
            self.clustering_partition.create_initial_partition_from_file(
                config.initial_partition_file, mi
            )
            initial_partition = self.clustering_partition.initial_partition
            num_clusters = self.clustering_partition.num_clusters

        if num_ids <= num_clusters:
            logger.warning(
                f"number of unique message IDs ({num_ids}) is not greater than "
                f"the number of clusters ({num_clusters})"
            )
            num_clusters = max(num_ids - 1, 0)

        if num_ids < 3:
            logger.info("Fewer than 3 messages: putting all msg-ids in one cluster")
            clusters = {msg_id: 0 for msg_id in sorted(mi.mat_index_to_msg_internal_id)}
            self.model.set_clusters(clusters, min(1, num_ids))
            return

        if initial_partition is not None:
            distinct = len(set(initial_partition))
            if not MIN_NUM_CLUSTERS <= distinct < num_ids:
                logger.warning(
                    f"Initial partition has {distinct} clusters for {num_ids} msg-ids; ignoring it"
                )
                initial_partition = None

        self._perform_clustering(num_ids, num_clusters, initial_partition, max_trials, max_idle_trials)

    def _perform_clustering(
        self,
        num_ids: int,
        num_clusters: int,
        initial_partition: Optional[List[int]],
        max_trials: int,
        max_idle_trials: int,
    ) -> None:
        config = self.config
        logger.info(f"Clustering: msg-ids: {num_ids} num-clusters: {num_clusters}")

        engine = IClustEngine(
            cluster_num=num_clusters,
            run_num=config.num_runs,
            max_iterations=max_trials,
            seed=config.seed,
            max_idle_trial_num=max_idle_trials,
            alpha=config.alpha,
            single_element_score=config.single_element_value,
            enable_empty_clusters=config.allow_empty_clusters,
            max_workers=config.max_workers,
        )
        engine.collect_runs_summary()
        engine.set_initial_partition(initial_partition)
        self.engine = engine

        information = self.mutual_information.mutual_information_matrix
        self.partition = engine.run(information)
        self._store_partition(engine, self.partition, information.to_numpy())

    def _store_partition(self, engine: IClustEngine, partition: Partition, information: np.ndarray) -> None:
        config = self.config
        mi = self.mutual_information
        ids = mi.mat_index_to_msg_internal_id

        self.model.mean_info = calc_mean_info(information)
        cluster_data = calc_cluster_data(
            partition, information, self.model.mean_info, config.cluster_min_avg_info
        )
        self.cluster_data = cluster_data

        good_clusters = 0
        clustered_msg_count = 0
        msg_to_cluster: Dict[int, int] = {}
        for cd in cluster_data:
            if cd.usage == ClusterUsage.UNKNOWN:
                raise ClusteringInternalError("Cluster left without a usage decision")
            if cd.usage != ClusterUsage.USED:
                continue
            cd.id = good_clusters
            for index in cd.members:
                msg_to_cluster[ids[index]] = cd.id
                clustered_msg_count += 1
            good_clusters += 1

        self.clustering_partition.update_clusters(cluster_data, ids)
        self.model.set_clusters(msg_to_cluster, good_clusters, self.clustering_partition.cluster_names)

        trace_path = self.trace_path
        if trace_path is not None:
            self.print_report(trace_path / CLUSTERS_REPORT, cluster_data)
            self.clustering_partition.print_clusters(trace_path / CLUSTER_MEMBERS_FILE, cluster_data, ids)
            self.clustering_partition.print_clustering_details(trace_path / CLUSTERING_DETAILS_FILE)
            self.clustering_partition.print_initial_clustering_changes(
                trace_path / CLUSTERING_CHANGES_FILE, cluster_data, ids
            )

        model = self.model
        model.runs_summary = [str(s) for s in engine.runs_summary]
        model.clustered_msg_count = clustered_msg_count
        model.clusters_before_filtering = partition.num_clusters
        model.msg_appear_threshold = config.min_appear_thresh
        model.msg_count_above_threshold = information.shape[0]
        model.converged = engine.converged
        logger.info(
            f"{good_clusters} of {partition.num_clusters} clusters kept, "
            f"{clustered_msg_count} msg-ids clustered"
        )

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    def clusters_report(self, cluster_data: Sequence[ClusterData]) -> str:
        """Clusters by descending average similarity, with a report per member."""
        mi = self.mutual_information
        lines = []
        if not math.isnan(self.model.mean_info):
            lines.append(f"Mean information in similarity matrix: {self.model.mean_info:f}\n")
        lines.append("Clusters:\n")

        def key(cd: ClusterData) -> float:
            similarity = mi.calc_similarity_sum(cd.members)
            return math.inf if math.isnan(similarity) else -similarity

        for i, cd in enumerate(sorted(cluster_data, key=key)):
            header = f"{i}. Cluster id={cd.id}, Used={cd.usage}, Size={len(cd.members)}, "
            if not math.isnan(cd.score):
                header += f"Score={cd.score:f}"
            if not math.isnan(cd.mean_info):
                header += f", meanInformation={cd.mean_info:f}"
            lines.append(header + "\n")
            for counter, member in enumerate(sorted(cd.members), start=1):
                lines.append(f"\t{counter}. " + mi.member_report(member, cd.members))
        return "".join(lines)

    def print_report(self, path: Union[str, Path], cluster_data: Sequence[ClusterData]) -> None:
        Path(path).write_text(self.clusters_report(cluster_data), encoding="utf-8")
