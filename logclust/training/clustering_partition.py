"""
Initial partitions and cluster naming for the trainer.

An initial partition primes IClust, either from the number of intervals
each message id occurred in (ids with equal counts start together) or from
a members file written by an earlier training:

    <cluster name>\t<msg id>\t<msg id>\t...

After clustering, final clusters inherit the name of the initial cluster
they overlap most with (intersection / union above the similarity level);
the others get fresh CLUSTER_<n> names. Every naming decision is logged in
the clustering details, and the fate of each initial cluster (unchanged,
contained, split) can be reported.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from logclust.core.exceptions import ConfigurationError

from .mutual_information import MsgMutualInformation

logger = logging.getLogger(__name__)

CLUSTER_NAME_PREFIX = "CLUSTER_"


class ClusterUsage(Enum):
    """What the model does with a cluster found by IClust."""
    UNKNOWN = "UNKNOWN"
    USED = "USED"
    TOO_SMALL = "TOO_SMALL"
    LOWEST_SCORE = "LOWEST_SCORE"
    TOO_NOISY = "TOO_NOISY"

    def __str__(self) -> str:
        return self.value


@dataclass
class ClusterData:
    """One final cluster: its matrix indices, usage and statistics."""
    members: List[int]
    usage: ClusterUsage = ClusterUsage.UNKNOWN
    id: int = -1
    score: float = float("nan")
    mean_info: float = float("nan")


@dataclass
class ClusterMeasures:
    name: Optional[str] = None
    measure: float = float("nan")
    intersection: int = 0


def _bracket_list(items) -> str:
    return "[" + ", ".join(str(x) for x in items) + "]"


class ClusteringPartition:
    """Initial partition construction and final cluster naming."""

    def __init__(self, num_clusters: int, cluster_similarity_level: float = 0.5, seed: int = 0):
        self.num_clusters = num_clusters
        self.cluster_similarity_level = cluster_similarity_level
        self._rng = np.random.default_rng(seed)
        self.initial_clusters: Optional[Dict[str, List[int]]] = None
        self.final_clusters: Optional[Dict[str, List[int]]] = None
        self._final_cluster_names: Dict[int, str] = {}
        self._initial_partition: Optional[List[int]] = None
        self.initial_partition_file: Optional[Path] = None
        self.clustering_details: List[str] = []

    # -------------------------------------------------------------------------
    # Initial partitions
    # -------------------------------------------------------------------------

    @property
    def initial_partition(self) -> Optional[List[int]]:
        return None if self._initial_partition is None else list(self._initial_partition)

    @initial_partition.setter
    def initial_partition(self, labels: Optional[Sequence[int]]) -> None:
        self._initial_partition = None if labels is None else [int(x) for x in labels]

    def create_initial_partition_by_occurrences(
        self,
        occurrence_counts: Mapping[int, int],
        min_num_clusters: int,
        mutual_information: MsgMutualInformation,
    ) -> None:
        """Ids with the same occurrence count start in the same cluster."""
        self.initial_partition_file = None
        ids = mutual_information.mat_index_to_msg_internal_id
        labels = [int(occurrence_counts.get(msg_id, 0)) for msg_id in ids]
        distinct = len(set(labels))
        if distinct >= min_num_clusters:
            self.num_clusters = distinct
            self._initial_partition = labels
        else:
            self.num_clusters = min_num_clusters
            self._initial_partition = None
        logger.info(f"Occurrence-based initial partition: {self.num_clusters} clusters")

    def create_initial_partition_from_file(
        self, path: Union[str, Path], mutual_information: MsgMutualInformation
    ) -> None:
        """
        Read a members file; ids it does not mention are spread over added clusters.

        Raises:
            ConfigurationError: If the file cannot be read
        """
        path = Path(path)
        self.initial_partition_file = path
        num_ids = mutual_information.mutual_information_matrix.row_num
        labels = [-1] * num_ids
        cluster_index = -1
        num_clusters = self.num_clusters
        self.initial_clusters = {}

        try:
            with open(path, encoding="utf-8") as f:
                lines = f.read().splitlines()
        except OSError as e:
            logger.error(f"Error reading the file {path}: {e}")
            raise ConfigurationError(f"Cannot read initial partition file {path}: {e}") from e

        for line in lines:
            if not line.strip():
                continue
            cluster_index += 1
            fields = [x for x in line.split("\t") if x != ""]
            name, tokens = fields[0], fields[1:]
            members = []
            for token in tokens:
                msg_id = int(token)
                index = mutual_information.index_of_msg_id(msg_id)
                if index != -1:
                    labels[index] = cluster_index
                    members.append(msg_id)
            if members:
                self.initial_clusters[name] = members

        unclustered = [i for i in range(num_ids) if labels[i] == -1]
        # leftover ids need at least one cluster beyond those in the file
        if unclustered and cluster_index >= num_clusters - 1:
            num_clusters = cluster_index + 2
            logger.info(f"Number of clusters set to be {num_clusters}")

        self._rng.shuffle(unclustered)
        num_empty = num_clusters - cluster_index - 1
        for i in range(min(num_empty, len(unclustered))):
            cluster_index += 1
            for j in range(i, len(unclustered), num_empty):
                labels[unclustered[j]] = cluster_index

        self.num_clusters = cluster_index + 1
        logger.info(f"Number of clusters for the initial IClust partition is {self.num_clusters}")
        self._initial_partition = labels

    # -------------------------------------------------------------------------
    # Naming
    # -------------------------------------------------------------------------

    def _find_cluster_name(self, members: Sequence[int], ids: Sequence[int]) -> ClusterMeasures:
        if self.initial_clusters is None:
            return ClusterMeasures()
        for name, initial in self.initial_clusters.items():
            initial_set = set(initial)
            intersection = sum(1 for m in members if ids[m] in initial_set)
            union = len(initial) + len(members) - intersection
            ratio = intersection / union
            if ratio > self.cluster_similarity_level:
                return ClusterMeasures(name, ratio, intersection)
        return ClusterMeasures()

    def _find_new_name(self, names: Mapping[str, List[int]]) -> str:
        index = 0
        while True:
            name = f"{CLUSTER_NAME_PREFIX}{index}"
            if name not in names and name not in (self.initial_clusters or {}):
                return name
            index += 1

    @staticmethod
    def _solve_duplicated_name(name: str, names: Mapping[str, List[int]]) -> str:
        index = 1
        while f"{name}_{index}" in names:
            index += 1
        return f"{name}_{index}"

    def _add_details(
        self,
        previous_name: Optional[str],
        previous_members: Optional[Sequence[int]],
        name: str,
        measures: ClusterMeasures,
        members: Sequence[int],
        ids: Sequence[int],
    ) -> None:
        current = "".join(f"{ids[m]} " for m in members)
        if previous_name is None:
            self.clustering_details.append(f"Create new cluster: {name} [{current}]")
        else:
            previous = "".join(f"{m} " for m in previous_members)
            self.clustering_details.append(
                f"{previous_name} [{previous}] -> {name} [{current}] "
                f"measure: {measures.measure} intersection: {measures.intersection}"
            )

    def update_clusters(self, cluster_data: Sequence[ClusterData], ids: Sequence[int]) -> None:
        """Name every USED cluster; ids maps matrix index -> message internal id."""
        names: Dict[str, List[int]] = {}
        self._final_cluster_names = {}
        count = 0
        for cd in cluster_data:
            if cd.usage != ClusterUsage.USED:
                continue
            members = sorted(cd.members)
            if self.initial_clusters is None:
                name = f"{CLUSTER_NAME_PREFIX}{count}"
                count += 1
            else:
                measures = self._find_cluster_name(members, ids)
                if measures.name is None:
                    name = self._find_new_name(names)
                    self._add_details(None, None, name, measures, members, ids)
                else:
                    name = measures.name
                    if name in names:
                        name = self._solve_duplicated_name(name, names)
                    self._add_details(
                        measures.name, self.initial_clusters[measures.name],
                        name, measures, members, ids,
                    )
            names[name] = members
            self._final_cluster_names[cd.id] = name
        self.final_clusters = names

    def cluster_name(self, cluster_id: int) -> Optional[str]:
        return self._final_cluster_names.get(cluster_id)

    @property
    def cluster_names(self) -> Dict[int, str]:
        return dict(self._final_cluster_names)

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    def _ensure_final(self, cluster_data: Sequence[ClusterData], ids: Sequence[int]) -> None:
        if self.final_clusters is None:
            self.update_clusters(cluster_data, ids)

    def members_text(self, cluster_data: Sequence[ClusterData], ids: Sequence[int]) -> str:
        """Members file content: one line per named cluster."""
        self._ensure_final(cluster_data, ids)
        lines = []
        for name, members in self.final_clusters.items():
            lines.append(f"{name}\t" + "".join(f"{ids[m]}\t" for m in members))
        return "\n".join(lines) + ("\n" if lines else "")

    def print_clusters(self, path: Union[str, Path], cluster_data: Sequence[ClusterData], ids: Sequence[int]) -> None:
        Path(path).write_text(self.members_text(cluster_data, ids), encoding="utf-8")

    def print_clustering_details(self, path: Union[str, Path]) -> None:
        Path(path).write_text(
            "".join(f"{line}\n" for line in self.clustering_details), encoding="utf-8"
        )

    def initial_clustering_changes(
        self, cluster_data: Sequence[ClusterData], ids: Sequence[int]
    ) -> Optional[str]:
        """What happened to every initial cluster, or None without an initial file."""
        if self.initial_clusters is None:
            return None
        self._ensure_final(cluster_data, ids)

        lines = []
        no_change = 0
        contained = 0
        for name, members in self.initial_clusters.items():
            member_set = set(members)
            line = f"{name} {_bracket_list(members)} "
            touched = []
            split = True
            for new_name, new_members in self.final_clusters.items():
                overlap = sum(1 for m in new_members if ids[m] in member_set)
                if overlap:
                    touched.append(new_name)
                if overlap == len(members):
                    split = False
                    if len(members) == len(new_members):
                        line += " did not change."
                        no_change += 1
                    else:
                        line += f" is contained in {new_name}."
                        contained += 1
                    break
            if split:
                line += f"split to {len(touched)} clusters: {_bracket_list(touched)}"
            lines.append(line)

        lines.append("Summary:")
        lines.append(f"{no_change} clusters did not change.")
        lines.append(f"{contained} clusters are contained.")
        lines.append(f"{len(self.initial_clusters) - no_change - contained} clusters split.")
        return "\n".join(lines) + "\n"

    def print_initial_clustering_changes(
        self, path: Union[str, Path], cluster_data: Sequence[ClusterData], ids: Sequence[int]
    ) -> None:
        text = self.initial_clustering_changes(cluster_data, ids)
        if text is not None:
            Path(path).write_text(text, encoding="utf-8")
