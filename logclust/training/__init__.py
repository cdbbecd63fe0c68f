"""
logclust Training

Two-pass training of message-id clusters from a stream of intervals.

Usage:
    from logclust.training import ClusterTrainer, Interval, MessageSummary

    intervals = [Interval.of(1, 2, 5), Interval.of(1, 2), ...]
    model = ClusterTrainer().fit(intervals)
    model.message_status("5")
"""

from .intervals import (
    TIMELINE_RESOLUTION,
    MessageSummary,
    Interval,
    TimeSeparator,
    StreamItem,
    IntervalStream,
)
from .message_counter import MessageIdCounter
from .mutual_information import (
    IndexMap,
    MsgMutualInformation,
    MsgMutualInformationSmoothed,
    signed_mutual_information,
)
from .clustering_partition import (
    CLUSTER_NAME_PREFIX,
    ClusterUsage,
    ClusterData,
    ClusteringPartition,
)
from .trainer import (
    ClusterModel,
    ClusterTrainer,
    calc_cluster_data,
    calc_mean_info,
    calc_cluster_mean_info,
)

__all__ = [
    "TIMELINE_RESOLUTION",
    "MessageSummary",
    "Interval",
    "TimeSeparator",
    "StreamItem",
    "IntervalStream",
    "MessageIdCounter",
    "IndexMap",
    "MsgMutualInformation",
    "MsgMutualInformationSmoothed",
    "signed_mutual_information",
    "CLUSTER_NAME_PREFIX",
    "ClusterUsage",
    "ClusterData",
    "ClusteringPartition",
    "ClusterModel",
    "ClusterTrainer",
    "calc_cluster_data",
    "calc_mean_info",
    "calc_cluster_mean_info",
]
