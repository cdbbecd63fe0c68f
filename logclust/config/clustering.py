"""
Trainer configuration.

ClusteringConfig holds every knob of ClusterTrainer. Values come from the
dataclass defaults, overridden by the "clustering" YAML file, overridden by
explicit keyword arguments.
"""

import logging
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Any, Dict, Optional

from logclust.core.exceptions import ConfigurationError

from . import ConfigLoader

logger = logging.getLogger(__name__)

# Clusters with fewer members are never used by a model.
MIN_CLUSTER_SIZE = 2


@dataclass
class ClusteringConfig:
    """Parameters of the two-pass clustering trainer."""

    num_clusters: int = 30
    num_clusters_sqrt_num_msgs: bool = False
    sqrt_factor: float = 1.0
    num_runs: int = 5
    seed: int = 0
    max_trials: int = -1           # -1: 100 x number of message ids
    max_idle_trials: int = -1      # -1: number of message ids
    alpha: float = 0.1
    min_appear_thresh: int = 3
    cluster_min_avg_info: Optional[float] = None
    initial_partition_occurrence: bool = False
    initial_partition_file: Optional[Path] = None
    single_element_value: float = -1.0
    allow_empty_clusters: bool = False
    cluster_similarity_level: float = 0.5
    use_timeline: bool = False
    trace: bool = False
    trace_output_path: Optional[Path] = None
    max_workers: Optional[int] = 1

    def __post_init__(self):
        if self.initial_partition_file is not None:
            self.initial_partition_file = Path(self.initial_partition_file)
        if self.trace_output_path is not None:
            self.trace_output_path = Path(self.trace_output_path)
        self.validate()

    def validate(self) -> None:
        if self.initial_partition_file is not None and self.initial_partition_occurrence:
            raise ConfigurationError(
                "Two kinds of initial partition were defined: "
                f"occurrence-based and file {self.initial_partition_file}"
            )
        if self.num_runs < 1:
            raise ConfigurationError(f"num_runs must be at least 1, got {self.num_runs}")
        if self.sqrt_factor <= 0:
            raise ConfigurationError(f"sqrt_factor must be positive, got {self.sqrt_factor}")
        if not 0.0 <= self.cluster_similarity_level <= 1.0:
            raise ConfigurationError(
                f"cluster_similarity_level must be in [0, 1], got {self.cluster_similarity_level}"
            )
        if self.min_appear_thresh < 0:
            raise ConfigurationError(
                f"min_appear_thresh must be non-negative, got {self.min_appear_thresh}"
            )
        if self.trace and self.trace_output_path is None:
            raise ConfigurationError("trace is on but no trace_output_path was given")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "ClusteringConfig":
        """Build from a mapping; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown clustering configuration keys: {unknown}. Valid keys: {sorted(known)}"
            )
        return cls(**values)

    @classmethod
    def from_config(cls, name: str = "clustering", **overrides) -> "ClusteringConfig":
        """Load the named YAML file (if present) and apply overrides on top."""
        loader = ConfigLoader()
        values: Dict[str, Any] = {}
        if loader.exists(name):
            values.update(loader.load(name))
        else:
            logger.warning(f"Config {name} not found, using built-in defaults")
        values.update(overrides)
        return cls.from_dict(values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        lines = [f"{k}: {v}" for k, v in self.to_dict().items()]
        lines.append(f"minimal cluster size: {MIN_CLUSTER_SIZE}")
        return "\n".join(lines)
