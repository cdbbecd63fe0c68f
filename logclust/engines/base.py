"""
logclust Engine Base Class

All clustering engines inherit from this base class.
Provides the common contract:
- cluster count (-1 derives round(sqrt(N)) from the input)
- number of independent runs and their seed
- per-run iteration cap
- optional initial partition
- run summaries, as objects or as a DataFrame

Architecture:
    Engine reads:    a similarity matrix (IClust) or a point matrix (K-Means)
    Engine returns:  a partition of the N rows into clusters
    execute() wraps run() with timing, logging and metrics
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set

import pandas as pd

from logclust.core.exceptions import ConfigurationError
from logclust.core.matrix import MatrixLike


logger = logging.getLogger(__name__)


# =============================================================================
# Run summaries
# =============================================================================

@dataclass(frozen=True)
class RunSummary:
    """Statistics of one independent clustering run."""
    score: float
    iterations: int
    time_ms: int
    seed: int

    def __str__(self) -> str:
        return (
            f"[Clustering run: score={self.score:f}, "
            f"time(in seconds)={self.time_ms / 1000:5.2f}, "
            f"iterations={self.iterations}, seed={self.seed}]"
        )

    def csv_string(self) -> str:
        return f"{self.score:f}, {self.time_ms}, {self.iterations}, {self.seed}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class IClustRunSummary(RunSummary):
    """IClust run: iterations are trials, plus the idle trials at stop time."""
    idle_trials: int = 0

    def __str__(self) -> str:
        return (
            f"[IClust run: score={self.score:f} trials={self.iterations} "
            f"idleTrials={self.idle_trials} time(seconds)={self.time_ms / 1000:5.2f} "
            f"seed={self.seed}]"
        )

    def csv_string(self) -> str:
        return f"{super().csv_string()}, {self.idle_trials}"


# =============================================================================
# Engine result
# =============================================================================

@dataclass
class EngineResult:
    """Result of an engine execution."""
    engine_name: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    partition: Any = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def runtime_seconds(self) -> float:
        if self.completed_at and self.started_at:
            return (self.completed_at - self.started_at).total_seconds()
        return 0.0

    def summary(self) -> str:
        """Human-readable summary."""
        lines = [
            f"Engine: {self.engine_name}",
            f"Runtime: {self.runtime_seconds:.2f}s",
        ]
        if self.parameters:
            lines.append(f"Parameters: {self.parameters}")
        if self.metrics:
            lines.append(f"Metrics: {self.metrics}")
        return "\n".join(lines)


# =============================================================================
# Partition contract
# =============================================================================

class BasePartition(ABC):
    """Read-only view shared by the partitions of every engine."""

    @property
    @abstractmethod
    def score(self) -> float:
        pass

    @property
    @abstractmethod
    def cluster_indices(self) -> List[int]:
        """Cluster index of every element (a copy)."""
        pass

    @property
    @abstractmethod
    def num_clusters(self) -> int:
        pass

    @abstractmethod
    def cluster_score(self, cluster_index: int) -> float:
        pass

    @property
    def num_elements(self) -> int:
        return len(self.cluster_indices)

    def cluster_of_element(self, index: int) -> int:
        return self.cluster_indices[index]

    def cluster_elements(self, cluster_index: int) -> Set[int]:
        return {i for i, c in enumerate(self.cluster_indices) if c == cluster_index}

    def cluster_size(self, cluster_index: int) -> int:
        """Number of members, or -1 for an index outside [0, num_clusters)."""
        if not 0 <= cluster_index < self.num_clusters:
            return -1
        return len(self.cluster_elements(cluster_index))


# =============================================================================
# Engine
# =============================================================================

class BaseClusteringEngine(ABC):
    """
    Abstract base class for logclust clustering engines.

    Subclasses must implement:
        - name: Engine identifier
        - run(): Produce the best partition over run_num independent runs

    Usage:
        engine = IClustEngine(cluster_num=4, seed=7)
        engine.collect_runs_summary()
        partition = engine.run(similarity)
        print(engine.runs_summary_frame())
    """

    name: str = "base"
    default_seed: int = 0
    default_run_num: int = 10
    default_max_iterations: Optional[int] = None

    def __init__(
        self,
        cluster_num: int = -1,
        run_num: Optional[int] = None,
        max_iterations: Optional[int] = None,
        seed: Optional[int] = None,
    ):
        self.cluster_num = cluster_num
        self.run_num = self.default_run_num if run_num is None else run_num
        self.max_iterations = (
            self.default_max_iterations if max_iterations is None else max_iterations
        )
        self.seed = self.default_seed if seed is None else seed
        self._runs_summary: Optional[List[RunSummary]] = None
        if self.run_num < 1:
            raise ConfigurationError(f"run_num must be at least 1, got {self.run_num}")

    # -------------------------------------------------------------------------
    # Contract
    # -------------------------------------------------------------------------

    @abstractmethod
    def run(self, matrix: MatrixLike) -> BasePartition:
        """Cluster the rows of matrix and return the best partition found."""
        pass

    def set_initial_partition(self, labels: Optional[Sequence[int]]) -> None:
        raise NotImplementedError

    def collect_runs_summary(self) -> None:
        """Turn on run summary collection for the following run() calls."""
        self._runs_summary = []

    @property
    def runs_summary(self) -> Optional[List[RunSummary]]:
        return self._runs_summary

    def runs_summary_frame(self) -> pd.DataFrame:
        """Run summaries of the last run() as a DataFrame (one row per run)."""
        if not self._runs_summary:
            return pd.DataFrame(columns=["score", "iterations", "time_ms", "seed"])
        return pd.DataFrame([s.to_dict() for s in self._runs_summary])

    def resolve_cluster_num(self, num_elements: int) -> int:
        if self.cluster_num < 0:
            return int(round(math.sqrt(num_elements)))
        return self.cluster_num

    def parameters(self) -> Dict[str, Any]:
        return {
            "cluster_num": self.cluster_num,
            "run_num": self.run_num,
            "max_iterations": self.max_iterations,
            "seed": self.seed,
        }

    # -------------------------------------------------------------------------
    # Run Orchestration
    # -------------------------------------------------------------------------

    def execute(self, matrix: MatrixLike) -> EngineResult:
        """
        Run the engine with timing, logging and metrics.

        Errors are logged and re-raised; no partial result is returned.
        """
        result = EngineResult(
            engine_name=self.name,
            started_at=datetime.now(),
            parameters=self.parameters(),
        )
        try:
            logger.info(f"Running {self.name} ({self.run_num} runs)")
            partition = self.run(matrix)
            result.partition = partition
            result.metrics = self.metrics(matrix, partition)
        except Exception as e:
            logger.exception(f"Engine {self.name} failed: {e}")
            raise
        finally:
            result.completed_at = datetime.now()

        logger.info(
            f"{self.name} complete: score={result.metrics.get('score', float('nan')):.4f} "
            f"in {result.runtime_seconds:.2f}s"
        )
        return result

    def metrics(self, matrix: MatrixLike, partition: BasePartition) -> Dict[str, Any]:
        """Summary statistics of a finished partition."""
        sizes = [partition.cluster_size(c) for c in range(partition.num_clusters)]
        return {
            "score": float(partition.score),
            "n_elements": partition.num_elements,
            "n_clusters": partition.num_clusters,
            "cluster_sizes": sizes,
            "n_runs": len(self._runs_summary) if self._runs_summary is not None else None,
        }
