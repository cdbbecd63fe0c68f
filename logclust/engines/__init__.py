"""
logclust Engines Module

Registry of the clustering engines.

Usage:
    from logclust.engines import get_engine, list_engines

    iclust = get_engine("iclust", cluster_num=8, seed=3)
    result = iclust.execute(similarity)

    for name, info in list_engines().items():
        print(f"{name}: {info['description']}")
"""

from typing import Dict, Any, Type

from logclust.core.exceptions import ConfigurationError

from .base import (
    BaseClusteringEngine,
    BasePartition,
    EngineResult,
    RunSummary,
    IClustRunSummary,
)
from .partition import Cluster, CandidateCache, Partition
from .iclust import IClustEngine
from .kmeans import KMeansEngine, KMeansPartition, DISTANCE_FUNCTIONS


# Engine registry
ENGINE_REGISTRY: Dict[str, Type[BaseClusteringEngine]] = {
    "iclust": IClustEngine,
    "kmeans": KMeansEngine,
}


# Engine metadata
ENGINE_INFO: Dict[str, Dict[str, Any]] = {
    "iclust": {
        "input": "similarity",
        "description": "Iterative local search maximizing size-weighted mean in-cluster similarity",
        "supports_initial_partition": True,
    },
    "kmeans": {
        "input": "points",
        "description": "Centroid clustering minimizing total distance to cluster means",
        "supports_initial_partition": False,
    },
}


def get_engine(name: str, **params) -> BaseClusteringEngine:
    """
    Instantiate an engine by name.

    Raises:
        ConfigurationError: If the engine is not registered
    """
    if name not in ENGINE_REGISTRY:
        raise ConfigurationError(
            f"Unknown engine: {name}. Available: {list(ENGINE_REGISTRY.keys())}"
        )
    return ENGINE_REGISTRY[name](**params)


def list_engines() -> Dict[str, Dict[str, Any]]:
    return ENGINE_INFO.copy()


__all__ = [
    "BaseClusteringEngine",
    "BasePartition",
    "EngineResult",
    "RunSummary",
    "IClustRunSummary",
    "Cluster",
    "CandidateCache",
    "Partition",
    "IClustEngine",
    "KMeansEngine",
    "KMeansPartition",
    "DISTANCE_FUNCTIONS",
    "ENGINE_REGISTRY",
    "ENGINE_INFO",
    "get_engine",
    "list_engines",
]
