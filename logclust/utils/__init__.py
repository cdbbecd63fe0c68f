"""
logclust Utilities

Logging setup and the parallel map used for independent clustering runs.
"""

from .logging import setup_logging, get_logger
from .parallel import run_parallel, get_optimal_workers

__all__ = [
    "setup_logging",
    "get_logger",
    "run_parallel",
    "get_optimal_workers",
]
