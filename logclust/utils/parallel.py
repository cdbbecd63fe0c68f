"""
logclust Parallel Runs

Independent clustering runs share nothing but the read-only similarity
matrix, so they can be mapped over worker processes. Each run stays
strictly sequential inside its worker.

Results always come back in input order, so a reduction over them gives
the same answer whether the map ran serially or in parallel.

Usage:
    from logclust.utils.parallel import run_parallel

    results = run_parallel(run_fn, tasks)                 # auto-tuned workers
    results = run_parallel(run_fn, tasks, max_workers=4)  # capped
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import os
import pickle
from typing import Callable, List, Optional, Sequence, TypeVar

import psutil

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# Minimum RAM (in GB) required before worker processes are spawned
MIN_RAM_GB_FOR_PARALLEL = 2.0


def get_cpu_count() -> int:
    """Number of logical CPUs, minimum 1."""
    return psutil.cpu_count(logical=True) or os.cpu_count() or 1


def get_available_memory_gb() -> float:
    """Currently available system memory in GB."""
    return psutil.virtual_memory().available / (1024 ** 3)


def get_optimal_workers(n_items: int, max_workers: Optional[int] = None) -> int:
    """
    Number of worker processes for n_items independent tasks.

    Leaves one CPU for the parent on machines with more than two CPUs and
    never starts more workers than there are tasks.
    """
    cpu = get_cpu_count()
    workers = cpu - 1 if cpu > 2 else 1
    if max_workers is not None:
        workers = min(workers, max_workers)
    return max(1, min(workers, n_items))


def should_use_parallel(
    n_items: int,
    max_workers: Optional[int] = None,
    min_ram_gb: float = MIN_RAM_GB_FOR_PARALLEL,
) -> bool:
    """True when more than one worker would be used and memory allows it."""
    if max_workers is not None and max_workers <= 1:
        return False
    if get_optimal_workers(n_items, max_workers) <= 1:
        return False
    return get_available_memory_gb() >= min_ram_gb


def run_parallel(
    fn: Callable[[T], R],
    items: Sequence[T],
    max_workers: Optional[int] = None,
    force_serial: bool = False,
) -> List[R]:
    """
    Apply fn to every item, in worker processes when worthwhile.

    Args:
        fn: Module-level (picklable) function.
        items: Task descriptions; must be picklable as well.
        max_workers: Optional cap on worker processes (1 = serial).
        force_serial: Always run in the calling process.

    Returns:
        Results in the same order as items.
    """
    items_list = list(items)
    if not items_list:
        return []

    if force_serial or not should_use_parallel(len(items_list), max_workers):
        return [fn(item) for item in items_list]

    workers = get_optimal_workers(len(items_list), max_workers)
    logger.debug(f"Running {len(items_list)} tasks on {workers} workers")

    try:
        with mp.Pool(processes=workers) as pool:
            return list(pool.map(fn, items_list))
    except (OSError, mp.ProcessError, pickle.PicklingError) as e:
        logger.warning(f"Parallel execution unavailable ({e}); running serially")
        return [fn(item) for item in items_list]
