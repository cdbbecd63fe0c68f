"""
Shared fixtures for the logclust test suite.
"""

import numpy as np
import pytest

from logclust.config import ConfigLoader, CONFIG_DIR_ENV
from logclust.training import Interval, TimeSeparator


# =============================================================================
# Similarity matrices
# =============================================================================

@pytest.fixture
def block_similarity():
    """Two blocks of three: 0.9 within, 0.1 across, 1.0 on the diagonal."""
    sim = np.full((6, 6), 0.1)
    sim[:3, :3] = 0.9
    sim[3:, 3:] = 0.9
    np.fill_diagonal(sim, 1.0)
    return sim


@pytest.fixture
def noisy_blocks():
    """Three blocks of five with symmetric noise; returns (similarity, true labels)."""
    rng = np.random.default_rng(42)
    labels = np.repeat([0, 1, 2], 5)
    n = len(labels)
    sim = np.where(labels[:, None] == labels[None, :], 0.8, -0.2)
    noise = rng.normal(0, 0.05, size=(n, n))
    sim = sim + (noise + noise.T) / 2
    np.fill_diagonal(sim, 1.0)
    return sim, labels


@pytest.fixture
def random_similarity():
    """Random symmetric, diagonally dominant 20x20 matrix with a few NaN pairs."""
    rng = np.random.default_rng(7)
    n = 20
    values = rng.uniform(-0.5, 0.5, size=(n, n))
    sim = (values + values.T) / 2
    np.fill_diagonal(sim, 1.0)
    for i, j in [(1, 4), (7, 12), (3, 18)]:
        sim[i, j] = sim[j, i] = np.nan
    return sim


# =============================================================================
# Interval streams
# =============================================================================

@pytest.fixture
def cyclic_intervals():
    """
    24 intervals cycling through three groups of message ids.

    {1, 2, 3}, {4, 5, 6} and {7, 8} never overlap; id 9 shows up only twice,
    below the default appearance threshold.
    """
    groups = [(1, 2, 3), (4, 5, 6), (7, 8)]
    intervals = [Interval.of(*groups[k % 3]) for k in range(24)]
    intervals[0] = Interval.of(1, 2, 3, 9)
    intervals[4] = Interval.of(4, 5, 6, 9)
    return intervals


@pytest.fixture
def cyclic_stream(cyclic_intervals):
    """The cyclic intervals with a separator in the middle."""
    stream = list(cyclic_intervals)
    stream.insert(12, TimeSeparator("gap"))
    return stream


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    """Empty configuration directory picked up through the environment."""
    directory = tmp_path / "config"
    directory.mkdir()
    monkeypatch.setenv(CONFIG_DIR_ENV, str(directory))
    ConfigLoader().clear_cache()
    yield directory
    ConfigLoader().clear_cache()
