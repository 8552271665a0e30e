"""
Pytest configuration and shared fixtures.

This file is automatically discovered by pytest and provides fixtures
available to all test modules.
"""

import numpy as np
import pytest

from copac.algorithms.clustering import ClusteringAlgorithm
from copac.database import Dataset


class RecordingClustering(ClusteringAlgorithm):
    """Single-cluster algorithm that remembers every dataset it was run on."""

    name = "recording"

    def __init__(self):
        super().__init__()
        self.calls = []

    def run(self, dataset):
        self.calls.append(dataset)
        super().run(dataset)

    def _cluster(self, X):
        return np.zeros(X.shape[0], dtype=np.int64), {"objective": 0.0}


class FixedNeighborhood:
    """Neighborhood stub returning precomputed windows."""

    def __init__(self, windows):
        self.windows = windows

    def neighborhoods(self, dataset):
        return self.windows


@pytest.fixture
def recording_algorithm():
    """Fresh recording clustering algorithm."""
    return RecordingClustering()


@pytest.fixture
def two_lines_dataset():
    """
    Six 2-D points: three on y = x near the origin and three on y = -x
    around (10, 0). With k=3 every window is one of the two lines.
    """
    X = np.array(
        [
            [0.0, 0.0],
            [0.1, 0.1],
            [0.2, 0.2],
            [10.0, 0.0],
            [10.1, -0.1],
            [10.2, -0.2],
        ]
    )
    return Dataset(X)


@pytest.fixture
def isotropic_dataset():
    """300 points from a standard 3-D Gaussian."""
    rng = np.random.default_rng(42)
    return Dataset(rng.standard_normal((300, 3)))


@pytest.fixture
def mixed_dataset():
    """
    A line and a plane in 3-D, far apart, both sampled on a regular grid.

    Ids 0..29 lie on the line, ids 30..150 on an 11x11 grid in the plane
    z = 20. With k = 9 every window stays on its own manifold.
    """
    t = np.linspace(-1.0, 1.0, 30)
    line = np.outer(t, [1.0, 1.0, 0.0])
    u, v = np.meshgrid(np.arange(11) * 0.2, np.arange(11) * 0.2)
    plane = np.column_stack([u.ravel(), v.ravel(), np.zeros(121)])
    plane += np.array([20.0, 20.0, 20.0])
    return Dataset(np.vstack([line, plane]))


@pytest.fixture
def fixed_neighborhood():
    """The FixedNeighborhood class, for tests that hand-craft windows."""
    return FixedNeighborhood


@pytest.fixture
def random_symmetric():
    """A random 5x5 symmetric positive-semidefinite matrix."""
    rng = np.random.default_rng(0)
    A = rng.standard_normal((5, 5))
    return A @ A.T


COPAC_ENV_VARS = (
    "COPAC_FILTER",
    "COPAC_FILTER_THRESHOLD",
    "COPAC_BIG_EIGENVALUE",
    "COPAC_SMALL_EIGENVALUE",
    "COPAC_K",
    "COPAC_PARTITION_ALGORITHM",
    "COPAC_MAX_WORKERS",
    "COPAC_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_copac_env(monkeypatch):
    """Keep COPAC_* settings from the developer's shell out of the tests."""
    for name in COPAC_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
