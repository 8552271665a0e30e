"""
COPAC - Core Package

Estimates the local correlation dimensionality of every object in a vector
dataset with filtered local PCA, partitions the dataset by that
dimensionality, and runs a clustering algorithm on each partition.

This package provides:
- Filtered PCA (eigen-decomposition, eigenpair filters, clamped results)
- COPAA/COPAC partitioning orchestrators
- Per-partition clustering algorithms and a factory to select them
- Environment-based configuration and a command line entry point
"""

__version__ = "0.1.0"

from .database import Dataset
from .errors import (
    COPACError,
    FatalStateError,
    NumericError,
    OrchestrationCancelled,
    ParameterError,
)
from .algorithms import (
    COPAA,
    COPAC,
    FilteredPCAResult,
    PartitionClusteringResult,
    PartitionMap,
    PCAFilteredRunner,
)

# Explicitly import subpackages to ensure they're discoverable
from . import algorithms
from . import utils

__all__ = [
    "Dataset",
    "COPACError",
    "FatalStateError",
    "NumericError",
    "OrchestrationCancelled",
    "ParameterError",
    "COPAA",
    "COPAC",
    "FilteredPCAResult",
    "PartitionClusteringResult",
    "PartitionMap",
    "PCAFilteredRunner",
    "algorithms",
    "utils",
]
