"""
Algorithm Core Library - filtered local PCA and correlation partitioning.

Leaf-first: eigen-decomposition and ordering, eigenpair filters, the
filtered PCA runner, k-NN windows, per-partition clustering algorithms,
and the COPAA/COPAC orchestrators that tie them together.
"""

from .eigen import EigenPair, SortedEigenPairs, eigen_decompose
from .filters import (
    FILTERS,
    EigenPairFilter,
    FilteredEigenPairs,
    FirstNEigenPairFilter,
    LimitEigenPairFilter,
    PercentageEigenPairFilter,
    RelativeEigenPairFilter,
    SignificantEigenPairFilter,
    create_filter,
)
from .covariance import StandardCovarianceMatrixBuilder
from .pca import FilteredPCAResult, PCAFilteredRunner
from .neighbors import KNNNeighborhood
from .clustering import (
    ALGORITHMS,
    Algorithm,
    ClusteringAlgorithm,
    ClusteringAlgorithmFactory,
    ClusteringResult,
    DBSCANClustering,
    KMeansClustering,
    KSubspacesClustering,
    SingleClusterClustering,
    k_subspaces,
)
from .copac import (
    COPAA,
    COPAC,
    PartitionClusteringResult,
    PartitionMap,
    PartitionResults,
)

__all__ = [
    # Eigen-decomposition
    "EigenPair",
    "SortedEigenPairs",
    "eigen_decompose",
    # Filters
    "FILTERS",
    "EigenPairFilter",
    "FilteredEigenPairs",
    "FirstNEigenPairFilter",
    "LimitEigenPairFilter",
    "PercentageEigenPairFilter",
    "RelativeEigenPairFilter",
    "SignificantEigenPairFilter",
    "create_filter",
    # PCA
    "StandardCovarianceMatrixBuilder",
    "FilteredPCAResult",
    "PCAFilteredRunner",
    "KNNNeighborhood",
    # Clustering
    "ALGORITHMS",
    "Algorithm",
    "ClusteringAlgorithm",
    "ClusteringAlgorithmFactory",
    "ClusteringResult",
    "DBSCANClustering",
    "KMeansClustering",
    "KSubspacesClustering",
    "SingleClusterClustering",
    "k_subspaces",
    # Partitioning
    "COPAA",
    "COPAC",
    "PartitionClusteringResult",
    "PartitionMap",
    "PartitionResults",
]
