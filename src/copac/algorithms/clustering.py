"""
Clustering algorithms run on each partition.

Every algorithm follows the same two-step contract: ``run(dataset)`` then
``get_result()``. The partitioning orchestrator only relies on that
contract, so any algorithm registered here (or any subclass of
``ClusteringAlgorithm``) can be used per partition.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Type

import numpy as np
from sklearn.cluster import DBSCAN, KMeans

from ..database import Dataset
from ..errors import FatalStateError, ParameterError
from .neighbors import validate_metric

Array2D = np.ndarray

NOISE = -1


@dataclass
class ClusteringResult:
    """Result of a single clustering run."""

    labels: np.ndarray
    objective: float
    n_iter: int = 0
    metadata: Dict[str, Any] = None
    ids: Optional[np.ndarray] = None

    def __post_init__(self):
        """Initialize metadata and ids if None."""
        if self.metadata is None:
            self.metadata = {}
        self.labels = np.asarray(self.labels, dtype=np.int64)
        if self.ids is None:
            self.ids = np.arange(len(self.labels), dtype=np.int64)
        else:
            self.ids = np.asarray(self.ids, dtype=np.int64)
        if self.ids.shape != self.labels.shape:
            raise FatalStateError(
                f"{len(self.labels)} labels for {len(self.ids)} object ids"
            )

    @property
    def n_clusters(self) -> int:
        """Number of clusters, noise excluded."""
        return int(len(np.unique(self.labels[self.labels != NOISE])))

    @property
    def n_noise(self) -> int:
        return int(np.sum(self.labels == NOISE))

    def clusters(self) -> Dict[int, List[int]]:
        """Cluster label -> object ids, labels ascending (noise as -1)."""
        out: Dict[int, List[int]] = {}
        for label in np.unique(self.labels):
            out[int(label)] = [int(i) for i in self.ids[self.labels == label]]
        return out


class Algorithm(ABC):
    """Anything that can be run on a dataset and report a result."""

    name: str = "algorithm"

    def __init__(self):
        self._result = None

    @abstractmethod
    def run(self, dataset: Dataset) -> None:
        """Run on ``dataset``; the outcome is available from ``get_result``."""

    def get_result(self):
        if self._result is None:
            raise FatalStateError(f"{type(self).__name__} has not been run")
        return self._result

    def get_params(self) -> Dict[str, Any]:
        return {}

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v!r}" for k, v in self.get_params().items())
        return f"{type(self).__name__}({params})"


class ClusteringAlgorithm(Algorithm):
    """Algorithm whose result is a ``ClusteringResult`` over the input ids."""

    name = "clustering"

    def run(self, dataset: Dataset) -> None:
        self._result = None
        X = dataset.vectors
        if len(dataset) == 0:
            labels, info = np.empty(0, dtype=np.int64), {"objective": 0.0, "n_iter": 0}
        else:
            labels, info = self._cluster(X)
        info = dict(info)
        self._result = ClusteringResult(
            labels=labels,
            objective=float(info.pop("objective", np.nan)),
            n_iter=int(info.pop("n_iter", 0)),
            metadata={"algorithm": self.name, **info},
            ids=np.array(dataset.ids),
        )

    def get_result(self) -> ClusteringResult:
        return super().get_result()

    @abstractmethod
    def _cluster(self, X: Array2D) -> Tuple[np.ndarray, Dict[str, Any]]:
        """Return labels for the rows of ``X`` and an info dict."""


def k_subspaces(
    X: Array2D, K: int, *, rank_r: int = 1, seed: int = 0, max_iter: int = 200
) -> tuple[np.ndarray, Dict[str, Any]]:
    """
    K-subspaces clustering with rank-r approximation.

    Clusters data into K groups, where each cluster is represented by a rank-r
    affine subspace (mean + r principal directions). Minimizes reconstruction
    error, which suits partitions whose objects share a correlation dimension.

    Args:
        X: Input data of shape (n_samples, n_features)
        K: Number of clusters
        rank_r: Rank of subspace approximation per cluster (default: 1)
        seed: Random seed for initialization
        max_iter: Maximum iterations for convergence

    Returns:
        Tuple of:
        - labels: Cluster assignments of shape (n_samples,)
        - info: Dictionary with objective and n_iter

    Raises:
        ValueError: If K > n_samples or K < 1
    """
    rng = np.random.default_rng(seed)
    n, d = X.shape

    if K > n:
        raise ValueError(f"K ({K}) cannot exceed number of samples ({n})")
    if K < 1:
        raise ValueError(f"K must be >= 1, got {K}")

    r = int(max(1, min(rank_r, d)))
    labels = rng.permutation(np.arange(n) % K)
    mus = np.zeros((K, d))
    Bs = np.zeros((K, d, r))

    def update_cluster(k, idx):
        """Update cluster k's mean and subspace basis."""
        if len(idx) < 2:
            # Fallback: random point and random basis
            mus[k] = X[idx[0]] if len(idx) else X[rng.integers(0, n)]
            Q, _ = np.linalg.qr(rng.standard_normal((d, r)))
            Bs[k] = Q[:, :r]
            return
        Xk = X[idx]
        mu = Xk.mean(axis=0)
        _, _, Vt = np.linalg.svd(Xk - mu, full_matrices=False)
        basis = np.zeros((d, r))
        m = min(r, Vt.shape[0])
        basis[:, :m] = Vt[:m].T
        Bs[k] = basis
        mus[k] = mu

    def residuals():
        Xm = X[:, None, :] - mus[None, :, :]
        proj = np.einsum("nkd,kdr->nkr", Xm, Bs)
        back = np.einsum("nkr,kdr->nkd", proj, Bs)
        resid = Xm - back
        return np.einsum("nkd,nkd->nk", resid, resid)

    for k in range(K):
        update_cluster(k, np.where(labels == k)[0])

    n_iter = 0
    prev = labels.copy()
    for _ in range(max_iter):
        n_iter += 1
        err2 = residuals()
        labels = np.argmin(err2, axis=1)
        if np.array_equal(labels, prev):
            break
        prev = labels.copy()
        for k in range(K):
            update_cluster(k, np.where(labels == k)[0])

    err2 = residuals()
    obj = float(np.sum(err2[np.arange(n), labels]))

    return labels.astype(int), {"objective": obj, "n_iter": n_iter}


class KMeansClustering(ClusteringAlgorithm):
    """Lloyd k-means (scikit-learn). ``n_clusters`` is capped at the partition size."""

    name = "kmeans"

    def __init__(self, n_clusters: int = 2, seed: int = 0, n_init: int = 10, max_iter: int = 300):
        super().__init__()
        if n_clusters < 1:
            raise ParameterError(f"n_clusters must be >= 1, got {n_clusters}")
        self.n_clusters = int(n_clusters)
        self.seed = seed
        self.n_init = int(n_init)
        self.max_iter = int(max_iter)

    def get_params(self) -> Dict[str, Any]:
        return {"n_clusters": self.n_clusters, "seed": self.seed, "n_init": self.n_init}

    def _cluster(self, X: Array2D) -> Tuple[np.ndarray, Dict[str, Any]]:
        K = min(self.n_clusters, X.shape[0], len(np.unique(X, axis=0)))
        model = KMeans(
            n_clusters=K,
            n_init=self.n_init,
            max_iter=self.max_iter,
            random_state=self.seed,
        )
        labels = model.fit_predict(X)
        return labels, {
            "objective": float(model.inertia_),
            "n_iter": int(model.n_iter_),
            "n_clusters_used": K,
        }


class DBSCANClustering(ClusteringAlgorithm):
    """Density-based clustering (scikit-learn DBSCAN); noise is labelled -1."""

    name = "dbscan"

    def __init__(self, eps: float = 0.5, min_samples: int = 5, metric: str = "euclidean"):
        super().__init__()
        if eps <= 0:
            raise ParameterError(f"eps must be > 0, got {eps}")
        if min_samples < 1:
            raise ParameterError(f"min_samples must be >= 1, got {min_samples}")
        self.eps = float(eps)
        self.min_samples = int(min_samples)
        self.metric = validate_metric(metric)

    def get_params(self) -> Dict[str, Any]:
        return {"eps": self.eps, "min_samples": self.min_samples, "metric": self.metric}

    def _cluster(self, X: Array2D) -> Tuple[np.ndarray, Dict[str, Any]]:
        model = DBSCAN(eps=self.eps, min_samples=self.min_samples, metric=self.metric)
        labels = model.fit_predict(X)
        return labels, {"n_noise": int(np.sum(labels == NOISE))}


class KSubspacesClustering(ClusteringAlgorithm):
    """K-subspaces with rank-r bases; see ``k_subspaces``."""

    name = "ksubspaces"

    def __init__(self, n_clusters: int = 2, rank_r: int = 1, seed: int = 0, max_iter: int = 200):
        super().__init__()
        if n_clusters < 1:
            raise ParameterError(f"n_clusters must be >= 1, got {n_clusters}")
        if rank_r < 1:
            raise ParameterError(f"rank_r must be >= 1, got {rank_r}")
        self.n_clusters = int(n_clusters)
        self.rank_r = int(rank_r)
        self.seed = seed
        self.max_iter = int(max_iter)

    def get_params(self) -> Dict[str, Any]:
        return {"n_clusters": self.n_clusters, "rank_r": self.rank_r, "seed": self.seed}

    def _cluster(self, X: Array2D) -> Tuple[np.ndarray, Dict[str, Any]]:
        K = min(self.n_clusters, X.shape[0])
        return k_subspaces(X, K, rank_r=self.rank_r, seed=self.seed, max_iter=self.max_iter)


class SingleClusterClustering(ClusteringAlgorithm):
    """Puts every object of the partition into one cluster."""

    name = "single"

    def _cluster(self, X: Array2D) -> Tuple[np.ndarray, Dict[str, Any]]:
        centered = X - X.mean(axis=0)
        return np.zeros(X.shape[0], dtype=np.int64), {"objective": float(np.sum(centered ** 2))}


ALGORITHMS: Dict[str, Type[ClusteringAlgorithm]] = {
    cls.name: cls
    for cls in (
        KMeansClustering,
        DBSCANClustering,
        KSubspacesClustering,
        SingleClusterClustering,
    )
}


class ClusteringAlgorithmFactory:
    """
    Factory for creating clustering algorithms by name.

    Usage:
        factory = ClusteringAlgorithmFactory()
        algorithm = factory.create("kmeans", n_clusters=3)
    """

    def __init__(self, registry: Optional[Dict[str, Type[ClusteringAlgorithm]]] = None):
        self.registry = dict(registry or ALGORITHMS)

    def register(self, name: str, algorithm_cls: Type[ClusteringAlgorithm]) -> None:
        """
        Add an algorithm class under ``name``.

        Raises:
            ParameterError: If the class is not a ClusteringAlgorithm
        """
        if not (isinstance(algorithm_cls, type) and issubclass(algorithm_cls, ClusteringAlgorithm)):
            raise ParameterError(f"{algorithm_cls!r} is not a ClusteringAlgorithm subclass")
        self.registry[name.lower()] = algorithm_cls

    def create(self, algorithm_name: str, **params: Any) -> ClusteringAlgorithm:
        """
        Create an algorithm instance.

        Args:
            algorithm_name: Registered name (case-insensitive)
            **params: Constructor arguments

        Returns:
            ClusteringAlgorithm instance

        Raises:
            ParameterError: If the name is unknown or the parameters are invalid
        """
        key = algorithm_name.lower()
        if key not in self.registry:
            raise ParameterError(
                f"Unknown clustering algorithm: {algorithm_name}. "
                f"Available algorithms: {', '.join(self.get_available_algorithms())}"
            )
        try:
            return self.registry[key](**params)
        except ParameterError:
            raise
        except (TypeError, ValueError) as e:
            raise ParameterError(f"Invalid parameters for algorithm '{key}': {e}") from e

    def get_available_algorithms(self) -> list[str]:
        return sorted(self.registry)
