"""
k-nearest-neighbor windows for local PCA.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Tuple

import numpy as np
from sklearn.neighbors import VALID_METRICS, NearestNeighbors

from ..database import Dataset
from ..errors import NumericError, ParameterError

logger = logging.getLogger(__name__)

Neighbor = Tuple[float, int]


def validate_metric(metric):
    """
    Check a distance metric name against the brute-force metrics scikit-learn
    accepts. Callables are passed through.

    Raises:
        ParameterError: If the name is unknown
    """
    if callable(metric):
        return metric
    if not isinstance(metric, str) or metric not in VALID_METRICS["brute"]:
        raise ParameterError(
            f"Unknown distance metric: {metric!r}. "
            f"Available metrics: {', '.join(sorted(VALID_METRICS['brute']))}"
        )
    return metric


class KNNNeighborhood:
    """
    The ``k`` nearest objects of every object (the object itself included).

    Neighbors are returned as ``(distance, id)`` pairs ordered by distance.
    When ``k`` exceeds the dataset size the whole dataset is used.
    """

    def __init__(self, k: int = 20, metric: str = "euclidean"):
        if int(k) != k or k < 1:
            raise ParameterError(f"k must be a positive integer, got {k}")
        self.k = int(k)
        self.metric = validate_metric(metric)

    def effective_k(self, dataset: Dataset) -> int:
        n = len(dataset)
        if self.k > n:
            logger.warning("k=%d exceeds dataset size %d; using k=%d", self.k, n, n)
            return n
        return self.k

    def neighborhoods(self, dataset: Dataset) -> Dict[int, List[Neighbor]]:
        """
        Query the k-NN window of every object.

        Returns:
            Dict of object id -> list of (distance, id), nearest first

        Raises:
            NumericError: If the dataset has non-finite coordinates
        """
        if len(dataset) == 0:
            return {}
        if not np.all(np.isfinite(dataset.vectors)):
            raise NumericError("Dataset contains non-finite coordinates")
        k = self.effective_k(dataset)
        model = NearestNeighbors(n_neighbors=k, metric=self.metric, algorithm="auto")
        model.fit(dataset.vectors)
        distances, indices = model.kneighbors(dataset.vectors)

        ids = dataset.ids
        result: Dict[int, List[Neighbor]] = {}
        for row, object_id in enumerate(ids):
            result[int(object_id)] = self._with_self_first(
                int(object_id),
                [(float(d), int(ids[j])) for d, j in zip(distances[row], indices[row])],
            )
        return result

    @staticmethod
    def _with_self_first(object_id: int, neighbors: List[Neighbor]) -> List[Neighbor]:
        """Duplicates at distance zero may outrank the query object; put it first."""
        for pos, (_, nid) in enumerate(neighbors):
            if nid == object_id:
                if pos:
                    neighbors.insert(0, neighbors.pop(pos))
                return neighbors
        # query object fell off a window full of exact duplicates
        return [(0.0, object_id)] + neighbors[:-1]

    def __repr__(self) -> str:
        return f"KNNNeighborhood(k={self.k}, metric={self.metric!r})"
