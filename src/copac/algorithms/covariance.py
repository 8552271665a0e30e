"""
Covariance matrices over local windows of a dataset.
"""

from __future__ import annotations

from typing import Iterable, Sequence, Tuple

import numpy as np

from ..database import Dataset

Array2D = np.ndarray
Neighbor = Tuple[float, int]


class StandardCovarianceMatrixBuilder:
    """
    Covariance about the centroid, divided by the number of points.

    A single point gives the zero matrix. The result is always symmetric
    and sized to the dataset's dimensionality.
    """

    def build_from_matrix(self, X: Array2D) -> Array2D:
        """
        Covariance of the rows of ``X``.

        Raises:
            ValueError: If ``X`` is not 2-D or has no rows
        """
        X = np.asarray(X, dtype=np.float64)
        if X.ndim != 2:
            raise ValueError(f"Expected a 2-D matrix, got shape {X.shape}")
        if X.shape[0] == 0:
            raise ValueError("Cannot build a covariance matrix from an empty window")
        centered = X - X.mean(axis=0, keepdims=True)
        cov = centered.T @ centered / X.shape[0]
        return (cov + cov.T) / 2.0

    def build_from_ids(self, ids: Iterable[int], dataset: Dataset) -> Array2D:
        return self.build_from_matrix(dataset.vectors_for(ids))

    def build_from_neighbors(self, neighbors: Sequence[Neighbor], dataset: Dataset) -> Array2D:
        """Covariance over a k-NN window given as ``(distance, id)`` pairs."""
        return self.build_from_ids([object_id for _, object_id in neighbors], dataset)
