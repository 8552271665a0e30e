"""
Symmetric eigen-decomposition and eigenpair ordering.

``eigen_decompose`` turns a covariance matrix into eigenvalues and unit
eigenvectors; ``SortedEigenPairs`` is the single place where the ordering
direction is chosen.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Tuple

import numpy as np

from ..errors import NumericError

Array2D = np.ndarray


@dataclass(frozen=True, eq=False)
class EigenPair:
    """An eigenvalue with its unit-norm eigenvector."""

    eigenvalue: float
    eigenvector: np.ndarray

    def __repr__(self) -> str:
        return f"EigenPair(eigenvalue={self.eigenvalue:.6g}, dim={self.eigenvector.shape[0]})"


def eigen_decompose(matrix: Array2D) -> Tuple[np.ndarray, Array2D]:
    """
    Eigen-decompose a symmetric real matrix.

    The matrix is symmetrized as ``(M + M.T) / 2`` first so floating-point
    asymmetry cannot produce complex eigenvalues.

    Args:
        matrix: Square matrix of shape (d, d)

    Returns:
        Tuple of:
        - eigenvalues: shape (d,), no particular order
        - eigenvectors: shape (d, d), column i belongs to eigenvalue i

    Raises:
        NumericError: If the matrix is not square, has non-finite entries,
            or the decomposition does not converge
    """
    M = np.asarray(matrix, dtype=np.float64)
    if M.ndim != 2 or M.shape[0] != M.shape[1]:
        raise NumericError(f"Expected a square matrix, got shape {M.shape}")
    if not np.all(np.isfinite(M)):
        raise NumericError("Matrix contains non-finite entries")

    sym = (M + M.T) / 2.0
    try:
        eigenvalues, eigenvectors = np.linalg.eigh(sym)
    except np.linalg.LinAlgError as e:
        raise NumericError(f"Eigen-decomposition failed: {e}") from e
    return eigenvalues, eigenvectors


class SortedEigenPairs:
    """
    Eigenpairs ordered by eigenvalue.

    Ties keep the original column order, so the ordering is total and
    reproducible. Instances are read-only.
    """

    def __init__(self, eigenvalues: np.ndarray, eigenvectors: Array2D, descending: bool = True):
        values = np.asarray(eigenvalues, dtype=np.float64).reshape(-1)
        vectors = np.asarray(eigenvectors, dtype=np.float64)
        if vectors.ndim != 2 or vectors.shape[1] != values.shape[0]:
            raise ValueError(
                f"eigenvectors must have one column per eigenvalue; "
                f"got {vectors.shape} for {values.shape[0]} eigenvalues"
            )

        key = -values if descending else values
        order = np.argsort(key, kind="stable")

        self._values = values[order]
        self._vectors = vectors[:, order]
        self._order = order
        self._values.setflags(write=False)
        self._vectors.setflags(write=False)
        self._order.setflags(write=False)
        self.descending = descending

    @classmethod
    def from_matrix(cls, matrix: Array2D, descending: bool = True) -> "SortedEigenPairs":
        return cls(*eigen_decompose(matrix), descending=descending)

    @property
    def eigenvalues(self) -> np.ndarray:
        return self._values

    @property
    def eigenvectors(self) -> Array2D:
        """Eigenvectors as columns, in sorted order."""
        return self._vectors

    @property
    def original_indices(self) -> np.ndarray:
        """Position of each sorted pair in the unsorted input."""
        return self._order

    def __len__(self) -> int:
        return int(self._values.shape[0])

    def __getitem__(self, i: int) -> EigenPair:
        return EigenPair(float(self._values[i]), self._vectors[:, i])

    def __iter__(self) -> Iterator[EigenPair]:
        return (self[i] for i in range(len(self)))

    def pairs(self) -> List[EigenPair]:
        return list(self)

    def total(self) -> float:
        """Sum of all eigenvalues."""
        return float(np.sum(self._values))

    def reverse(self) -> "SortedEigenPairs":
        """The same pairs sorted in the opposite direction."""
        return SortedEigenPairs(self._values, self._vectors, descending=not self.descending)

    def __repr__(self) -> str:
        direction = "descending" if self.descending else "ascending"
        return f"SortedEigenPairs(n={len(self)}, {direction})"

