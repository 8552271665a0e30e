"""
Filtered local PCA.

Pipeline: covariance matrix → eigen-decomposition → descending sort →
eigenpair filter → ``FilteredPCAResult``. The result carries the
correlation dimension plus eigenvalues clamped to two constants: ``big``
on strong directions and ``small`` on weak ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional, Sequence, Tuple

import numpy as np

from ..database import Dataset
from ..errors import FatalStateError, ParameterError
from .covariance import Neighbor, StandardCovarianceMatrixBuilder
from .eigen import SortedEigenPairs, eigen_decompose
from .filters import EigenPairFilter, FilteredEigenPairs, PercentageEigenPairFilter

if TYPE_CHECKING:
    from ..config import PCAConfig

Array2D = np.ndarray


def _readonly(a: np.ndarray) -> np.ndarray:
    a.setflags(write=False)
    return a


def validate_clamp_constants(big: float, small: float) -> Tuple[float, float]:
    """
    Check the clamping constants.

    Raises:
        ParameterError: Unless ``big > 0`` and ``0 <= small <= big``
    """
    try:
        big, small = float(big), float(small)
    except (TypeError, ValueError):
        raise ParameterError(f"big and small must be numbers, got {big!r} and {small!r}") from None
    if not np.isfinite(big) or big <= 0.0:
        raise ParameterError(f"big must be a finite value > 0, got {big}")
    if not np.isfinite(small) or small < 0.0:
        raise ParameterError(f"small must be a finite value >= 0, got {small}")
    if small > big:
        raise ParameterError(f"small ({small}) must not exceed big ({big})")
    return big, small


@dataclass(frozen=True, eq=False)
class FilteredPCAResult:
    """
    Immutable result of one filtered PCA.

    Column order of every eigenvector matrix is strong pairs first, then
    weak pairs, each in filtered order.
    """

    eigenpairs: SortedEigenPairs
    filtered: FilteredEigenPairs
    big: float = 1.0
    small: float = 0.0
    strong_eigenvectors: np.ndarray = field(init=False, repr=False)
    weak_eigenvectors: np.ndarray = field(init=False, repr=False)
    strong_eigenvalues: np.ndarray = field(init=False, repr=False)
    weak_eigenvalues: np.ndarray = field(init=False, repr=False)
    adapted_eigenvalues: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        d = self.eigenpairs.eigenvectors.shape[0]
        strong_idx = list(self.filtered.strong_indices)
        weak_idx = list(self.filtered.weak_indices)
        values = self.eigenpairs.eigenvalues
        vectors = self.eigenpairs.eigenvectors

        strong_vecs = vectors[:, strong_idx] if strong_idx else np.empty((d, 0))
        weak_vecs = vectors[:, weak_idx] if weak_idx else np.empty((d, 0))

        k = len(strong_idx)
        adapted = np.zeros((len(values), len(values)), dtype=np.float64)
        diag = np.full(len(values), self.small, dtype=np.float64)
        diag[:k] = self.big
        np.fill_diagonal(adapted, diag)

        # frozen dataclass: derived fields are set once here
        object.__setattr__(self, "strong_eigenvectors", _readonly(np.array(strong_vecs)))
        object.__setattr__(self, "weak_eigenvectors", _readonly(np.array(weak_vecs)))
        object.__setattr__(self, "strong_eigenvalues", _readonly(np.array(values[strong_idx])))
        object.__setattr__(self, "weak_eigenvalues", _readonly(np.array(values[weak_idx])))
        object.__setattr__(self, "adapted_eigenvalues", _readonly(adapted))

    @property
    def correlation_dimension(self) -> int:
        return self.filtered.correlation_dimension

    @property
    def dimensionality(self) -> int:
        return int(self.eigenpairs.eigenvectors.shape[0])

    @property
    def eigenvalues(self) -> np.ndarray:
        """Raw eigenvalues in descending order."""
        return self.eigenpairs.eigenvalues

    @property
    def eigenvectors(self) -> Array2D:
        """``[strong | weak]`` eigenvector matrix (d×d)."""
        return _readonly(np.hstack([self.strong_eigenvectors, self.weak_eigenvectors]))

    @property
    def explained_variance(self) -> float:
        """Share of the total eigenvalue mass carried by the strong pairs."""
        total = self.eigenpairs.total()
        if not total > 0.0:
            return 1.0 if self.correlation_dimension == self.dimensionality else 0.0
        return float(np.sum(self.strong_eigenvalues) / total)

    @property
    def similarity_matrix(self) -> Array2D:
        """``V · Ê · Vᵀ`` with the clamped eigenvalue matrix ``Ê``."""
        V = self.eigenvectors
        return _readonly(V @ self.adapted_eigenvalues @ V.T)

    @property
    def strong_projection(self) -> Array2D:
        """Orthogonal projection onto the strong subspace."""
        Vs = self.strong_eigenvectors
        return _readonly(Vs @ Vs.T)


class PCAFilteredRunner:
    """
    Runs filtered PCA from ids, neighbor lists or a covariance matrix.

    All entry points end in ``process_eigendecomposition``, which is a pure
    function of its input; the same covariance matrix always yields an
    identical result.

    Usage:
        runner = PCAFilteredRunner(PercentageEigenPairFilter(0.85))
        result = runner.process_ids([0, 1, 2], dataset)
        result.correlation_dimension
    """

    def __init__(
        self,
        eigenpair_filter: Optional[EigenPairFilter] = None,
        big: float = 1.0,
        small: float = 0.0,
        covariance_builder: Optional[StandardCovarianceMatrixBuilder] = None,
    ):
        self.big, self.small = validate_clamp_constants(big, small)
        self.eigenpair_filter = eigenpair_filter or PercentageEigenPairFilter()
        if not isinstance(self.eigenpair_filter, EigenPairFilter):
            raise ParameterError(
                f"eigenpair_filter must be an EigenPairFilter, got {type(eigenpair_filter).__name__}"
            )
        self.covariance_builder = covariance_builder or StandardCovarianceMatrixBuilder()

    @classmethod
    def from_config(cls, pca_config: "PCAConfig") -> "PCAFilteredRunner":
        return cls(
            eigenpair_filter=pca_config.build_filter(),
            big=pca_config.big,
            small=pca_config.small,
        )

    def process_ids(self, ids: Iterable[int], dataset: Dataset) -> FilteredPCAResult:
        return self.process_covariance_matrix(self.covariance_builder.build_from_ids(ids, dataset))

    def process_neighbors(self, neighbors: Sequence[Neighbor], dataset: Dataset) -> FilteredPCAResult:
        """Run PCA over a window of ``(distance, id)`` pairs."""
        return self.process_covariance_matrix(
            self.covariance_builder.build_from_neighbors(neighbors, dataset)
        )

    def process_covariance_matrix(self, covariance: Array2D) -> FilteredPCAResult:
        """
        Raises:
            NumericError: If the matrix has non-finite entries or cannot be decomposed
        """
        eigenvalues, eigenvectors = eigen_decompose(covariance)
        return self.process_eigendecomposition(eigenvalues, eigenvectors)

    def process_eigendecomposition(self, eigenvalues: np.ndarray, eigenvectors: Array2D) -> FilteredPCAResult:
        pairs = SortedEigenPairs(eigenvalues, eigenvectors, descending=True)
        filtered = self.eigenpair_filter.filter(pairs)
        if len(filtered) != len(pairs):
            raise FatalStateError(
                f"{self.eigenpair_filter!r} classified {len(filtered)} of {len(pairs)} eigenpairs"
            )
        return FilteredPCAResult(pairs, filtered, big=self.big, small=self.small)

    def __repr__(self) -> str:
        return (
            f"PCAFilteredRunner(filter={self.eigenpair_filter!r}, "
            f"big={self.big}, small={self.small})"
        )
