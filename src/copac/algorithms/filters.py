"""
Eigenpair filters.

A filter splits descending-sorted eigenpairs into "strong" pairs (the local
subspace, whose count is the correlation dimension) and "weak" pairs (noise
directions). All stock filters select a prefix of the descending order; the
``FilteredEigenPairs`` container itself allows any split.

Usage:
    pairs = SortedEigenPairs(*eigen_decompose(cov))
    filtered = PercentageEigenPairFilter(alpha=0.85).filter(pairs)
    filtered.correlation_dimension
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Tuple, Type

import numpy as np

from ..errors import ParameterError
from .eigen import EigenPair, SortedEigenPairs


@dataclass(frozen=True)
class FilteredEigenPairs:
    """Disjoint, order-preserving split of a ``SortedEigenPairs`` sequence."""

    strong: Tuple[EigenPair, ...]
    weak: Tuple[EigenPair, ...]
    strong_indices: Tuple[int, ...]
    weak_indices: Tuple[int, ...]

    @classmethod
    def from_indices(cls, pairs: SortedEigenPairs, strong_indices: Iterable[int]) -> "FilteredEigenPairs":
        """
        Split ``pairs`` by position; everything not listed is weak.

        Raises:
            ValueError: If an index is out of range or repeated
        """
        strong_idx = tuple(int(i) for i in strong_indices)
        n = len(pairs)
        if len(set(strong_idx)) != len(strong_idx):
            raise ValueError("strong indices must be unique")
        if any(i < 0 or i >= n for i in strong_idx):
            raise ValueError(f"strong indices must lie in [0, {n})")

        strong_idx = tuple(sorted(strong_idx))
        chosen = set(strong_idx)
        weak_idx = tuple(i for i in range(n) if i not in chosen)
        return cls(
            strong=tuple(pairs[i] for i in strong_idx),
            weak=tuple(pairs[i] for i in weak_idx),
            strong_indices=strong_idx,
            weak_indices=weak_idx,
        )

    @classmethod
    def from_prefix(cls, pairs: SortedEigenPairs, n_strong: int) -> "FilteredEigenPairs":
        n_strong = int(max(0, min(n_strong, len(pairs))))
        return cls.from_indices(pairs, range(n_strong))

    @property
    def correlation_dimension(self) -> int:
        return len(self.strong)

    def __len__(self) -> int:
        return len(self.strong) + len(self.weak)


class EigenPairFilter(ABC):
    """Policy deciding which eigenpairs are strong and which are weak."""

    name: str = "base"

    @abstractmethod
    def filter(self, pairs: SortedEigenPairs) -> FilteredEigenPairs:
        """
        Split descending-sorted eigenpairs into strong and weak subsets.

        Every input pair must land in exactly one of the two subsets.
        """

    def _check_descending(self, pairs: SortedEigenPairs) -> None:
        if not pairs.descending:
            raise ValueError(f"{type(self).__name__} expects eigenpairs in descending order")

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v!r}" for k, v in self.get_params().items())
        return f"{type(self).__name__}({params})"

    def get_params(self) -> Dict[str, Any]:
        return {}


class PercentageEigenPairFilter(EigenPairFilter):
    """
    Keep the strongest pairs that explain a fraction ``alpha`` of the variance.

    Eigenvalues are accumulated from the strongest end; the pair whose
    cumulative share first reaches ``alpha`` (``>=``, inclusive) is the last
    strong pair. ``alpha == 1.0`` keeps every pair, as does a zero total.
    """

    name = "percentage"

    def __init__(self, alpha: float = 0.85):
        alpha = float(alpha)
        if not (0.0 < alpha <= 1.0):
            raise ParameterError(f"alpha must be in (0, 1], got {alpha}")
        self.alpha = alpha

    def get_params(self) -> Dict[str, Any]:
        return {"alpha": self.alpha}

    def filter(self, pairs: SortedEigenPairs) -> FilteredEigenPairs:
        self._check_descending(pairs)
        n = len(pairs)
        if self.alpha >= 1.0:
            return FilteredEigenPairs.from_prefix(pairs, n)

        total = pairs.total()
        if not total > 0.0:
            return FilteredEigenPairs.from_prefix(pairs, n)

        cumulative = np.cumsum(pairs.eigenvalues) / total
        reached = np.nonzero(cumulative >= self.alpha)[0]
        n_strong = int(reached[0]) + 1 if len(reached) else n
        return FilteredEigenPairs.from_prefix(pairs, n_strong)


class FirstNEigenPairFilter(EigenPairFilter):
    """Keep a fixed number of the strongest pairs."""

    name = "first_n"

    def __init__(self, n: int = 1):
        if int(n) != n or n < 0:
            raise ParameterError(f"n must be a non-negative integer, got {n}")
        self.n = int(n)

    def get_params(self) -> Dict[str, Any]:
        return {"n": self.n}

    def filter(self, pairs: SortedEigenPairs) -> FilteredEigenPairs:
        self._check_descending(pairs)
        return FilteredEigenPairs.from_prefix(pairs, self.n)


class LimitEigenPairFilter(EigenPairFilter):
    """
    Keep pairs whose eigenvalue reaches a limit.

    With ``absolute=False`` the limit is ``delta`` times the largest
    eigenvalue, so ``delta`` must lie in [0, 1].
    """

    name = "limit"

    def __init__(self, delta: float = 0.01, absolute: bool = False):
        delta = float(delta)
        if delta < 0.0 or not np.isfinite(delta):
            raise ParameterError(f"delta must be a finite value >= 0, got {delta}")
        if not absolute and delta > 1.0:
            raise ParameterError(f"relative delta must be in [0, 1], got {delta}")
        self.delta = delta
        self.absolute = bool(absolute)

    def get_params(self) -> Dict[str, Any]:
        return {"delta": self.delta, "absolute": self.absolute}

    def filter(self, pairs: SortedEigenPairs) -> FilteredEigenPairs:
        self._check_descending(pairs)
        values = pairs.eigenvalues
        if len(values) == 0:
            return FilteredEigenPairs.from_prefix(pairs, 0)
        limit = self.delta if self.absolute else self.delta * values[0]
        below = np.nonzero(values < limit)[0]
        n_strong = int(below[0]) if len(below) else len(values)
        return FilteredEigenPairs.from_prefix(pairs, n_strong)


class RelativeEigenPairFilter(EigenPairFilter):
    """
    Cut where an eigenvalue dominates everything weaker than it.

    Scanning from the weak end, the first eigenvalue that is at least
    ``ralpha`` times the mean of all weaker eigenvalues closes the strong
    prefix. Without such an eigenvalue every pair is strong.
    """

    name = "relative"

    def __init__(self, ralpha: float = 1.1):
        ralpha = float(ralpha)
        if not ralpha > 0.0:
            raise ParameterError(f"ralpha must be > 0, got {ralpha}")
        self.ralpha = ralpha

    def get_params(self) -> Dict[str, Any]:
        return {"ralpha": self.ralpha}

    def filter(self, pairs: SortedEigenPairs) -> FilteredEigenPairs:
        self._check_descending(pairs)
        values = pairs.eigenvalues
        n = len(values)
        tail_sum = 0.0
        for i in range(n - 1, 0, -1):
            tail_sum += values[i]
            tail_mean = tail_sum / (n - i)
            if values[i - 1] >= self.ralpha * tail_mean and values[i - 1] > tail_mean:
                return FilteredEigenPairs.from_prefix(pairs, i)
        return FilteredEigenPairs.from_prefix(pairs, n)


class SignificantEigenPairFilter(EigenPairFilter):
    """
    Knee detection: cut at the largest contrast between an eigenvalue and
    the mean of the eigenvalues after it.

    The cut is only taken when that contrast exceeds ``walpha``; otherwise
    every pair is strong. Ties go to the earliest position.
    """

    name = "significant"

    def __init__(self, walpha: float = 1.0):
        walpha = float(walpha)
        if walpha < 0.0:
            raise ParameterError(f"walpha must be >= 0, got {walpha}")
        self.walpha = walpha

    def get_params(self) -> Dict[str, Any]:
        return {"walpha": self.walpha}

    def filter(self, pairs: SortedEigenPairs) -> FilteredEigenPairs:
        self._check_descending(pairs)
        values = pairs.eigenvalues
        n = len(values)
        best_contrast = self.walpha
        n_strong = n
        for i in range(n - 1):
            tail_mean = float(np.mean(values[i + 1:]))
            if tail_mean <= 0.0:
                contrast = np.inf if values[i] > 0.0 else 0.0
            else:
                contrast = values[i] / tail_mean
            if contrast > best_contrast:
                best_contrast = contrast
                n_strong = i + 1
        return FilteredEigenPairs.from_prefix(pairs, n_strong)


FILTERS: Dict[str, Type[EigenPairFilter]] = {
    cls.name: cls
    for cls in (
        PercentageEigenPairFilter,
        FirstNEigenPairFilter,
        LimitEigenPairFilter,
        RelativeEigenPairFilter,
        SignificantEigenPairFilter,
    )
}


def create_filter(name: str, **params: Any) -> EigenPairFilter:
    """
    Create an eigenpair filter by registry name.

    Args:
        name: One of ``FILTERS`` (case-insensitive)
        **params: Constructor arguments of the chosen filter

    Raises:
        ParameterError: If the name is unknown or the parameters are invalid
    """
    key = name.lower()
    if key not in FILTERS:
        raise ParameterError(
            f"Unknown eigenpair filter: {name}. "
            f"Available filters: {', '.join(sorted(FILTERS))}"
        )
    try:
        return FILTERS[key](**params)
    except ParameterError:
        raise
    except (TypeError, ValueError) as e:
        raise ParameterError(f"Invalid parameters for filter '{key}': {e}") from e
