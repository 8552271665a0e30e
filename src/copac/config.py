"""
Configuration management for COPAC.

Loads configuration from environment variables (typically from a .env file).
Uses python-dotenv to load .env automatically. All values are validated
when the config objects are built, so a bad setting fails before any data
is processed.

Usage:
    from copac.config import config, build_copac

    copac_config = config.get_copac_config()
    algorithm = build_copac(copac_config)
    result = algorithm.run(dataset)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .algorithms.clustering import ClusteringAlgorithmFactory
from .algorithms.copac import COPAC, Observer
from .algorithms.filters import FILTERS, EigenPairFilter, create_filter
from .algorithms.neighbors import KNNNeighborhood
from .algorithms.pca import PCAFilteredRunner, validate_clamp_constants
from .errors import ParameterError

# Look for .env in project root (parent of src/)
env_path = Path(__file__).parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


@dataclass
class PCAConfig:
    """Settings of the filtered local PCA."""

    filter_name: str = "percentage"
    filter_threshold: float = 0.85
    big: float = 1.0
    small: float = 0.0
    filter_params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate thresholds and clamping constants."""
        self.filter_name = self.filter_name.lower()
        if self.filter_name not in FILTERS:
            raise ParameterError(
                f"Unknown eigenpair filter: {self.filter_name}. "
                f"Available filters: {', '.join(sorted(FILTERS))}"
            )
        try:
            self.filter_threshold = float(self.filter_threshold)
        except (TypeError, ValueError):
            raise ParameterError(
                f"filter_threshold must be a number, got {self.filter_threshold!r}"
            ) from None
        if not (0.0 < self.filter_threshold <= 1.0):
            raise ParameterError(
                f"filter_threshold must be in (0, 1], got {self.filter_threshold}"
            )
        self.big, self.small = validate_clamp_constants(self.big, self.small)
        # instantiate once so filter-specific parameters fail here too
        self.build_filter()

    def build_filter(self) -> EigenPairFilter:
        if self.filter_name == "percentage":
            return create_filter("percentage", **dict(self.filter_params, alpha=self.filter_threshold))
        return create_filter(self.filter_name, **self.filter_params)


@dataclass
class COPACConfig:
    """Settings of a COPAC run."""

    k: int = 20
    partition_algorithm: str = "dbscan"
    partition_params: Dict[str, Any] = field(default_factory=dict)
    max_workers: Optional[int] = None
    pca: PCAConfig = field(default_factory=PCAConfig)

    def __post_init__(self):
        """Validate neighborhood size, worker count and the algorithm choice."""
        if not _is_positive_int(self.k):
            raise ParameterError(f"k must be a positive integer, got {self.k!r}")
        self.k = int(self.k)
        if self.max_workers is not None:
            if not _is_positive_int(self.max_workers):
                raise ParameterError(f"max_workers must be >= 1, got {self.max_workers!r}")
            self.max_workers = int(self.max_workers)
        self.partition_algorithm = self.partition_algorithm.lower()
        # fails with ParameterError on unknown names or bad parameters
        self.build_partition_algorithm()

    def build_partition_algorithm(self):
        return ClusteringAlgorithmFactory().create(self.partition_algorithm, **self.partition_params)


def _is_positive_int(value: Any) -> bool:
    try:
        return int(value) == value and value >= 1
    except (TypeError, ValueError):
        return False


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ParameterError(f"{name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ParameterError(f"{name} must be an integer, got {raw!r}") from None


class Config:
    """
    Application configuration loaded from environment variables.

    Environment variables can be set:
    1. In a .env file in the project root
    2. In the system environment
    3. In a container/deployment environment

    Recognized variables: COPAC_FILTER, COPAC_FILTER_THRESHOLD,
    COPAC_BIG_EIGENVALUE, COPAC_SMALL_EIGENVALUE, COPAC_K,
    COPAC_PARTITION_ALGORITHM, COPAC_MAX_WORKERS, COPAC_LOG_LEVEL.
    """

    def __init__(self):
        """Load configuration from environment."""
        self.log_level = os.getenv("COPAC_LOG_LEVEL", "INFO")

    def get_pca_config(self, **overrides: Any) -> PCAConfig:
        """
        Build the PCA settings from the environment.

        Args:
            **overrides: Field values taking precedence over the environment

        Raises:
            ParameterError: If a value is malformed or out of range
        """
        values = {
            "filter_name": os.getenv("COPAC_FILTER", "percentage"),
            "filter_threshold": _env_float("COPAC_FILTER_THRESHOLD", 0.85),
            "big": _env_float("COPAC_BIG_EIGENVALUE", 1.0),
            "small": _env_float("COPAC_SMALL_EIGENVALUE", 0.0),
        }
        values.update(overrides)
        return PCAConfig(**values)

    def get_copac_config(self, pca: Optional[PCAConfig] = None, **overrides: Any) -> COPACConfig:
        """Build the COPAC settings from the environment."""
        values = {
            "k": _env_int("COPAC_K", 20),
            "partition_algorithm": os.getenv("COPAC_PARTITION_ALGORITHM", "dbscan"),
            "max_workers": _env_int("COPAC_MAX_WORKERS", None),
        }
        values.update(overrides)
        return COPACConfig(pca=pca or self.get_pca_config(), **values)


# Global config instance
config = Config()


def build_copac(
    copac_config: Optional[COPACConfig] = None,
    observer: Optional[Observer] = None,
) -> COPAC:
    """
    Wire a COPAC instance from configuration.

    Args:
        copac_config: Settings; defaults to ``config.get_copac_config()``
        observer: Optional pipeline observer callback

    Returns:
        Configured COPAC, ready to ``run``
    """
    copac_config = copac_config or config.get_copac_config()
    return COPAC(
        copac_config.build_partition_algorithm(),
        pca_runner=PCAFilteredRunner.from_config(copac_config.pca),
        neighborhood=KNNNeighborhood(k=copac_config.k),
        observer=observer,
        max_workers=copac_config.max_workers,
    )
