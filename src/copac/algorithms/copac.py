"""
COPAA / COPAC: correlation partitioning.

Each object's local correlation dimension is estimated by filtered PCA over
its k-NN window. Objects are grouped by that dimension, and a configured
algorithm is run independently on every group. COPAC is the clustering
flavour: the per-partition algorithm must be a ``ClusteringAlgorithm`` and
the merged output is a ``PartitionClusteringResult``.

Pipeline:
1. local dimension per object (one PCA per object)
2. PartitionMap: dimension -> object ids
3. one sub-dataset per partition
4. partition algorithm per partition, ascending partition id
5. aggregation keyed by partition id
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np

from ..database import Dataset
from ..errors import FatalStateError, OrchestrationCancelled, ParameterError
from .clustering import Algorithm, ClusteringAlgorithm, ClusteringResult
from .neighbors import KNNNeighborhood
from .pca import PCAFilteredRunner

logger = logging.getLogger(__name__)

# observer(event, payload); events: "dimension", "partition_started", "partition_finished"
Observer = Callable[[str, Dict[str, Any]], None]


class PartitionMap(Mapping):
    """
    Immutable mapping of partition id (correlation dimension) to object ids.

    Partition ids iterate in ascending order; ids inside a partition keep
    the order of the dimension assignment they were built from.
    """

    def __init__(self, partitions: Mapping[int, Iterable[int]]):
        self._partitions = MappingProxyType(
            {int(pid): tuple(int(i) for i in partitions[pid]) for pid in sorted(partitions)}
        )

    @classmethod
    def from_dimensions(cls, dimensions: Mapping[int, int]) -> "PartitionMap":
        """Group object ids by their correlation dimension."""
        groups: Dict[int, List[int]] = {}
        for object_id, dim in dimensions.items():
            groups.setdefault(int(dim), []).append(int(object_id))
        return cls(groups)

    def __getitem__(self, partition_id: int) -> Tuple[int, ...]:
        return self._partitions[partition_id]

    def __iter__(self):
        return iter(self._partitions)

    def __len__(self) -> int:
        return len(self._partitions)

    def __repr__(self) -> str:
        return f"PartitionMap({self.sizes()})"

    def sizes(self) -> Dict[int, int]:
        return {pid: len(ids) for pid, ids in self._partitions.items()}

    def object_ids(self) -> List[int]:
        return [i for ids in self._partitions.values() for i in ids]

    def partition_of(self, object_id: int) -> int:
        for pid, ids in self._partitions.items():
            if object_id in ids:
                return pid
        raise KeyError(f"Object id {object_id} is not in any partition")

    def validate(self, object_ids: Iterable[int]) -> None:
        """
        Check that every id appears in exactly one partition and no other id does.

        Raises:
            FatalStateError: On missing, duplicated or foreign ids
        """
        assigned = self.object_ids()
        if len(assigned) != len(set(assigned)):
            raise FatalStateError("An object id appears in more than one partition")
        expected = {int(i) for i in object_ids}
        if set(assigned) != expected:
            missing = sorted(expected - set(assigned))
            foreign = sorted(set(assigned) - expected)
            raise FatalStateError(
                f"Partition map does not cover the dataset: "
                f"missing={missing[:5]}, unknown={foreign[:5]}"
            )


@dataclass(frozen=True, eq=False)
class PartitionResults:
    """Per-partition results of a COPAA run, keyed by partition id."""

    results: Mapping[int, Any]
    dimensionality: int
    partition_map: PartitionMap = field(repr=False)

    def __post_init__(self):
        object.__setattr__(
            self, "results", MappingProxyType({pid: self.results[pid] for pid in sorted(self.results)})
        )
        if set(self.results) != set(self.partition_map):
            raise FatalStateError(
                f"Results for partitions {sorted(self.results)} "
                f"do not match partition map {sorted(self.partition_map)}"
            )

    @property
    def partition_ids(self) -> List[int]:
        return list(self.results)

    def __len__(self) -> int:
        return len(self.results)


@dataclass(frozen=True, eq=False)
class PartitionClusteringResult(PartitionResults):
    """Merged clusterings of all partitions."""

    def __post_init__(self):
        super().__post_init__()
        for pid, result in self.results.items():
            if not isinstance(result, ClusteringResult):
                raise FatalStateError(
                    f"Partition {pid} produced {type(result).__name__}, expected ClusteringResult"
                )
            if sorted(int(i) for i in result.ids) != sorted(self.partition_map[pid]):
                raise FatalStateError(f"Clustering of partition {pid} does not cover its objects")

    @property
    def n_clusters(self) -> int:
        """Total number of clusters over all partitions, noise excluded."""
        return sum(r.n_clusters for r in self.results.values())

    def labels_by_id(self) -> Dict[int, Tuple[int, int]]:
        """Object id -> (partition id, cluster label within that partition)."""
        out: Dict[int, Tuple[int, int]] = {}
        for pid, result in self.results.items():
            for object_id, label in zip(result.ids, result.labels):
                out[int(object_id)] = (pid, int(label))
        return out

    def to_dict(self) -> Dict[str, Any]:
        """Flatten to plain Python types (e.g. for JSON)."""
        partitions = {}
        for pid, result in self.results.items():
            partitions[str(pid)] = {
                "size": len(result.ids),
                "n_clusters": result.n_clusters,
                "n_noise": result.n_noise,
                "objective": None if np.isnan(result.objective) else result.objective,
                "clusters": {str(k): v for k, v in result.clusters().items()},
            }
        return {
            "dimensionality": self.dimensionality,
            "n_partitions": len(self.results),
            "n_clusters": self.n_clusters,
            "partitions": partitions,
        }


class COPAA:
    """
    Partition a dataset by local correlation dimension and run an
    algorithm on each partition.

    The partition algorithm only needs ``run(dataset)`` and
    ``get_result()``; one instance is reused for every partition.

    Usage:
        copaa = COPAA(partition_algorithm, neighborhood=KNNNeighborhood(k=10))
        results = copaa.run(dataset)
        results.results[2]   # output on the 2-dimensional partition
    """

    def __init__(
        self,
        partition_algorithm: Algorithm,
        pca_runner: Optional[PCAFilteredRunner] = None,
        neighborhood: Optional[KNNNeighborhood] = None,
        observer: Optional[Observer] = None,
        max_workers: Optional[int] = None,
    ):
        if not (callable(getattr(partition_algorithm, "run", None))
                and callable(getattr(partition_algorithm, "get_result", None))):
            raise ParameterError(
                f"partition_algorithm must provide run() and get_result(), "
                f"got {type(partition_algorithm).__name__}"
            )
        if max_workers is not None and max_workers < 1:
            raise ParameterError(f"max_workers must be >= 1, got {max_workers}")

        self.partition_algorithm = partition_algorithm
        self.pca_runner = pca_runner or PCAFilteredRunner()
        self.neighborhood = neighborhood or KNNNeighborhood()
        self.observer = observer
        self.max_workers = max_workers
        self._result: Optional[PartitionResults] = None

    def _notify(self, event: str, **payload: Any) -> None:
        if self.observer is not None:
            self.observer(event, payload)

    @staticmethod
    def _check_cancel(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise OrchestrationCancelled("COPAC run cancelled")

    def local_dimensions(
        self, dataset: Dataset, cancel_event: Optional[threading.Event] = None
    ) -> Dict[int, int]:
        """
        Correlation dimension of every object, in dataset id order.

        A "dimension" event is sent as soon as each object is estimated; with
        ``max_workers`` > 1 the events arrive from worker threads in
        completion order.

        Raises:
            NumericError: If any local PCA fails
            OrchestrationCancelled: If ``cancel_event`` is set
        """
        windows = self.neighborhood.neighborhoods(dataset)

        def estimate(object_id: int) -> int:
            self._check_cancel(cancel_event)
            dim = self.pca_runner.process_neighbors(windows[object_id], dataset).correlation_dimension
            logger.debug("object %d: correlation dimension %d", object_id, dim)
            self._notify("dimension", object_id=object_id, dimension=dim)
            return dim

        ids = list(dataset)
        if self.max_workers and self.max_workers > 1 and len(ids) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                dims = list(executor.map(estimate, ids))
        else:
            dims = [estimate(object_id) for object_id in ids]

        return dict(zip(ids, dims))

    def partition(
        self, dataset: Dataset, cancel_event: Optional[threading.Event] = None
    ) -> PartitionMap:
        partition_map = PartitionMap.from_dimensions(self.local_dimensions(dataset, cancel_event))
        partition_map.validate(dataset)
        logger.info("partitioned %d objects: %s", len(dataset), partition_map.sizes())
        return partition_map

    def run(
        self, dataset: Dataset, cancel_event: Optional[threading.Event] = None
    ) -> PartitionResults:
        """
        Run the whole pipeline.

        Args:
            dataset: Objects to partition
            cancel_event: Optional event; when set, the run stops at the next
                object or partition boundary

        Returns:
            Per-partition results (also available from ``get_result``)

        Raises:
            NumericError: If a local PCA fails
            FatalStateError: If id bookkeeping is inconsistent
            OrchestrationCancelled: If ``cancel_event`` is set
            Exception: Whatever the partition algorithm raises, unchanged
        """
        self._result = None
        partition_map = self.partition(dataset, cancel_event)
        sub_datasets = dataset.partition(partition_map)

        results: Dict[int, Any] = {}
        algorithm_name = getattr(self.partition_algorithm, "name", type(self.partition_algorithm).__name__)
        for partition_id in sorted(sub_datasets):
            self._check_cancel(cancel_event)
            sub = sub_datasets[partition_id]
            logger.info(
                "running %s on partition %d (%d objects)", algorithm_name, partition_id, len(sub)
            )
            self._notify("partition_started", partition_id=partition_id, size=len(sub))
            self.partition_algorithm.run(sub)
            results[partition_id] = self.partition_algorithm.get_result()
            self._notify("partition_finished", partition_id=partition_id, size=len(sub))

        self._result = self._aggregate(results, dataset, partition_map)
        return self._result

    def _aggregate(self, results: Dict[int, Any], dataset: Dataset, partition_map: PartitionMap) -> PartitionResults:
        return PartitionResults(results, dataset.dimensionality, partition_map)

    def get_result(self) -> PartitionResults:
        if self._result is None:
            raise FatalStateError(f"{type(self).__name__} has not been run")
        return self._result


class COPAC(COPAA):
    """
    COrrelation PArtition Clustering.

    Like COPAA, but the partition algorithm must be a clustering algorithm
    and the result is a ``PartitionClusteringResult``.
    """

    name = "copac"

    def __init__(self, partition_algorithm: ClusteringAlgorithm, **kwargs: Any):
        if not isinstance(partition_algorithm, ClusteringAlgorithm):
            raise ParameterError(
                f"COPAC requires a ClusteringAlgorithm as partition algorithm, "
                f"got {type(partition_algorithm).__name__}"
            )
        super().__init__(partition_algorithm, **kwargs)

    def run(
        self, dataset: Dataset, cancel_event: Optional[threading.Event] = None
    ) -> PartitionClusteringResult:
        return super().run(dataset, cancel_event)

    def _aggregate(self, results, dataset, partition_map) -> PartitionClusteringResult:
        return PartitionClusteringResult(results, dataset.dimensionality, partition_map)

    def get_result(self) -> PartitionClusteringResult:
        return super().get_result()
