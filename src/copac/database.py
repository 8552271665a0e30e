"""
In-memory vector database.

A ``Dataset`` pairs an ``(n, d)`` matrix of vectors with unique integer
object ids. Sub-datasets keep the ids of the objects they were cut from so
results computed on a partition can be attributed back to the full dataset.
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, Mapping, Optional, Sequence

import numpy as np

from .errors import FatalStateError

Array2D = np.ndarray


class Dataset:
    """
    Mapping from object id to vector with a shared ambient dimensionality.

    Usage:
        ds = Dataset(np.array([[0.0, 1.0], [1.0, 2.0]]))
        ds.vector(1)          # -> array([1., 2.])
        sub = ds.subset([1])  # keeps id 1
    """

    def __init__(self, vectors: Array2D, ids: Optional[Iterable[int]] = None):
        X = np.asarray(vectors, dtype=np.float64)
        if X.ndim == 1:
            X = X.reshape(-1, 1) if X.size else X.reshape(0, 0)
        if X.ndim != 2:
            raise ValueError(f"vectors must be 2-D (n, d); got shape {X.shape}")

        if ids is None:
            id_arr = np.arange(X.shape[0], dtype=np.int64)
        else:
            id_arr = np.asarray(list(ids), dtype=np.int64)
            if id_arr.shape != (X.shape[0],):
                raise ValueError(
                    f"Expected {X.shape[0]} ids, got {id_arr.size}"
                )
        if len(np.unique(id_arr)) != len(id_arr):
            raise ValueError("Object ids must be unique")

        X.setflags(write=False)
        id_arr.setflags(write=False)
        self._vectors = X
        self._ids = id_arr
        self._index = {int(i): row for row, i in enumerate(id_arr)}

    @property
    def vectors(self) -> Array2D:
        """Read-only ``(n, d)`` matrix, rows aligned with ``ids``."""
        return self._vectors

    @property
    def ids(self) -> np.ndarray:
        """Read-only array of object ids in row order."""
        return self._ids

    @property
    def dimensionality(self) -> int:
        return int(self._vectors.shape[1])

    def __len__(self) -> int:
        return int(self._vectors.shape[0])

    def __iter__(self) -> Iterator[int]:
        return (int(i) for i in self._ids)

    def __contains__(self, object_id) -> bool:
        return int(object_id) in self._index

    def __repr__(self) -> str:
        return f"Dataset(n={len(self)}, dimensionality={self.dimensionality})"

    def row_of(self, object_id: int) -> int:
        try:
            return self._index[int(object_id)]
        except KeyError:
            raise KeyError(f"Unknown object id: {object_id}") from None

    def vector(self, object_id: int) -> np.ndarray:
        return self._vectors[self.row_of(object_id)]

    def vectors_for(self, object_ids: Iterable[int]) -> Array2D:
        """Stack the vectors of ``object_ids`` in the given order."""
        rows = [self.row_of(i) for i in object_ids]
        if not rows:
            return np.empty((0, self.dimensionality), dtype=np.float64)
        return self._vectors[rows]

    def subset(self, object_ids: Sequence[int]) -> "Dataset":
        """Standalone dataset holding only ``object_ids`` (original ids kept)."""
        object_ids = [int(i) for i in object_ids]
        return Dataset(self.vectors_for(object_ids), ids=object_ids)

    def partition(self, partition_map: Mapping[int, Sequence[int]]) -> Dict[int, "Dataset"]:
        """
        Materialize one sub-dataset per partition.

        Args:
            partition_map: partition id -> object ids

        Returns:
            Dict of partition id -> Dataset, in ascending partition id order

        Raises:
            FatalStateError: If the map references unknown ids, repeats an id,
                or leaves an object of this dataset unassigned
        """
        seen = set()
        for partition_id, object_ids in partition_map.items():
            for object_id in object_ids:
                object_id = int(object_id)
                if object_id not in self._index:
                    raise FatalStateError(
                        f"Partition {partition_id} references unknown object id {object_id}"
                    )
                if object_id in seen:
                    raise FatalStateError(
                        f"Object id {object_id} assigned to more than one partition"
                    )
                seen.add(object_id)
        if len(seen) != len(self):
            missing = sorted(set(self._index) - seen)
            raise FatalStateError(
                f"{len(missing)} object(s) missing from partition map, e.g. {missing[:5]}"
            )

        return {
            int(pid): self.subset(partition_map[pid])
            for pid in sorted(partition_map)
        }
