"""
Tests for correlation partitioning (COPAA / COPAC).
"""

import threading

import numpy as np
import pytest

from copac.algorithms.clustering import (
    ClusteringAlgorithm,
    ClusteringResult,
    SingleClusterClustering,
)
from copac.algorithms.copac import (
    COPAA,
    COPAC,
    PartitionClusteringResult,
    PartitionMap,
    PartitionResults,
)
from copac.algorithms.neighbors import KNNNeighborhood
from copac.database import Dataset
from copac.errors import (
    FatalStateError,
    NumericError,
    OrchestrationCancelled,
    ParameterError,
)

# neighborhood size that keeps every window of mixed_dataset on its manifold
MIXED_K = 9


class SizeAlgorithm:
    """Non-clustering partition algorithm: reports the partition size."""

    def __init__(self):
        self._result = None

    def run(self, dataset):
        self._result = len(dataset)

    def get_result(self):
        return self._result


class FailingClustering(ClusteringAlgorithm):
    def _cluster(self, X):
        raise RuntimeError("boom")


# ------------------------------------------------------------------
# PartitionMap
# ------------------------------------------------------------------


def test_partition_map_from_dimensions():
    pm = PartitionMap.from_dimensions({0: 2, 1: 1, 2: 2, 3: 3})

    assert list(pm) == [1, 2, 3]
    assert pm[2] == (0, 2)
    assert pm.sizes() == {1: 1, 2: 2, 3: 1}
    assert sorted(pm.object_ids()) == [0, 1, 2, 3]
    assert pm.partition_of(3) == 3
    with pytest.raises(KeyError):
        pm.partition_of(99)


def test_partition_map_is_immutable():
    pm = PartitionMap({1: [0]})
    with pytest.raises(TypeError):
        pm[2] = (1,)


def test_partition_map_validate():
    pm = PartitionMap({1: [0, 1], 2: [2]})
    pm.validate([0, 1, 2])

    with pytest.raises(FatalStateError, match="missing=\\[3\\]"):
        pm.validate([0, 1, 2, 3])
    with pytest.raises(FatalStateError, match="unknown=\\[2\\]"):
        pm.validate([0, 1])
    with pytest.raises(FatalStateError, match="more than one partition"):
        PartitionMap({1: [0], 2: [0]}).validate([0])


# ------------------------------------------------------------------
# Result containers
# ------------------------------------------------------------------


def test_partition_results_keys_must_match_map():
    pm = PartitionMap({1: [0], 2: [1]})
    with pytest.raises(FatalStateError):
        PartitionResults({1: "a"}, 2, pm)


def test_partition_clustering_result_checks_types():
    pm = PartitionMap({1: [0]})
    with pytest.raises(FatalStateError, match="expected ClusteringResult"):
        PartitionClusteringResult({1: 5}, 2, pm)


def test_partition_clustering_result_checks_coverage():
    pm = PartitionMap({1: [0, 1]})
    partial = ClusteringResult(labels=[0], objective=0.0, ids=[0])
    with pytest.raises(FatalStateError, match="does not cover"):
        PartitionClusteringResult({1: partial}, 2, pm)


# ------------------------------------------------------------------
# End-to-end scenarios
# ------------------------------------------------------------------


def test_two_lines_single_partition(two_lines_dataset, recording_algorithm):
    """Both short lines are 1-dimensional, so there is one partition."""
    copac = COPAC(recording_algorithm, neighborhood=KNNNeighborhood(k=3))
    result = copac.run(two_lines_dataset)

    assert list(result.results) == [1]
    assert result.partition_map[1] == (0, 1, 2, 3, 4, 5)
    assert len(recording_algorithm.calls) == 1
    assert len(recording_algorithm.calls[0]) == 6
    assert result.dimensionality == 2
    assert copac.get_result() is result


def test_isotropic_data_is_full_dimensional(isotropic_dataset, recording_algorithm):
    """A Gaussian blob seen as a whole needs all three directions."""
    copac = COPAC(recording_algorithm, neighborhood=KNNNeighborhood(k=len(isotropic_dataset)))
    result = copac.run(isotropic_dataset)

    assert list(result.results) == [3]
    assert result.partition_map.sizes() == {3: 300}


def test_isotropic_local_windows_are_mostly_full_dimensional(isotropic_dataset):
    """With the default k=20 most local windows of a Gaussian need all three directions."""
    copac = COPAC(SingleClusterClustering(), neighborhood=KNNNeighborhood(k=20))
    dims = np.array(list(copac.local_dimensions(isotropic_dataset).values()))

    assert len(dims) == 300
    assert set(np.unique(dims)) <= {2, 3}
    assert np.sum(dims == 3) >= 0.8 * len(dims)


def test_mixed_dataset_partitions(mixed_dataset, recording_algorithm):
    copac = COPAC(recording_algorithm, neighborhood=KNNNeighborhood(k=MIXED_K))
    result = copac.run(mixed_dataset)

    assert result.partition_map[1] == tuple(range(30))
    assert result.partition_map[2] == tuple(range(30, 151))
    # ascending partition order, each partition seen once
    assert [len(d) for d in recording_algorithm.calls] == [30, 121]
    np.testing.assert_array_equal(recording_algorithm.calls[1].ids, np.arange(30, 151))
    np.testing.assert_array_equal(
        recording_algorithm.calls[1].vectors, mixed_dataset.vectors[30:]
    )


def test_partition_ids_are_complete_and_disjoint(mixed_dataset, recording_algorithm):
    copac = COPAC(recording_algorithm, neighborhood=KNNNeighborhood(k=MIXED_K))
    result = copac.run(mixed_dataset)

    seen = [int(i) for r in result.results.values() for i in r.ids]
    assert sorted(seen) == list(mixed_dataset)
    assert len(seen) == len(set(seen))


def test_singleton_partition_is_passed_unchanged(two_lines_dataset, recording_algorithm, fixed_neighborhood):
    """An isolated object gets the full dimensionality and its own partition."""
    windows = {
        0: [(0.0, 0)],
        1: [(0.0, 1), (0.14, 2)],
        2: [(0.0, 2), (0.14, 1)],
        3: [(0.0, 3), (0.14, 4)],
        4: [(0.0, 4), (0.14, 5)],
        5: [(0.0, 5), (0.14, 4)],
    }
    copac = COPAC(recording_algorithm, neighborhood=fixed_neighborhood(windows))
    result = copac.run(two_lines_dataset)

    assert dict(result.partition_map) == {1: (1, 2, 3, 4, 5), 2: (0,)}
    singleton = recording_algorithm.calls[1]
    assert list(singleton) == [0]
    np.testing.assert_array_equal(singleton.vectors, [[0.0, 0.0]])
    assert result.results[2].clusters() == {0: [0]}


def test_labels_by_id_and_to_dict(two_lines_dataset):
    copac = COPAC(SingleClusterClustering(), neighborhood=KNNNeighborhood(k=3))
    result = copac.run(two_lines_dataset)

    assert result.labels_by_id() == {i: (1, 0) for i in range(6)}
    assert result.n_clusters == 1

    flat = result.to_dict()
    assert flat["n_partitions"] == 1
    assert flat["dimensionality"] == 2
    assert flat["partitions"]["1"]["size"] == 6
    assert flat["partitions"]["1"]["clusters"] == {"0": [0, 1, 2, 3, 4, 5]}


# ------------------------------------------------------------------
# Orchestrator contract
# ------------------------------------------------------------------


def test_copac_rejects_non_clustering_algorithm():
    with pytest.raises(ParameterError, match="ClusteringAlgorithm"):
        COPAC(SizeAlgorithm())


def test_copaa_accepts_any_algorithm(two_lines_dataset):
    copaa = COPAA(SizeAlgorithm(), neighborhood=KNNNeighborhood(k=3))
    result = copaa.run(two_lines_dataset)

    assert isinstance(result, PartitionResults)
    assert dict(result.results) == {1: 6}


def test_copaa_rejects_object_without_run():
    with pytest.raises(ParameterError, match="run\\(\\) and get_result\\(\\)"):
        COPAA(object())


def test_invalid_max_workers(recording_algorithm):
    with pytest.raises(ParameterError, match="max_workers"):
        COPAC(recording_algorithm, max_workers=0)


def test_get_result_before_run(recording_algorithm):
    with pytest.raises(FatalStateError, match="has not been run"):
        COPAC(recording_algorithm).get_result()


def test_algorithm_failure_propagates(two_lines_dataset):
    copac = COPAC(FailingClustering(), neighborhood=KNNNeighborhood(k=3))

    with pytest.raises(RuntimeError, match="boom"):
        copac.run(two_lines_dataset)
    with pytest.raises(FatalStateError):
        copac.get_result()


def test_non_finite_window_raises_numeric_error(fixed_neighborhood):
    dataset = Dataset(np.array([[0.0, 0.0], [1.0, np.nan]]))
    windows = {0: [(0.0, 0), (1.0, 1)], 1: [(0.0, 1), (1.0, 0)]}
    copac = COPAC(SingleClusterClustering(), neighborhood=fixed_neighborhood(windows))

    with pytest.raises(NumericError):
        copac.run(dataset)


def test_non_finite_dataset_raises_numeric_error():
    dataset = Dataset(np.array([[0.0, 0.0], [1.0, np.inf], [2.0, 2.0]]))
    with pytest.raises(NumericError):
        COPAC(SingleClusterClustering(), neighborhood=KNNNeighborhood(k=2)).run(dataset)


def test_observer_events(two_lines_dataset):
    events = []
    copac = COPAC(
        SingleClusterClustering(),
        neighborhood=KNNNeighborhood(k=3),
        observer=lambda event, payload: events.append((event, payload)),
    )
    copac.run(two_lines_dataset)

    dimension_events = [p for e, p in events if e == "dimension"]
    assert [p["object_id"] for p in dimension_events] == list(range(6))
    assert all(p["dimension"] == 1 for p in dimension_events)
    assert [e for e, _ in events[6:]] == ["partition_started", "partition_finished"]
    assert events[6][1] == {"partition_id": 1, "size": 6}


def test_dimension_events_arrive_while_estimating(two_lines_dataset):
    """Each object is reported before the next one is estimated."""
    cancel = threading.Event()
    events = []

    def observer(event, payload):
        events.append((event, payload))
        if event == "dimension":
            cancel.set()

    copac = COPAC(
        SingleClusterClustering(), neighborhood=KNNNeighborhood(k=3), observer=observer
    )
    with pytest.raises(OrchestrationCancelled):
        copac.run(two_lines_dataset, cancel_event=cancel)
    assert events == [("dimension", {"object_id": 0, "dimension": 1})]


def test_threaded_local_pca_matches_sequential(mixed_dataset):
    sequential = COPAC(SingleClusterClustering(), neighborhood=KNNNeighborhood(k=MIXED_K))
    threaded = COPAC(
        SingleClusterClustering(), neighborhood=KNNNeighborhood(k=MIXED_K), max_workers=4
    )

    assert threaded.local_dimensions(mixed_dataset) == sequential.local_dimensions(mixed_dataset)
    assert dict(threaded.run(mixed_dataset).partition_map) == dict(
        sequential.run(mixed_dataset).partition_map
    )


def test_cancel_before_run(two_lines_dataset, recording_algorithm):
    cancel = threading.Event()
    cancel.set()
    copac = COPAC(recording_algorithm, neighborhood=KNNNeighborhood(k=3))

    with pytest.raises(OrchestrationCancelled):
        copac.run(two_lines_dataset, cancel_event=cancel)
    assert recording_algorithm.calls == []


def test_cancel_between_partitions(mixed_dataset, recording_algorithm):
    cancel = threading.Event()

    def observer(event, payload):
        if event == "partition_finished":
            cancel.set()

    copac = COPAC(
        recording_algorithm,
        neighborhood=KNNNeighborhood(k=MIXED_K),
        observer=observer,
    )
    with pytest.raises(OrchestrationCancelled):
        copac.run(mixed_dataset, cancel_event=cancel)
    assert len(recording_algorithm.calls) == 1


def test_default_wiring():
    copac = COPAC(SingleClusterClustering())
    assert copac.neighborhood.k == 20
    assert copac.pca_runner.eigenpair_filter.alpha == 0.85
    assert (copac.pca_runner.big, copac.pca_runner.small) == (1.0, 0.0)
