"""
Tests for the in-memory Dataset.
"""

import numpy as np
import pytest

from copac.database import Dataset
from copac.errors import FatalStateError


@pytest.fixture
def dataset():
    X = np.array([[0.0, 1.0], [2.0, 3.0], [4.0, 5.0], [6.0, 7.0]])
    return Dataset(X, ids=[10, 20, 30, 40])


def test_basic_properties(dataset):
    assert len(dataset) == 4
    assert dataset.dimensionality == 2
    assert list(dataset) == [10, 20, 30, 40]
    assert 30 in dataset
    assert 31 not in dataset
    np.testing.assert_array_equal(dataset.vector(30), [4.0, 5.0])
    assert dataset.row_of(40) == 3


def test_default_ids():
    ds = Dataset(np.zeros((3, 2)))
    np.testing.assert_array_equal(ds.ids, [0, 1, 2])


def test_one_dimensional_input_is_a_column():
    ds = Dataset(np.array([1.0, 2.0, 3.0]))
    assert ds.vectors.shape == (3, 1)


def test_arrays_are_read_only(dataset):
    with pytest.raises(ValueError):
        dataset.vectors[0, 0] = 1.0
    with pytest.raises(ValueError):
        dataset.ids[0] = 1


def test_duplicate_ids_rejected():
    with pytest.raises(ValueError, match="unique"):
        Dataset(np.zeros((2, 2)), ids=[1, 1])


def test_id_count_must_match():
    with pytest.raises(ValueError, match="Expected 2 ids"):
        Dataset(np.zeros((2, 2)), ids=[1, 2, 3])


def test_unknown_id(dataset):
    with pytest.raises(KeyError, match="Unknown object id"):
        dataset.vector(99)


def test_vectors_for_keeps_order(dataset):
    np.testing.assert_array_equal(dataset.vectors_for([30, 10]), [[4.0, 5.0], [0.0, 1.0]])
    assert dataset.vectors_for([]).shape == (0, 2)


def test_subset_keeps_original_ids(dataset):
    sub = dataset.subset([40, 20])
    assert list(sub) == [40, 20]
    np.testing.assert_array_equal(sub.vectors, [[6.0, 7.0], [2.0, 3.0]])


def test_partition(dataset):
    parts = dataset.partition({2: [20, 40], 1: [10, 30]})

    assert list(parts) == [1, 2]
    assert list(parts[1]) == [10, 30]
    np.testing.assert_array_equal(parts[2].vectors, [[2.0, 3.0], [6.0, 7.0]])


@pytest.mark.parametrize(
    "mapping, message",
    [
        ({1: [10, 20, 30, 40, 50]}, "unknown object id"),
        ({1: [10, 20], 2: [20, 30, 40]}, "more than one partition"),
        ({1: [10, 20, 30]}, "missing from partition map"),
    ],
)
def test_partition_rejects_inconsistent_maps(dataset, mapping, message):
    with pytest.raises(FatalStateError, match=message):
        dataset.partition(mapping)
