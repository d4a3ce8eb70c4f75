"""Tests for sparse vectors."""

import pickle

import numpy as np
import pytest
from scipy.sparse import csr_matrix

from sparse_knn.vectors import DimensionMismatchError, SparseVector


def test_zeros_dropped_and_ids_sorted():
    """Construction drops zero entries and orders ids ascending."""
    v = SparseVector.from_mapping({5: 2.0, 1: 0.0, 3: -1.5}, 8)
    assert list(v.items()) == [(3, -1.5), (5, 2.0)]
    assert v.nnz == 2
    assert v.dimension == 8


def test_invalid_construction():
    """Out-of-range and duplicate ids are rejected."""
    with pytest.raises(ValueError):
        SparseVector.from_mapping({4: 1.0}, 4)
    with pytest.raises(ValueError):
        SparseVector.from_mapping({-1: 1.0}, 4)
    with pytest.raises(ValueError):
        SparseVector([1, 1], [1.0, 2.0], 4)
    with pytest.raises(ValueError):
        SparseVector([1, 2], [1.0], 4)


def test_vector_is_read_only():
    """The backing arrays cannot be written to."""
    v = SparseVector.from_mapping({0: 1.0}, 2)
    with pytest.raises(ValueError):
        v.values[0] = 3.0


def test_norms():
    """L1 and squared L2 norms."""
    v = SparseVector.from_mapping({0: 3.0, 2: -4.0}, 3)
    assert v.l1_norm() == pytest.approx(7.0)
    assert v.squared_l2_norm() == pytest.approx(25.0)
    assert v.l2_norm() == pytest.approx(5.0)


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ({0: 1.0, 2: 3.0}, {1: 2.0, 2: 1.0}, 3.0),
        ({0: 1.0}, {1: 1.0}, 0.0),
        ({}, {1: 1.0}, 0.0),
        ({0: 2.0, 1: 3.0, 3: 1.0}, {0: 1.0, 1: 1.0, 2: 5.0, 3: 2.0}, 7.0),
    ],
)
def test_dot(a, b, expected):
    """Dot product only counts shared ids, in either argument order."""
    va = SparseVector.from_mapping(a, 4)
    vb = SparseVector.from_mapping(b, 4)
    assert va.dot(vb) == pytest.approx(expected)
    assert vb.dot(va) == pytest.approx(expected)


def test_dot_matches_dense():
    """Dot product agrees with numpy on random sparse rows."""
    rng = np.random.default_rng(0)
    for _ in range(20):
        a = rng.normal(size=30) * (rng.random(30) < 0.3)
        b = rng.normal(size=30) * (rng.random(30) < 0.5)
        va, vb = SparseVector.from_dense(a), SparseVector.from_dense(b)
        assert va.dot(vb) == pytest.approx(float(a @ b))


def test_dimension_mismatch():
    """Combining vectors of different dimension fails fast."""
    a = SparseVector.from_mapping({0: 1.0}, 3)
    b = SparseVector.from_mapping({0: 1.0}, 4)
    with pytest.raises(DimensionMismatchError):
        a.dot(b)
    with pytest.raises(DimensionMismatchError):
        a.aligned(b)


def test_from_csr_row_and_dense_round_trip():
    """CSR rows and dense rows produce the same vector."""
    dense = np.array([[0.0, 1.0, 0.0, 2.0], [3.0, 0.0, 0.0, 0.0]])
    m = csr_matrix(dense)
    for row in range(2):
        v = SparseVector.from_csr_row(m, row)
        assert v.dimension == 4
        np.testing.assert_array_equal(v.to_dense(), dense[row])
        assert list(v.items()) == list(SparseVector.from_dense(dense[row]).items())


def test_pickle_keeps_vector_read_only():
    """An unpickled vector is still read-only and keeps consistent norms."""
    v = SparseVector.from_mapping({0: 1.0, 2: 3.0}, 4)
    loaded = pickle.loads(pickle.dumps(v))
    assert not loaded.values.flags.writeable
    assert not loaded.indices.flags.writeable
    with pytest.raises(ValueError):
        loaded.values[0] = 99.0
    assert loaded.squared_l2_norm() == pytest.approx(10.0)
    assert list(loaded.items()) == list(v.items())
    assert loaded.dimension == 4
