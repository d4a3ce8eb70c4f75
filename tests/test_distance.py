"""Tests for distance metrics."""

import math

import numpy as np
import pytest

from sparse_knn.distance import Distance, cosine_similarity
from sparse_knn.vectors import DimensionMismatchError, SparseVector


@pytest.fixture
def pair():
    """Two overlapping sparse vectors in a 4-d space."""
    a = SparseVector.from_mapping({0: 1.0, 2: 3.0}, 4)
    b = SparseVector.from_mapping({1: 2.0, 2: 1.0}, 4)
    return a, b


def test_l1(pair):
    """L1 sums absolute differences over the union of ids."""
    a, b = pair
    assert Distance.L1(a, b) == pytest.approx(5.0)


def test_l2(pair):
    """L2 is the Euclidean distance over the union of ids."""
    a, b = pair
    assert Distance.L2(a, b) == pytest.approx(3.0)


def test_cosine_is_one_minus_similarity(pair):
    """Cosine distance is reported so that smaller means closer."""
    a, b = pair
    expected = 1.0 - 3.0 / math.sqrt(10.0 * 5.0)
    assert Distance.COSINE(a, b) == pytest.approx(expected)
    assert cosine_similarity(a, b) == pytest.approx(3.0 / math.sqrt(50.0))


def test_cosine_zero_norm():
    """A zero vector has similarity 0, hence distance 1."""
    zero = SparseVector.from_mapping({}, 3)
    v = SparseVector.from_mapping({1: 2.0}, 3)
    assert Distance.COSINE(zero, v) == 1.0
    assert Distance.COSINE(zero, zero) == 1.0


def random_vectors(seed, count=10, size=12):
    rng = np.random.default_rng(seed)
    for _ in range(count):
        row = rng.normal(size=size) * (rng.random(size) < 0.5)
        row[0] = 1.0
        yield SparseVector.from_dense(row)


@pytest.mark.parametrize("metric", [Distance.L1, Distance.L2])
def test_distance_to_self_is_exactly_zero(metric):
    """L1 and L2 put a vector at exactly 0 from itself."""
    for v in random_vectors(7):
        assert metric(v, v) == 0.0


def test_cosine_distance_to_self_is_zero():
    """Cosine self-distance is 0 up to floating-point rounding of the norms."""
    for v in random_vectors(7):
        assert Distance.COSINE(v, v) == pytest.approx(0.0, abs=1e-12)


@pytest.mark.parametrize("metric", list(Distance))
def test_symmetric_and_non_negative(metric):
    """Distances are symmetric and never negative."""
    rng = np.random.default_rng(3)
    for _ in range(10):
        a = SparseVector.from_dense(rng.normal(size=8) * (rng.random(8) < 0.6))
        b = SparseVector.from_dense(rng.normal(size=8) * (rng.random(8) < 0.6))
        assert metric(a, b) >= 0.0
        assert metric(a, b) == pytest.approx(metric(b, a))


@pytest.mark.parametrize("metric", list(Distance))
def test_dimension_mismatch(metric):
    """Vectors from different feature spaces are a contract violation."""
    a = SparseVector.from_mapping({0: 1.0}, 2)
    b = SparseVector.from_mapping({0: 1.0}, 3)
    with pytest.raises(DimensionMismatchError):
        metric(a, b)


def test_l2_matches_dense():
    """L2 agrees with numpy on random rows."""
    rng = np.random.default_rng(11)
    a = rng.normal(size=20) * (rng.random(20) < 0.4)
    b = rng.normal(size=20) * (rng.random(20) < 0.4)
    got = Distance.L2(SparseVector.from_dense(a), SparseVector.from_dense(b))
    assert got == pytest.approx(float(np.linalg.norm(a - b)))


@pytest.mark.parametrize("name, expected", [("l1", Distance.L1), ("L2", Distance.L2), (" Cosine ", Distance.COSINE)])
def test_parse(name, expected):
    """Names are accepted case-insensitively."""
    assert Distance.parse(name) is expected
    assert Distance.parse(expected) is expected


def test_parse_unknown():
    """Unknown names are rejected."""
    with pytest.raises(ValueError):
        Distance.parse("chebyshev")
