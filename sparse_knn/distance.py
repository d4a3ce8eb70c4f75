# sparse_knn/distance.py
# -----------------------------------------------------------------------------
# Distance functions between SparseVectors: L1, L2 and cosine.
# Cosine is reported as (1 - similarity) so that, for every metric, a smaller
# value means a closer neighbour and search can always sort ascending.
# -----------------------------------------------------------------------------

from __future__ import annotations

import math
from enum import Enum

import numpy as np

from .vectors import SparseVector


def l1_distance(a: SparseVector, b: SparseVector) -> float:
    """Sum of |a_i - b_i| over the union of non-zero ids."""
    va, vb = a.aligned(b)
    return float(np.abs(va - vb).sum())


def l2_distance(a: SparseVector, b: SparseVector) -> float:
    """Euclidean distance over the union of non-zero ids."""
    va, vb = a.aligned(b)
    diff = va - vb
    return math.sqrt(float(np.dot(diff, diff)))


def cosine_similarity(a: SparseVector, b: SparseVector) -> float:
    # Zero-norm vectors have no direction; define their similarity as 0.
    denom = a.squared_l2_norm() * b.squared_l2_norm()
    if denom == 0.0:
        a.check_dimension(b)
        return 0.0
    sim = a.dot(b) / math.sqrt(denom)
    return min(1.0, max(-1.0, sim))


def cosine_distance(a: SparseVector, b: SparseVector) -> float:
    return 1.0 - cosine_similarity(a, b)


_FUNCS = {
    "L1": l1_distance,
    "L2": l2_distance,
    "COSINE": cosine_distance,
}


class Distance(Enum):
    """The available distance functions."""

    L1 = "l1"
    L2 = "l2"
    COSINE = "cosine"

    def __call__(self, a: SparseVector, b: SparseVector) -> float:
        return _FUNCS[self.name](a, b)

    @classmethod
    def parse(cls, value) -> "Distance":
        """Accept a Distance, or its name/value in any case ("cosine", "L2")."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().upper()
        if key not in cls.__members__:
            raise ValueError(f"Unknown distance '{value}'; expected one of {[m.value for m in cls]}.")
        return cls[key]
