# sparse_knn/vectors.py
# -----------------------------------------------------------------------------
# Immutable sparse vectors keyed by integer feature id.
# Storage is two parallel numpy arrays (sorted ids, values) marked read-only,
# so a vector can be shared by any number of inference threads without locks.
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import Iterator, Mapping, Tuple

import numpy as np
from scipy import sparse


class DimensionMismatchError(ValueError):
    """Raised when two vectors with different dimensions are combined."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Dimension mismatch: expected {expected}, found {actual}.")
        self.expected = expected
        self.actual = actual


class SparseVector:
    """
    Fixed-dimension sparse vector.

    Parameters
    ----------
    indices : array-like of int
        Feature ids of the non-zero entries. Need not be sorted.
    values : array-like of float
        Values aligned with `indices`. Zeros are dropped.
    dimension : int
        Size of the feature-id space; every id must be in [0, dimension).

    Notes
    -----
    - Ids are kept sorted ascending, so `items()` is ordered and the
      union/intersection helpers below can rely on `np.searchsorted`.
    - `dot` looks up the ids of the shorter vector inside the longer one, so
      the work is driven by min(nnz_a, nnz_b).
    """

    __slots__ = ("_indices", "_values", "_dimension", "_sq_norm", "_l1")

    def __init__(self, indices, values, dimension: int):
        idx = np.asarray(indices, dtype=np.int64).reshape(-1)
        val = np.asarray(values, dtype=np.float64).reshape(-1)
        if idx.shape != val.shape:
            raise ValueError("indices and values must have the same length.")
        dimension = int(dimension)
        if dimension < 0:
            raise ValueError("dimension must be non-negative.")
        if idx.size:
            if idx.min() < 0 or idx.max() >= dimension:
                raise ValueError(f"Feature ids must lie in [0, {dimension}).")

        order = np.argsort(idx, kind="stable")
        idx, val = idx[order], val[order]
        if idx.size > 1 and np.any(idx[1:] == idx[:-1]):
            raise ValueError("Duplicate feature ids in sparse vector.")

        keep = val != 0.0
        idx, val = idx[keep], val[keep]
        idx.setflags(write=False)
        val.setflags(write=False)

        self._indices = idx
        self._values = val
        self._dimension = dimension
        # Norms are cached at construction; the vector never changes afterwards.
        self._sq_norm = float(np.dot(val, val))
        self._l1 = float(np.abs(val).sum())

    def __reduce__(self):
        # unpickle through __init__ so the arrays come back read-only
        return (SparseVector, (self._indices, self._values, self._dimension))

    # ------------------------------ constructors --------------------------- #

    @classmethod
    def from_mapping(cls, entries: Mapping[int, float], dimension: int) -> "SparseVector":
        ids = list(entries.keys())
        return cls(ids, [entries[i] for i in ids], dimension)

    @classmethod
    def from_dense(cls, row) -> "SparseVector":
        row = np.asarray(row, dtype=np.float64)
        if row.ndim != 1:
            raise ValueError("Dense row must be 1D.")
        nz = np.flatnonzero(row)
        return cls(nz, row[nz], row.shape[0])

    @classmethod
    def from_csr_row(cls, matrix, row: int) -> "SparseVector":
        """Build a vector from one row of a scipy.sparse matrix."""
        csr = sparse.csr_matrix(matrix)
        start, end = csr.indptr[row], csr.indptr[row + 1]
        return cls(csr.indices[start:end], csr.data[start:end], csr.shape[1])

    # ------------------------------- properties ---------------------------- #

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def nnz(self) -> int:
        return int(self._indices.size)

    @property
    def indices(self) -> np.ndarray:
        return self._indices

    @property
    def values(self) -> np.ndarray:
        return self._values

    # ------------------------------- operations ---------------------------- #

    def items(self) -> Iterator[Tuple[int, float]]:
        """Iterate over (id, value) pairs in ascending id order."""
        for i, v in zip(self._indices.tolist(), self._values.tolist()):
            yield i, v

    def squared_l2_norm(self) -> float:
        return self._sq_norm

    def l2_norm(self) -> float:
        return float(np.sqrt(self._sq_norm))

    def l1_norm(self) -> float:
        return self._l1

    def dot(self, other: "SparseVector") -> float:
        self.check_dimension(other)
        small, big = (self, other) if self.nnz <= other.nnz else (other, self)
        if small.nnz == 0:
            return 0.0
        pos = np.searchsorted(big._indices, small._indices)
        pos = np.minimum(pos, big.nnz - 1)
        hit = big._indices[pos] == small._indices
        if not hit.any():
            return 0.0
        return float(np.dot(small._values[hit], big._values[pos[hit]]))

    def aligned(self, other: "SparseVector") -> Tuple[np.ndarray, np.ndarray]:
        """
        Return the two value arrays laid out over the union of non-zero ids.
        Missing entries are zero-filled.
        """
        self.check_dimension(other)
        union = np.union1d(self._indices, other._indices)
        a = np.zeros(union.size, dtype=np.float64)
        b = np.zeros(union.size, dtype=np.float64)
        a[np.searchsorted(union, self._indices)] = self._values
        b[np.searchsorted(union, other._indices)] = other._values
        return a, b

    def check_dimension(self, other: "SparseVector") -> None:
        if other._dimension != self._dimension:
            raise DimensionMismatchError(self._dimension, other._dimension)

    def to_dense(self) -> np.ndarray:
        out = np.zeros(self._dimension, dtype=np.float64)
        out[self._indices] = self._values
        return out

    def __len__(self) -> int:
        return self._dimension

    def __repr__(self) -> str:
        body = ", ".join(f"({i},{v:g})" for i, v in self.items())
        return f"SparseVector(dim={self._dimension}, [{body}])"
