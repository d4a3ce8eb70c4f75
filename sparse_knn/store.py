# sparse_knn/store.py
# -----------------------------------------------------------------------------
# Immutable, ordered collection of (SparseVector, output) training pairs.
# Built once by the trainer; read concurrently by every inference worker.
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Tuple

from .vectors import DimensionMismatchError, SparseVector


@dataclass(frozen=True)
class TrainingExample:
    vector: SparseVector
    output: Any


class TrainingStore:
    """
    Ordered, read-only sequence of TrainingExample.

    Insertion order is meaningful: neighbour search breaks distance ties in
    favour of the earlier example.
    """

    __slots__ = ("_examples", "_dimension")

    def __init__(self, examples: Iterable[TrainingExample]):
        items: Tuple[TrainingExample, ...] = tuple(examples)
        if not items:
            raise ValueError("Empty training set.")
        dim = items[0].vector.dimension
        for ex in items:
            if ex.vector.dimension != dim:
                raise DimensionMismatchError(dim, ex.vector.dimension)
        self._examples = items
        self._dimension = dim

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[SparseVector, Any]]) -> "TrainingStore":
        return cls(TrainingExample(v, out) for v, out in pairs)

    @property
    def dimension(self) -> int:
        return self._dimension

    def __len__(self) -> int:
        return len(self._examples)

    def __iter__(self) -> Iterator[TrainingExample]:
        return iter(self._examples)

    def __getitem__(self, i: int) -> TrainingExample:
        return self._examples[i]

    def __repr__(self) -> str:
        return f"TrainingStore(size={len(self)}, dimension={self._dimension})"
