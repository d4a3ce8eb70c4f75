# sparse_knn/search.py
# -----------------------------------------------------------------------------
# Exact brute-force neighbour search over a TrainingStore.
#
# Every stored vector is scored against the query; a fixed-capacity max-heap
# keyed by (distance, store index) keeps the k best seen so far. Keying on the
# index makes ties deterministic: the earlier-inserted example wins.
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from .distance import Distance
from .store import TrainingStore
from .vectors import SparseVector

Key = Tuple[float, int]


@dataclass(frozen=True)
class Neighbour:
    distance: float
    index: int      # position of the example in the TrainingStore
    output: Any


class BoundedMaxHeap:
    """
    Binary max-heap over a pre-sized list, holding at most `capacity` entries.

    The root is always the worst (largest) key retained. Once full, a new key
    only enters by replacing the root, and only if it is strictly smaller.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = int(capacity)
        self._keys: List[Optional[Key]] = [None] * self.capacity
        self._items: List[Any] = [None] * self.capacity
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def full(self) -> bool:
        return self._size == self.capacity

    def peek(self) -> Optional[Key]:
        return self._keys[0] if self._size else None

    def offer(self, key: Key, item: Any) -> bool:
        """Insert (key, item) if it belongs in the top-k. Returns True when kept."""
        if self._size < self.capacity:
            pos = self._size
            self._keys[pos] = key
            self._items[pos] = item
            self._size += 1
            self._sift_up(pos)
            return True
        if key < self._keys[0]:
            self._keys[0] = key
            self._items[0] = item
            self._sift_down(0)
            return True
        return False

    def drain_sorted(self) -> List[Tuple[Key, Any]]:
        """Return retained entries sorted ascending by key."""
        pairs = [(self._keys[i], self._items[i]) for i in range(self._size)]
        pairs.sort(key=lambda kv: kv[0])
        return pairs

    # ------------------------------ heap mechanics ------------------------- #

    def _swap(self, i: int, j: int) -> None:
        self._keys[i], self._keys[j] = self._keys[j], self._keys[i]
        self._items[i], self._items[j] = self._items[j], self._items[i]

    def _sift_up(self, pos: int) -> None:
        keys = self._keys
        while pos > 0:
            parent = (pos - 1) // 2
            if keys[pos] > keys[parent]:
                self._swap(pos, parent)
                pos = parent
            else:
                break

    def _sift_down(self, pos: int) -> None:
        keys, n = self._keys, self._size
        while True:
            left = 2 * pos + 1
            if left >= n:
                break
            largest = left
            right = left + 1
            if right < n and keys[right] > keys[left]:
                largest = right
            if keys[largest] > keys[pos]:
                self._swap(pos, largest)
                pos = largest
            else:
                break


def find_neighbours(
    query: SparseVector,
    store: TrainingStore,
    k: int,
    distance: Distance,
) -> List[Neighbour]:
    """
    Return exactly k neighbours of `query`, sorted by non-decreasing distance.

    Parameters
    ----------
    query : SparseVector
        Must have the store's dimension.
    store : TrainingStore
        Read-only; scanned in insertion order.
    k : int
        1 <= k <= len(store).
    distance : Distance
        Metric; smaller is closer for all members.
    """
    if k < 1:
        raise ValueError("k must be greater than 0")
    if k > len(store):
        raise ValueError(f"k ({k}) exceeds training-set size ({len(store)}).")

    heap = BoundedMaxHeap(k)
    for idx, example in enumerate(store):
        d = distance(query, example.vector)
        heap.offer((d, idx), example.output)

    return [Neighbour(distance=d, index=idx, output=out) for (d, idx), out in heap.drain_sorted()]
