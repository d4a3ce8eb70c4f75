# sparse_knn/config.py
# -----------------------------------------------------------------------------
# k-NN configuration: validated once, at construction, before any model exists.
#
# Mandatory : k, distance, combiner
# Optional  : num_threads (default 1), backend (default "threadpool")
# -----------------------------------------------------------------------------

from __future__ import annotations

import json
import numbers
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping

from .combiners import OutputCombiner, get_combiner
from .distance import Distance
from .scheduler import Backend

MANDATORY = ("k", "distance", "combiner")


class PropertyError(ValueError):
    """A configuration field holds an invalid value."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


@dataclass
class KNNConfig:
    k: int
    distance: Distance
    combiner: OutputCombiner
    num_threads: int = 1
    backend: Backend = Backend.THREADPOOL

    def __post_init__(self):
        if isinstance(self.k, bool) or not isinstance(self.k, numbers.Integral):
            raise PropertyError("k", f"k must be an integer, got {self.k!r}")
        if self.k < 1:
            raise PropertyError("k", "k must be greater than 0")
        if isinstance(self.num_threads, bool) or not isinstance(self.num_threads, numbers.Integral):
            raise PropertyError("num_threads", f"num_threads must be an integer, got {self.num_threads!r}")
        if self.num_threads < 1:
            raise PropertyError("num_threads", "num_threads must be greater than 0")
        self.k, self.num_threads = int(self.k), int(self.num_threads)
        try:
            self.distance = Distance.parse(self.distance)
        except ValueError as e:
            raise PropertyError("distance", str(e)) from e
        try:
            self.backend = Backend.parse(self.backend)
        except ValueError as e:
            raise PropertyError("backend", str(e)) from e
        try:
            self.combiner = get_combiner(self.combiner)
        except (ValueError, TypeError) as e:
            raise PropertyError("combiner", str(e)) from e

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "KNNConfig":
        missing = [name for name in MANDATORY if name not in data]
        if missing:
            raise PropertyError(missing[0], "mandatory field is missing")
        return cls(
            k=data["k"],
            distance=data["distance"],
            combiner=data["combiner"],
            num_threads=data.get("num_threads", 1),
            backend=data.get("backend", Backend.THREADPOOL),
        )

    def snapshot(self) -> Dict[str, Any]:
        """JSON-friendly copy for provenance records."""
        return {
            "k": self.k,
            "distance": self.distance.value,
            "combiner": repr(self.combiner),
            "num_threads": self.num_threads,
            "backend": self.backend.value,
        }


def load_config(path) -> KNNConfig:
    """Read a JSON config file, e.g. {"k": 5, "distance": "cosine", "combiner": "vote"}."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    return KNNConfig.from_dict(json.loads(path.read_text()))
