# sparse_knn/model.py
# -----------------------------------------------------------------------------
# Trained k-NN model: a TrainingStore plus the configuration used to query it.
#
# predict() vectorizes each query, runs exact neighbour search, combines the k
# neighbours and returns one Prediction per query, in input order. Queries are
# independent; the store is shared read-only between worker threads.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

from .combiners import Prediction
from .config import KNNConfig
from .dataset import Example, FeatureMap
from .scheduler import InferenceScheduler, QueryFailure
from .search import Neighbour, find_neighbours
from .store import TrainingStore
from .vectors import DimensionMismatchError, SparseVector

LOGGER = logging.getLogger(__name__)

Query = Union[SparseVector, Mapping[str, float], Example]


@dataclass(frozen=True)
class ModelProvenance:
    """Audit record of how a model was produced. Never read by inference."""

    class_name: str
    trained_at: datetime
    dataset: Dict[str, Any] = field(default_factory=dict)
    trainer: Dict[str, Any] = field(default_factory=dict)
    run: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "class_name": self.class_name,
            "trained_at": self.trained_at.isoformat(),
            "dataset": dict(self.dataset),
            "trainer": dict(self.trainer),
            "run": dict(self.run),
        }


class KNNModel:
    """
    Exact k-nearest-neighbour model over sparse vectors.

    Parameters
    ----------
    name : str
        Display name, e.g. "5nn".
    store : TrainingStore
        Training vectors and outputs; never mutated.
    feature_map : FeatureMap
        Used to vectorize named-feature queries.
    config : KNNConfig
        k, distance, combiner, num_threads, backend.
    provenance : ModelProvenance
    """

    def __init__(
        self,
        name: str,
        store: TrainingStore,
        feature_map: FeatureMap,
        config: KNNConfig,
        provenance: ModelProvenance,
    ):
        self.name = name
        self.store = store
        self.feature_map = feature_map
        self.config = config
        self.provenance = provenance

    # ----------------------------- public API ----------------------------- #

    def predict(self, queries: Sequence[Query], fail_fast: bool = False) -> List[Union[Prediction, QueryFailure]]:
        """
        Predict every query. output[i] corresponds to queries[i].

        A malformed query yields a QueryFailure in its slot; the rest of the
        batch is unaffected. Pass fail_fast=True to raise on the first error.
        """
        scheduler = InferenceScheduler(self.config.num_threads, self.config.backend)
        results = scheduler.run(self.predict_one, queries, fail_fast=fail_fast)
        n_failed = sum(isinstance(r, QueryFailure) for r in results)
        if n_failed:
            LOGGER.info("%d of %d queries failed", n_failed, len(results))
        return results

    def predict_one(self, query: Query) -> Prediction:
        return self.config.combiner.combine(self.neighbours(query))

    def neighbours(self, query: Query) -> List[Neighbour]:
        """The k nearest training examples, nearest first."""
        vec = self.vectorize(query)
        return find_neighbours(vec, self.store, self.config.k, self.config.distance)

    def predict_topk(self, queries: Sequence[Query], top: int = 3) -> List[List[Tuple[Any, float]]]:
        """
        Return, for each query, a ranked list of (label, score) pairs.
        Failed queries get an empty list.
        """
        out = []
        for res in self.predict(queries):
            out.append([] if isinstance(res, QueryFailure) else res.ranked(top))
        return out

    def vectorize(self, query: Query) -> SparseVector:
        if isinstance(query, SparseVector):
            if query.dimension != self.store.dimension:
                raise DimensionMismatchError(self.store.dimension, query.dimension)
            return query
        if isinstance(query, Example):
            return self.feature_map.vectorize(query.features)
        if isinstance(query, Mapping):
            return self.feature_map.vectorize(query)
        raise TypeError(f"Unsupported query type: {type(query).__name__}")

    def __repr__(self) -> str:
        cfg = self.config
        return (
            f"KNNModel(name={self.name!r}, size={len(self.store)}, k={cfg.k}, "
            f"distance={cfg.distance.value}, combiner={cfg.combiner!r})"
        )
