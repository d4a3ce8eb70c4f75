# sparse_knn/trainer.py
# -----------------------------------------------------------------------------
# Trainer for k-NN models.
#
# Training is a single sequential pass: each example becomes a SparseVector
# (via the dataset's FeatureMap) paired with its output, in dataset order.
# That order is the TrainingStore order, which later decides distance ties.
#
# The invocation counter lives with the caller (InvocationCounter) rather than
# on the trainer, so one trainer can be reused without hidden state.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import KNNConfig, PropertyError
from .dataset import Dataset
from .model import KNNModel, ModelProvenance
from .store import TrainingExample, TrainingStore

LOGGER = logging.getLogger(__name__)

INCREMENT_INVOCATION_COUNT = -1


class InvocationCountError(ValueError):
    """A negative invocation count was supplied."""


class InvocationCounter:
    """Caller-owned count of train() calls."""

    def __init__(self, start: int = 0):
        self._lock = threading.Lock()
        self._count = 0
        self.set(start)

    @property
    def count(self) -> int:
        return self._count

    def set(self, value: int) -> None:
        if value < 0:
            raise InvocationCountError("The supplied invocation count is less than zero.")
        with self._lock:
            self._count = int(value)

    def increment(self) -> int:
        with self._lock:
            self._count += 1
            return self._count


class KNNTrainer:
    """
    Builds KNNModel instances.

    Parameters
    ----------
    config : KNNConfig
        Already validated (k >= 1 etc.) at construction.
    """

    def __init__(self, config: KNNConfig):
        self.config = config

    def train(
        self,
        dataset: Dataset,
        run_provenance: Optional[Dict[str, Any]] = None,
        invocation_count: int = INCREMENT_INVOCATION_COUNT,
        counter: Optional[InvocationCounter] = None,
    ) -> KNNModel:
        """
        Convert `dataset` into a TrainingStore and wrap it in a KNNModel.

        Parameters
        ----------
        dataset : Dataset
            Examples plus the FeatureMap that defines the vector space.
        run_provenance : dict, optional
            Extra audit info for this run; stored, never interpreted.
        invocation_count : int
            INCREMENT_INVOCATION_COUNT to continue from `counter`, or an
            explicit non-negative value to reset it to before incrementing.
        counter : InvocationCounter, optional
            Caller-owned counter; a fresh one is used when omitted.
        """
        if invocation_count != INCREMENT_INVOCATION_COUNT and invocation_count < 0:
            raise InvocationCountError("The supplied invocation count is less than zero.")
        counter = counter if counter is not None else InvocationCounter()

        fmap = dataset.feature_map
        store = TrainingStore(
            TrainingExample(fmap.vectorize(ex.features, allow_empty=True), ex.output) for ex in dataset
        )
        if self.config.k > len(store):
            raise PropertyError("k", f"k ({self.config.k}) exceeds training-set size ({len(store)})")

        if invocation_count != INCREMENT_INVOCATION_COUNT:
            counter.set(invocation_count)
        count = counter.increment()

        provenance = ModelProvenance(
            class_name=KNNModel.__name__,
            trained_at=datetime.now(timezone.utc),
            dataset=dict(dataset.provenance),
            trainer={"class_name": type(self).__name__, "invocation_count": count, **self.config.snapshot()},
            run=dict(run_provenance or {}),
        )
        LOGGER.info("Trained %s on %d examples (%d features)", self, len(store), len(fmap))
        return KNNModel(f"{self.config.k}nn", store, fmap, self.config, provenance)

    def __repr__(self) -> str:
        cfg = self.config
        return (
            f"KNNTrainer(k={cfg.k},distance={cfg.distance.name},combiner={cfg.combiner!r},"
            f"num_threads={cfg.num_threads})"
        )
