# sparse_knn/combiners.py
# -----------------------------------------------------------------------------
# Strategies that turn k neighbours into one prediction.
#
# Each combiner receives the neighbours nearest-first and returns a
# Prediction (output + score). Voting combiners also fill `label_scores`, so
# callers can rank alternative labels (top-k).
# Ties between labels break in favour of the label whose closest neighbour
# ranks earliest; neighbour order is itself deterministic (see search.py).
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from .search import Neighbour


@dataclass(frozen=True)
class Prediction:
    output: Any
    score: float
    label_scores: Optional[Dict[Any, float]] = None
    neighbours: Tuple[Neighbour, ...] = field(default=(), repr=False)

    def ranked(self, top: Optional[int] = None) -> List[Tuple[Any, float]]:
        """
        Return (label, score) pairs sorted by score desc. `label_scores` keeps
        labels in nearest-first order, so the stable sort breaks ties by rank.
        """
        if self.label_scores is None:
            return [(self.output, self.score)]
        ranked = sorted(self.label_scores.items(), key=lambda kv: -kv[1])
        return ranked if top is None else ranked[:top]


class OutputCombiner(Protocol):
    name: str

    def combine(self, neighbours: Sequence[Neighbour]) -> Prediction:
        ...


def _require(neighbours: Sequence[Neighbour]) -> None:
    if not neighbours:
        raise ValueError("Cannot combine an empty neighbour list.")


def _vote(neighbours: Sequence[Neighbour], weights: Sequence[float]) -> Prediction:
    # dict insertion order == first (nearest) appearance of each label
    scores: Dict[Any, float] = {}
    for nb, w in zip(neighbours, weights):
        scores[nb.output] = scores.get(nb.output, 0.0) + float(w)

    # strict '>' keeps the earlier-ranked label on equal scores
    best_label, best_score = None, -np.inf
    for lab, sc in scores.items():
        if sc > best_score:
            best_label, best_score = lab, sc

    total = sum(scores.values())
    shares = {lab: (sc / total if total > 0 else 0.0) for lab, sc in scores.items()}
    return Prediction(
        output=best_label,
        score=shares[best_label],
        label_scores=shares,
        neighbours=tuple(neighbours),
    )


def _inverse_distance(neighbours: Sequence[Neighbour], eps: float) -> np.ndarray:
    d = np.array([nb.distance for nb in neighbours], dtype=np.float64)
    return 1.0 / (d + eps)


class MajorityVote:
    """One vote per neighbour. Score is the winner's share of the k votes."""

    name = "vote"

    def combine(self, neighbours: Sequence[Neighbour]) -> Prediction:
        _require(neighbours)
        return _vote(neighbours, [1.0] * len(neighbours))

    def __repr__(self) -> str:
        return "MajorityVote()"


class WeightedVote:
    """
    Inverse-distance weighted vote.

    Parameters
    ----------
    eps : float
        Added to each distance so exact matches get a large but finite weight.
    """

    name = "weighted_vote"

    def __init__(self, eps: float = 1e-8):
        self.eps = float(eps)

    def combine(self, neighbours: Sequence[Neighbour]) -> Prediction:
        _require(neighbours)
        return _vote(neighbours, _inverse_distance(neighbours, self.eps))

    def __repr__(self) -> str:
        return f"WeightedVote(eps={self.eps})"


def _stack_outputs(neighbours: Sequence[Neighbour]) -> np.ndarray:
    try:
        return np.asarray([nb.output for nb in neighbours], dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise TypeError("Averaging combiners require numeric outputs.") from e


def _as_output(mean: np.ndarray) -> Any:
    return float(mean) if mean.ndim == 0 else mean


class Averaging:
    """Mean of the neighbours' numeric outputs. Score is the mean variance."""

    name = "mean"

    def combine(self, neighbours: Sequence[Neighbour]) -> Prediction:
        _require(neighbours)
        Y = _stack_outputs(neighbours)
        mean = Y.mean(axis=0)
        var = Y.var(axis=0)
        return Prediction(output=_as_output(mean), score=float(np.mean(var)), neighbours=tuple(neighbours))

    def __repr__(self) -> str:
        return "Averaging()"


class WeightedAveraging:
    """Inverse-distance weighted mean; score is the weighted variance."""

    name = "weighted_mean"

    def __init__(self, eps: float = 1e-8):
        self.eps = float(eps)

    def combine(self, neighbours: Sequence[Neighbour]) -> Prediction:
        _require(neighbours)
        Y = _stack_outputs(neighbours)
        w = _inverse_distance(neighbours, self.eps)
        mean = np.average(Y, axis=0, weights=w)
        var = np.average((Y - mean) ** 2, axis=0, weights=w)
        return Prediction(output=_as_output(mean), score=float(np.mean(var)), neighbours=tuple(neighbours))

    def __repr__(self) -> str:
        return f"WeightedAveraging(eps={self.eps})"


COMBINERS = {
    MajorityVote.name: MajorityVote,
    WeightedVote.name: WeightedVote,
    Averaging.name: Averaging,
    WeightedAveraging.name: WeightedAveraging,
}


def get_combiner(value) -> OutputCombiner:
    """Resolve a combiner instance from a name ("vote", ...) or pass one through."""
    if isinstance(value, str):
        key = value.strip().lower()
        if key not in COMBINERS:
            raise ValueError(f"Unknown combiner '{value}'; expected one of {sorted(COMBINERS)}.")
        return COMBINERS[key]()
    if not callable(getattr(value, "combine", None)):
        raise TypeError(f"{value!r} does not implement combine(neighbours).")
    return value
