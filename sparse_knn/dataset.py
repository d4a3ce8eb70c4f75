# sparse_knn/dataset.py
# -----------------------------------------------------------------------------
# Minimal dataset + feature map, the producer side of training.
#
# - Example     : named features -> value, plus an output (label / target)
# - FeatureMap  : immutable feature-name -> integer id map (ids by sorted name)
# - Dataset     : ordered examples + their FeatureMap + opaque provenance
#
# Dense numpy arrays, scipy.sparse matrices and pandas frames are accepted as
# inputs; feature names default to "f0", "f1", ...
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import sparse

from .vectors import SparseVector


@dataclass(frozen=True)
class Example:
    features: Mapping[str, float]
    output: Any = None


class FeatureMap:
    """Immutable mapping of feature name to id in [0, len(names))."""

    def __init__(self, names: Iterable[str]):
        ordered = sorted(set(names))
        self._names: tuple = tuple(ordered)
        self._ids: Dict[str, int] = {n: i for i, n in enumerate(ordered)}

    @classmethod
    def from_examples(cls, examples: Iterable[Example]) -> "FeatureMap":
        names = set()
        for ex in examples:
            names.update(ex.features.keys())
        return cls(names)

    @property
    def names(self) -> tuple:
        return self._names

    def id_of(self, name: str) -> Optional[int]:
        return self._ids.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._ids

    def __len__(self) -> int:
        return len(self._names)

    def vectorize(self, features: Mapping[str, float], allow_empty: bool = False) -> SparseVector:
        """
        Convert named features to a SparseVector in this map's id space.
        Unknown names are dropped; an input with no known feature is rejected
        unless `allow_empty` (training rows may legitimately be all-zero).
        """
        entries: Dict[int, float] = {}
        for name, value in features.items():
            fid = self._ids.get(name)
            if fid is not None:
                entries[fid] = entries.get(fid, 0.0) + float(value)
        if not entries and not allow_empty:
            raise ValueError("Example had no features that were in the feature map.")
        return SparseVector.from_mapping(entries, len(self._names))


class Dataset:
    """
    Ordered examples sharing one FeatureMap.

    Parameters
    ----------
    examples : iterable of Example
    feature_map : FeatureMap, optional
        Built from the examples when omitted.
    provenance : dict, optional
        Opaque lineage info (source path, row count, ...) copied into models.
    """

    def __init__(
        self,
        examples: Iterable[Example],
        feature_map: Optional[FeatureMap] = None,
        provenance: Optional[Dict[str, Any]] = None,
    ):
        self._examples: List[Example] = list(examples)
        self.feature_map = feature_map if feature_map is not None else FeatureMap.from_examples(self._examples)
        self.provenance: Dict[str, Any] = {"num_examples": len(self._examples), **(provenance or {})}

    def __len__(self) -> int:
        return len(self._examples)

    def __iter__(self) -> Iterator[Example]:
        return iter(self._examples)

    def __getitem__(self, i: int) -> Example:
        return self._examples[i]

    # ------------------------------ constructors --------------------------- #

    @classmethod
    def from_arrays(
        cls,
        X,
        y: Sequence[Any],
        feature_names: Optional[Sequence[str]] = None,
        source: str = "arrays",
    ) -> "Dataset":
        """Build from a dense (n, d) array or scipy.sparse matrix plus n outputs."""
        if sparse.issparse(X):
            X = sparse.csr_matrix(X)
        else:
            X = np.asarray(X, dtype=np.float64)
            if X.ndim != 2:
                raise ValueError("X must be 2D (n_samples, n_features).")
        y = list(y)
        n, d = X.shape
        if n != len(y):
            raise ValueError("X and y must have the same number of rows.")
        names = list(feature_names) if feature_names is not None else [f"f{j}" for j in range(d)]
        if len(names) != d:
            raise ValueError("feature_names must match the number of columns.")
        if len(set(names)) != len(names):
            raise ValueError("feature_names must be unique.")

        examples = [Example(_row_features(X, i, names), y[i]) for i in range(n)]
        return cls(examples, FeatureMap(names), provenance={"source": source, "num_features": d})

    @classmethod
    def from_frame(cls, df: pd.DataFrame, label_col: str, source: str = "dataframe") -> "Dataset":
        """Numeric columns become features; `label_col` becomes the output."""
        if label_col not in df.columns:
            raise ValueError(f"Missing label column: {label_col!r}")
        feats = df.drop(columns=[label_col]).select_dtypes(include="number")
        return cls.from_arrays(
            feats.to_numpy(dtype=np.float64),
            df[label_col].tolist(),
            feature_names=[str(c) for c in feats.columns],
            source=source,
        )


def _row_features(X, i: int, names: Sequence[str]) -> Dict[str, float]:
    if sparse.issparse(X):
        start, end = X.indptr[i], X.indptr[i + 1]
        return {names[j]: float(v) for j, v in zip(X.indices[start:end], X.data[start:end]) if v != 0}
    row = X[i]
    return {names[j]: float(row[j]) for j in np.flatnonzero(row)}
