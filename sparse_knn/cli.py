# sparse_knn/cli.py
# -----------------------------------------------------------------------------
# CLI predictor: named features (or a CSV of queries) -> ranked predictions
#
#   python -m sparse_knn.cli --model artifacts/iris_5nn_l2_vote.joblib \
#       --features "sepal_length=5.1,petal_width=0.2" --topk 3
#   python -m sparse_knn.cli --model m.joblib --csv queries.csv --backend stream --num_threads 4
# -----------------------------------------------------------------------------

from __future__ import annotations

import argparse
import dataclasses
import logging
from pathlib import Path
from typing import Dict, List, Optional

import joblib
import pandas as pd

from .model import KNNModel
from .scheduler import QueryFailure


def parse_features(text: str) -> Dict[str, float]:
    """Parse "a=1,b=0.5" into {"a": 1.0, "b": 0.5}."""
    out: Dict[str, float] = {}
    for tok in text.split(","):
        tok = tok.strip()
        if not tok:
            continue
        if "=" not in tok:
            raise ValueError(f"Expected name=value, got {tok!r}")
        name, value = tok.split("=", 1)
        out[name.strip()] = float(value)
    return out


def load_model(path: Path) -> KNNModel:
    if not path.exists():
        raise FileNotFoundError(f"Model not found: {path}")
    model = joblib.load(path)
    if not isinstance(model, KNNModel):
        raise TypeError(f"{path} does not contain a KNNModel.")
    return model


def read_queries(csv_path: Path) -> List[Dict[str, float]]:
    df = pd.read_csv(csv_path).select_dtypes(include="number")
    return [{str(c): float(v) for c, v in row.items() if pd.notna(v)} for _, row in df.iterrows()]


def parse_args(argv: Optional[List[str]] = None):
    p = argparse.ArgumentParser("Predict with a saved sparse k-NN model")
    p.add_argument("--model", required=True, help="Path to saved model .joblib")
    src = p.add_mutually_exclusive_group(required=True)
    src.add_argument("--features", help="Comma-separated name=value pairs")
    src.add_argument("--csv", help="CSV of queries (numeric columns are features)")
    p.add_argument("--topk", type=int, default=3)
    p.add_argument("--num_threads", type=int, default=None, help="Override the model's thread count")
    p.add_argument("--backend", choices=["threadpool", "stream"], default=None)
    p.add_argument("--fail_fast", action="store_true", help="Abort the batch on the first bad query")
    p.add_argument("-v", "--verbose", action="store_true")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    model_path = Path(args.model)
    model = load_model(model_path)
    if args.num_threads is not None or args.backend is not None:
        model.config = dataclasses.replace(
            model.config,
            num_threads=model.config.num_threads if args.num_threads is None else args.num_threads,
            backend=model.config.backend if args.backend is None else args.backend,
        )

    queries = [parse_features(args.features)] if args.features else read_queries(Path(args.csv))
    results = model.predict(queries, fail_fast=args.fail_fast)

    print(f"\n[using] model={model_path.name}  ({model!r})")
    for i, res in enumerate(results):
        print(f"\nQuery {i}:")
        if isinstance(res, QueryFailure):
            print(f"  ! failed: {res.error}")
            continue
        for lab, score in res.ranked(args.topk):
            print(f"  - {lab}  (score={score:.4f})")


if __name__ == "__main__":
    main()
