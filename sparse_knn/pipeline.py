# sparse_knn/pipeline.py
# -----------------------------------------------------------------------------
# Training & evaluation pipeline for k-NN models over a CSV of numeric features
#
# - Loads a CSV with pandas; numeric columns are features, --label is the output
# - Splits train/test (stratified when every class has >= 2 rows)
# - Trains a KNNModel and evaluates it:
#     * classification: accuracy, macro-F1, accuracy@3 + confusion matrix PNG
#     * regression:     RMSE, R^2
# - Saves metrics JSON and the fitted model (joblib) under --out
#
# Usage (from repo root):
#   python -m sparse_knn.pipeline --csv data/iris.csv --label species --k 5
#   python -m sparse_knn.pipeline --csv data/houses.csv --label price \
#       --task regression --combiner weighted_mean --distance l2
#   python -m sparse_knn.pipeline --csv data/iris.csv --label species \
#       --config configs/knn.json
# -----------------------------------------------------------------------------

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import joblib
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, confusion_matrix, f1_score, mean_squared_error, r2_score
from sklearn.model_selection import train_test_split

from .combiners import Prediction
from .config import KNNConfig, load_config
from .dataset import Dataset
from .model import KNNModel
from .scheduler import QueryFailure
from .trainer import KNNTrainer

LOGGER = logging.getLogger(__name__)

ART_OUT = Path("artifacts")


# ----------------------------- data utilities ----------------------------- #

def load_frame(csv_path: Path, label_col: str) -> pd.DataFrame:
    if not csv_path.exists():
        raise FileNotFoundError(f"Missing CSV: {csv_path}")
    df = pd.read_csv(csv_path)
    if label_col not in df.columns:
        raise ValueError(f"Missing label column {label_col!r}; found {list(df.columns)}")
    return df.dropna(subset=[label_col]).reset_index(drop=True)


def make_splits(df: pd.DataFrame, label_col: str, task: str, test_size: float = 0.25, seed: int = 42):
    stratify = None
    if task == "classification":
        vc = df[label_col].value_counts()
        if vc.min() >= 2:
            stratify = df[label_col]
        else:
            LOGGER.warning("Some classes have <2 samples; using non-stratified split.")
    train_df, test_df = train_test_split(df, test_size=test_size, stratify=stratify, random_state=seed)
    return train_df.reset_index(drop=True), test_df.reset_index(drop=True)


# ----------------------------- eval utilities ----------------------------- #

def _succeeded(y_true: List[Any], results: List[Any]):
    """Drop failed queries (and their targets) before scoring."""
    keep = [i for i, r in enumerate(results) if not isinstance(r, QueryFailure)]
    return [y_true[i] for i in keep], [results[i] for i in keep]


def topk_accuracy(y_true: List[Any], preds: List[Prediction], k_labels: int = 3) -> float:
    """Fraction of rows whose true label is among the top `k_labels` ranked labels."""
    hits = 0
    for y, pred in zip(y_true, preds):
        if y in [lab for lab, _score in pred.ranked(k_labels)]:
            hits += 1
    return hits / len(y_true) if y_true else 0.0


def save_confusion_png(y_true, y_pred, out_path: Path, title: str):
    labels = sorted(set(y_true) | set(y_pred), key=str)
    cm = confusion_matrix(y_true, y_pred, labels=labels)
    plt.figure()
    plt.imshow(cm, interpolation="nearest")
    plt.title(title)
    plt.xlabel("Predicted")
    plt.ylabel("True")
    plt.colorbar()
    plt.tight_layout()
    plt.savefig(out_path, dpi=140)
    plt.close()


def evaluate(model: KNNModel, test: Dataset, task: str) -> Dict[str, Any]:
    y_all = [ex.output for ex in test]
    results = model.predict(list(test))
    y_true, preds = _succeeded(y_all, results)
    metrics: Dict[str, Any] = {"n_test": len(y_all), "n_failed": len(y_all) - len(y_true)}
    if not preds:
        return metrics

    y_pred = [p.output for p in preds]
    if task == "classification":
        metrics["accuracy"] = accuracy_score(y_true, y_pred)
        metrics["macro_f1"] = f1_score(y_true, y_pred, average="macro")
        metrics["accuracy_at_3"] = topk_accuracy(y_true, preds, k_labels=3)
    else:
        metrics["rmse"] = float(np.sqrt(mean_squared_error(y_true, y_pred)))
        metrics["r2"] = r2_score(y_true, y_pred)
    metrics["_y_true"], metrics["_y_pred"] = y_true, y_pred
    return metrics


# ------------------------------ train & eval ------------------------------ #

def train_and_eval(
    csv_path: Path,
    label_col: str,
    config: KNNConfig,
    task: str = "classification",
    test_size: float = 0.25,
    seed: int = 42,
    out_dir: Path = ART_OUT,
) -> Dict[str, Any]:
    """
    Train on a split of `csv_path` and evaluate on the held-out rows.
    Returns a dict of metrics and file paths.
    """
    if task not in ("classification", "regression"):
        raise ValueError("task must be 'classification' or 'regression'")
    out_dir.mkdir(parents=True, exist_ok=True)

    df = load_frame(csv_path, label_col)
    train_df, test_df = make_splits(df, label_col, task, test_size=test_size, seed=seed)
    train = Dataset.from_frame(train_df, label_col, source=str(csv_path))
    test = Dataset.from_frame(test_df, label_col, source=str(csv_path))

    run = {"csv": str(csv_path), "label": label_col, "task": task, "test_size": test_size, "seed": seed}
    model = KNNTrainer(config).train(train, run_provenance=run)

    metrics = evaluate(model, test, task)
    y_true, y_pred = metrics.pop("_y_true", []), metrics.pop("_y_pred", [])
    model_name = f"{model.name}_{config.distance.value}_{config.combiner.name}"
    metrics = {"dataset": csv_path.stem, "model": model_name, "n_train": len(train), **metrics}

    summary: Dict[str, Any] = {"metrics": metrics}
    if task == "classification" and y_true:
        cm_path = out_dir / f"confusion_{csv_path.stem}_{model_name}.png"
        save_confusion_png(y_true, y_pred, cm_path, f"Confusion (test): {model_name}")
        summary["cm_path"] = str(cm_path)

    metrics_path = out_dir / f"metrics_{csv_path.stem}_{model_name}.json"
    metrics_path.write_text(json.dumps(metrics, indent=2, default=float))
    summary["metrics_path"] = str(metrics_path)

    model_path = out_dir / f"{csv_path.stem}_{model_name}.joblib"
    joblib.dump(model, model_path)
    summary["model_path"] = str(model_path)
    return summary


# ---------------------------------- CLI ---------------------------------- #

def parse_args(argv: Optional[List[str]] = None):
    p = argparse.ArgumentParser(description="Train & evaluate a sparse k-NN model.")
    p.add_argument("--csv", required=True, help="CSV file with numeric feature columns.")
    p.add_argument("--label", required=True, help="Output column.")
    p.add_argument("--task", choices=["classification", "regression"], default="classification")
    p.add_argument("--config", help="JSON config; overrides the k-NN flags below.")
    p.add_argument("--k", type=int, default=5, help="Number of neighbours.")
    p.add_argument("--distance", choices=["l1", "l2", "cosine"], default="l2")
    p.add_argument("--combiner", choices=["vote", "weighted_vote", "mean", "weighted_mean"], default=None,
                   help="Defaults to 'vote' (classification) or 'mean' (regression).")
    p.add_argument("--num_threads", type=int, default=1)
    p.add_argument("--backend", choices=["threadpool", "stream"], default="threadpool")
    p.add_argument("--test_size", type=float, default=0.25)
    p.add_argument("--seed", type=int, default=42)
    p.add_argument("--out", default=str(ART_OUT), help="Output directory.")
    p.add_argument("-v", "--verbose", action="store_true")
    return p.parse_args(argv)


def config_from_args(args) -> KNNConfig:
    if args.config:
        return load_config(args.config)
    combiner = args.combiner or ("vote" if args.task == "classification" else "mean")
    return KNNConfig(
        k=args.k,
        distance=args.distance,
        combiner=combiner,
        num_threads=args.num_threads,
        backend=args.backend,
    )


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    summary = train_and_eval(
        csv_path=Path(args.csv),
        label_col=args.label,
        config=config_from_args(args),
        task=args.task,
        test_size=args.test_size,
        seed=args.seed,
        out_dir=Path(args.out),
    )

    # Console summary
    print("\n=== Training complete ===")
    for k, v in summary["metrics"].items():
        if isinstance(v, float):
            print(f"{k}: {v:.4f}")
        else:
            print(f"{k}: {v}")
    print("\nSaved:")
    print("  metrics:", summary["metrics_path"])
    if "cm_path" in summary:
        print("  confusion:", summary["cm_path"])
    print("  model:", summary["model_path"])


if __name__ == "__main__":
    main()
