"""Common testing utilities."""

from sklearn.datasets import make_classification, make_regression
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import StandardScaler

from sparse_knn.dataset import Dataset
from sparse_knn.store import TrainingStore
from sparse_knn.vectors import SparseVector


def classification_dataset(
    n_samples: int = 300,
    split_size: float = 0.3,
    n_features: int = 5,
    seed: int = 1,
    shuffle=True,
):
    """Return a well-separated classification dataset.

    Args:
        n_samples: Number of samples.
        split_size: Test split size.
        n_features: Number of features.
        seed: Random seed.
        shuffle: Shuffle the data.

    Returns:
        X_train: Training data.
        X_test: Test data.
        y_train: Training target.
        y_test: Test target.
    """
    X, y = make_classification(
        n_samples=n_samples,
        n_features=n_features,
        n_informative=3,
        n_redundant=0,
        class_sep=2.0,
        random_state=seed,
    )

    X = StandardScaler().fit_transform(X)

    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=split_size, shuffle=shuffle, random_state=seed
    )

    return X_train, X_test, y_train, y_test


def regression_frame_data(n_samples: int = 120, n_features: int = 3, seed: int = 1):
    """Return (X, y) for a small, low-noise regression problem."""
    X, y = make_regression(  # type: ignore broken types
        n_samples=n_samples, n_features=n_features, noise=1.0, random_state=seed
    )
    return X, y


def line_store(values, outputs):
    """Build a 1-dimensional TrainingStore from scalar positions."""
    return TrainingStore.from_pairs(
        (SparseVector.from_mapping({0: v}, 1), out) for v, out in zip(values, outputs)
    )


def point(value: float) -> SparseVector:
    """Return a 1-dimensional query vector."""
    return SparseVector.from_mapping({0: value}, 1)


def toy_dataset() -> Dataset:
    """The three-example store used by several scenarios: A@1, B@2, A@10."""
    return Dataset.from_arrays([[1.0], [2.0], [10.0]], ["A", "B", "A"], feature_names=["x"])
