"""
Impurity measures and evaluation metrics shared by the models.
"""

from collections import Counter
from typing import Any, Dict, Hashable, Iterable, Sequence

import numpy as np
from scipy import stats
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score


def class_counts(labels: Iterable[Hashable]) -> Counter:
    """Label -> count, in first-seen order."""
    return Counter(labels)


def entropy(labels: Iterable[Hashable]) -> float:
    """
    Shannon entropy (base 2) of a label distribution.

    Returns 0 for an empty or pure distribution.
    """
    counts = list(class_counts(labels).values())
    if not counts:
        return 0.0
    return float(stats.entropy(counts, base=2))


def gini(labels: Iterable[Hashable]) -> float:
    """Gini impurity 1 - sum(p_i^2); 0 for an empty or pure distribution."""
    counts = np.fromiter(class_counts(labels).values(), dtype=float)
    if counts.size == 0:
        return 0.0
    p = counts / counts.sum()
    return float(1.0 - np.sum(p ** 2))


def majority_label(labels: Iterable[Hashable]) -> Any:
    """Most frequent label; ties go to the label seen first."""
    counts = class_counts(labels)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def accuracy(y_true: Sequence[Any], y_pred: Sequence[Any]) -> float:
    """Exact-match rate. Returns 0.0 for empty input."""
    if len(y_true) == 0:
        return 0.0
    matches = sum(1 for t, p in zip(y_true, y_pred) if t == p)
    return matches / len(y_true)


def clamped_r2(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """R^2 = 1 - SSres/SStot, clamped into [0, 1]."""
    r2 = r2_score(y_true, y_pred)
    return float(np.clip(r2, 0.0, 1.0))


def compute_rmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Compute Root Mean Squared Error."""
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def compute_mae(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Compute Mean Absolute Error."""
    return float(mean_absolute_error(y_true, y_pred))


def compute_mape(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """
    Mean Absolute Percentage Error, in percent.

    Observations equal to zero are skipped; returns 0.0 if all are zero.
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    mask = y_true != 0
    if not mask.any():
        return 0.0
    return float(np.mean(np.abs((y_true[mask] - y_pred[mask]) / y_true[mask])) * 100)


def regression_summary(y_true: np.ndarray, y_pred: np.ndarray) -> Dict[str, float]:
    """In-sample fit statistics: r2 (clamped), rmse, mae."""
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    return {
        'r2': clamped_r2(y_true, y_pred),
        'rmse': compute_rmse(y_true, y_pred),
        'mae': compute_mae(y_true, y_pred),
    }
