"""
Random forest classifier built from Gini-impurity decision trees.

Each tree is grown on a bootstrap sample of the rows, restricted to a random
subset of the feature columns, and splits numeric features at midpoints
between consecutive sorted unique values. Predictions are majority votes.
"""

from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import logging
import math

import numpy as np
import pandas as pd

from .base import BaseModel
from ..utils import get_rng, timer

logger = logging.getLogger(__name__)


@dataclass
class GiniLeaf:
    """Terminal node holding the majority class of its samples."""
    prediction: Any
    samples: int


@dataclass
class ThresholdNode:
    """Internal node: rows with x[feature_index] <= threshold go left."""
    feature_index: int
    threshold: float
    gain: float
    samples: int
    left: 'GiniNode'
    right: 'GiniNode'


GiniNode = Union[GiniLeaf, ThresholdNode]


def _gini_from_codes(codes: np.ndarray, n_classes: int) -> float:
    if codes.size == 0:
        return 0.0
    p = np.bincount(codes, minlength=n_classes) / codes.size
    return float(1.0 - np.sum(p ** 2))


def _majority_code(codes: np.ndarray) -> int:
    """Most frequent code; ties go to the code seen first."""
    return Counter(codes.tolist()).most_common(1)[0][0]


class GiniTreeClassifier:
    """
    CART-style classification tree on numeric features.

    Stops growing a node when it is pure, max_depth is reached, it holds
    fewer than min_samples_split rows, or no split reduces impurity.
    """

    def __init__(self, max_depth: int = 5, min_samples_split: int = 5):
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.root: Optional[GiniNode] = None
        self.feature_names: List[str] = []
        self.classes: List[Any] = []

    def find_best_split(
        self,
        X: np.ndarray,
        codes: np.ndarray,
        feature_indices: Sequence[int]
    ) -> Tuple[Optional[int], Optional[float], float]:
        """
        Scan every midpoint threshold of every candidate feature.

        Returns:
            (feature_index, threshold, gain) of the first split with the
            largest impurity reduction; (None, None, -inf) if none exists
        """
        n_classes = len(self.classes)
        parent = _gini_from_codes(codes, n_classes)
        n = codes.size

        best_feature, best_threshold, best_gain = None, None, -np.inf
        for feature in feature_indices:
            values = X[:, feature]
            unique_values = np.unique(values)
            for i in range(len(unique_values) - 1):
                threshold = (unique_values[i] + unique_values[i + 1]) / 2
                mask = values <= threshold
                left, right = codes[mask], codes[~mask]
                if left.size == 0 or right.size == 0:
                    continue
                weighted = (
                    left.size * _gini_from_codes(left, n_classes)
                    + right.size * _gini_from_codes(right, n_classes)
                ) / n
                gain = parent - weighted
                if gain > best_gain:
                    best_feature, best_threshold, best_gain = feature, float(threshold), gain

        return best_feature, best_threshold, best_gain

    def _build(self, X: np.ndarray, codes: np.ndarray, depth: int, feature_indices: Sequence[int]) -> GiniNode:
        n = codes.size
        if len(np.unique(codes)) == 1 or depth >= self.max_depth or n < self.min_samples_split:
            return GiniLeaf(prediction=self.classes[_majority_code(codes)], samples=n)

        feature, threshold, gain = self.find_best_split(X, codes, feature_indices)
        if feature is None or gain <= 0:
            return GiniLeaf(prediction=self.classes[_majority_code(codes)], samples=n)

        mask = X[:, feature] <= threshold
        return ThresholdNode(
            feature_index=feature,
            threshold=threshold,
            gain=gain,
            samples=n,
            left=self._build(X[mask], codes[mask], depth + 1, feature_indices),
            right=self._build(X[~mask], codes[~mask], depth + 1, feature_indices),
        )

    def fit(self, X, y: Sequence[Any], feature_names: Optional[Sequence[str]] = None) -> 'GiniTreeClassifier':
        """
        Grow the tree.

        Args:
            X: (n_samples, n_features) numeric matrix
            y: Class labels
            feature_names: Optional column names, for inspection only
        """
        X = np.asarray(X, dtype=float)
        y = list(y)
        if len(y) == 0:
            raise ValueError("Cannot fit a tree on zero samples")
        self.feature_names = list(feature_names) if feature_names is not None else []
        self.classes = list(dict.fromkeys(y))
        index = {label: i for i, label in enumerate(self.classes)}
        codes = np.array([index[label] for label in y], dtype=int)
        self.root = self._build(X, codes, 0, list(range(X.shape[1])))
        return self

    def predict_one(self, x: Sequence[float]) -> Any:
        node = self.root
        while isinstance(node, ThresholdNode):
            node = node.left if x[node.feature_index] <= node.threshold else node.right
        return node.prediction

    def predict(self, X) -> List[Any]:
        return [self.predict_one(x) for x in np.asarray(X, dtype=float)]

    def depth(self) -> int:
        """Depth of the deepest leaf."""
        stack, deepest = [(self.root, 0)], 0
        while stack:
            node, d = stack.pop()
            deepest = max(deepest, d)
            if isinstance(node, ThresholdNode):
                stack.extend([(node.left, d + 1), (node.right, d + 1)])
        return deepest


class RandomForestClassifier(BaseModel):
    """
    Bootstrap-aggregated Gini trees with per-tree random feature subsets.

    Example usage:
        forest = RandomForestClassifier(n_trees=15, max_depth=6, min_samples_split=3, random_state=0)
        forest.fit(X, y, feature_names)
        forest.predict_proba(X[:1])  # [{'budget': 0.6, 'moderate': 0.33, 'premium': 0.07}]
    """

    def __init__(
        self,
        n_trees: int = 15,
        max_depth: int = 6,
        min_samples_split: int = 3,
        max_features: Union[str, float] = 'sqrt',
        random_state: Optional[int] = None
    ):
        """
        Args:
            n_trees: Number of trees in the ensemble
            max_depth: Maximum depth per tree
            min_samples_split: Minimum rows a node needs to be split
            max_features: 'sqrt' for ceil(sqrt(n_features)), or a fraction in (0, 1]
            random_state: Seed for bootstrap and feature sampling
        """
        super().__init__()
        if n_trees < 1:
            raise ValueError(f"n_trees must be >= 1, got {n_trees}")
        if max_features != 'sqrt' and not (isinstance(max_features, (int, float)) and 0 < max_features <= 1):
            raise ValueError(f"max_features must be 'sqrt' or a fraction in (0, 1], got {max_features!r}")
        self.n_trees = n_trees
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.max_features = max_features
        self.random_state = random_state

        self.estimators: List[Tuple[GiniTreeClassifier, List[int]]] = []
        self.classes: List[Any] = []

    def _n_selected_features(self, n_features: int) -> int:
        if self.max_features == 'sqrt':
            return int(math.ceil(math.sqrt(n_features)))
        return min(n_features, int(math.ceil(n_features * self.max_features)))

    def fit(self, X, y: Sequence[Any], feature_names: Sequence[str]) -> 'RandomForestClassifier':
        """
        Grow n_trees trees, each on a bootstrap sample and a random feature subset.

        Args:
            X: (n_samples, n_features) numeric matrix
            y: Class labels
            feature_names: Column names aligned with X
        """
        X = np.asarray(X, dtype=float)
        y = np.asarray(list(y), dtype=object)
        if X.ndim != 2 or X.shape[0] == 0:
            raise ValueError(f"Expected a non-empty 2-D feature matrix, got shape {X.shape}")
        if len(y) != X.shape[0]:
            raise ValueError(f"X has {X.shape[0]} rows but y has {len(y)} labels")

        rng = get_rng(self.random_state)
        n_samples, n_features = X.shape
        n_selected = self._n_selected_features(n_features)

        self.feature_names = list(feature_names)
        self.classes = list(dict.fromkeys(y.tolist()))
        self.estimators = []

        with timer(f"Fit random forest ({self.n_trees} trees)"):
            for _ in range(self.n_trees):
                rows = rng.integers(0, n_samples, size=n_samples)
                subset = [int(i) for i in rng.choice(n_features, size=n_selected, replace=False)]

                tree = GiniTreeClassifier(self.max_depth, self.min_samples_split)
                tree.fit(X[rows][:, subset], y[rows].tolist(), [self.feature_names[i] for i in subset])
                self.estimators.append((tree, subset))

        self.is_fitted = True
        logger.info(
            f"RandomForest: {self.n_trees} trees, {n_selected}/{n_features} features per tree, "
            f"{n_samples} samples, classes={self.classes}"
        )
        return self

    def _votes(self, x: np.ndarray) -> Counter:
        votes: Counter = Counter()
        for tree, subset in self.estimators:
            votes[tree.predict_one(x[subset])] += 1
        return votes

    def predict(self, X) -> List[Any]:
        """Majority vote per row; ties go to the first class to reach the top count."""
        self._check_is_fitted()
        return [self._votes(x).most_common(1)[0][0] for x in np.atleast_2d(np.asarray(X, dtype=float))]

    def predict_proba(self, X) -> List[Dict[Any, float]]:
        """Per row, every known class -> share of tree votes (zero-vote classes included)."""
        self._check_is_fitted()
        probabilities = []
        for x in np.atleast_2d(np.asarray(X, dtype=float)):
            votes = self._votes(x)
            probabilities.append({c: votes.get(c, 0) / self.n_trees for c in self.classes})
        return probabilities

    def get_feature_importance(self) -> pd.DataFrame:
        """
        Selection-frequency importance.

        Counts how often each feature was drawn into a tree's subset,
        normalised to sum to 1. This approximates importance by selection
        frequency, not by impurity reduction.
        """
        counts = {name: 0 for name in self.feature_names}
        for _, subset in self.estimators:
            for i in subset:
                counts[self.feature_names[i]] += 1
        total = sum(counts.values()) or 1
        return pd.DataFrame({
            'feature': list(counts.keys()),
            'importance': [c / total for c in counts.values()],
        }).sort_values('importance', ascending=False, kind='stable').reset_index(drop=True)

    def get_stats(self) -> Dict[str, Any]:
        return {
            'n_trees': self.n_trees,
            'max_depth': self.max_depth,
            'min_samples_split': self.min_samples_split,
            'max_features': self.max_features,
            'classes': list(self.classes),
            'tree_depths': [tree.depth() for tree, _ in self.estimators],
            'feature_importance': self.get_feature_importance().to_dict('records'),
        }
