"""
ID3 decision tree classifier over categorical features.

Used to predict which item a customer buys from the day, time slot, rain
and temperature category of a transaction. Splits are exact equality on
category values (one child per observed value), chosen by information gain.
"""

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Mapping, Optional, Sequence, Union
import logging

import numpy as np
import pandas as pd

from .base import BaseModel
from ..metrics import accuracy, entropy
from ..utils import get_rng, timer

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]

# Confidence reported when a branch value was never seen during training
FALLBACK_CONFIDENCE = 0.5
UNKNOWN_LABEL = 'Unknown'


@dataclass
class LeafNode:
    """Terminal node: majority label, its share, and the full label distribution."""
    label: Any
    confidence: float
    samples: int
    distribution: Dict[Any, Dict[str, float]] = field(default_factory=dict)


@dataclass
class DecisionNode:
    """Internal node splitting on the exact value of one feature."""
    feature: str
    gain: float
    samples: int
    default_prediction: Any
    children: Dict[Hashable, 'TreeNode'] = field(default_factory=dict)


TreeNode = Union[LeafNode, DecisionNode]


# =============================================================================
# Tree induction
# =============================================================================

def _labels(rows: Sequence[Row], target: str) -> List[Any]:
    return [row.get(target) for row in rows]


def _group_by(rows: Sequence[Row], feature: str) -> Dict[Hashable, List[Row]]:
    """Partition rows by the exact value of a feature, in first-seen order."""
    groups: Dict[Hashable, List[Row]] = defaultdict(list)
    for row in rows:
        groups[row.get(feature)].append(row)
    return groups


def class_distribution(rows: Sequence[Row], target: str) -> Dict[Any, Dict[str, float]]:
    """Label -> {'count', 'percentage'} with percentages rounded to one decimal."""
    counts = Counter(_labels(rows, target))
    total = len(rows)
    return {
        label: {'count': count, 'percentage': round(count / total * 100, 1)}
        for label, count in counts.items()
    }


def information_gain(rows: Sequence[Row], feature: str, target: str) -> float:
    """H(parent) - sum(|child| / |parent| * H(child)) for an equality split on feature."""
    total = len(rows)
    if total == 0:
        return 0.0
    weighted = sum(
        len(group) / total * entropy(_labels(group, target))
        for group in _group_by(rows, feature).values()
    )
    return entropy(_labels(rows, target)) - weighted


def find_best_feature(rows: Sequence[Row], features: Sequence[str], target: str):
    """
    Feature with maximum information gain; ties go to the earlier feature.

    Returns:
        (feature, gain); (None, -inf) when there are no candidate features
    """
    best_feature, best_gain = None, -np.inf
    for feature in features:
        gain = information_gain(rows, feature, target)
        if gain > best_gain:
            best_feature, best_gain = feature, gain
    return best_feature, best_gain


def _make_leaf(rows: Sequence[Row], target: str, label: Any, count: int) -> LeafNode:
    return LeafNode(
        label=label,
        confidence=count / len(rows),
        samples=len(rows),
        distribution=class_distribution(rows, target),
    )


def build_tree(
    rows: Sequence[Row],
    features: Sequence[str],
    target: str,
    depth: int = 0,
    max_depth: int = 5
) -> TreeNode:
    """
    Recursively grow an ID3 tree.

    A leaf is emitted when the subset is pure, max_depth is reached, no
    features remain, or the best gain is not positive. Otherwise the best
    feature becomes a decision node with one child per observed value, and
    that feature is removed from the candidates below it.
    """
    if len(rows) == 0:
        return LeafNode(label=UNKNOWN_LABEL, confidence=0.0, samples=0)

    label, count = Counter(_labels(rows, target)).most_common(1)[0]

    if count == len(rows) or depth >= max_depth or len(features) == 0:
        return _make_leaf(rows, target, label, count)

    best_feature, gain = find_best_feature(rows, features, target)
    if gain <= 0:
        return _make_leaf(rows, target, label, count)

    remaining = [f for f in features if f != best_feature]
    node = DecisionNode(
        feature=best_feature,
        gain=gain,
        samples=len(rows),
        default_prediction=label,
    )
    for value, subset in _group_by(rows, best_feature).items():
        node.children[value] = build_tree(subset, remaining, target, depth + 1, max_depth)

    return node


# =============================================================================
# Tree queries
# =============================================================================

def predict_sample(tree: TreeNode, sample: Row) -> Dict[str, Any]:
    """
    Walk the tree for one sample.

    Returns:
        {'prediction', 'confidence', 'distribution'}. An unseen branch value
        returns the node's default prediction with confidence 0.5 and an
        empty distribution.
    """
    node = tree
    while isinstance(node, DecisionNode):
        value = sample.get(node.feature)
        try:
            child = node.children.get(value)
        except TypeError:
            child = None
        if child is None:
            return {
                'prediction': node.default_prediction,
                'confidence': FALLBACK_CONFIDENCE,
                'distribution': {},
            }
        node = child
    return {
        'prediction': node.label,
        'confidence': node.confidence,
        'distribution': node.distribution,
    }


def raw_feature_importance(tree: TreeNode) -> Dict[str, float]:
    """Sum of gain * samples per feature over all decision nodes."""
    importance: Dict[str, float] = {}
    stack = [tree]
    while stack:
        node = stack.pop()
        if isinstance(node, DecisionNode):
            importance[node.feature] = importance.get(node.feature, 0.0) + node.gain * node.samples
            stack.extend(node.children.values())
    return importance


def get_tree_stats(tree: Optional[TreeNode]) -> Dict[str, int]:
    """Count decision nodes and leaves and measure the actual depth."""
    stats = {'nodes': 0, 'leaves': 0, 'max_depth': 0}
    if tree is None:
        return stats
    stack = [(tree, 0)]
    while stack:
        node, depth = stack.pop()
        stats['max_depth'] = max(stats['max_depth'], depth)
        if isinstance(node, LeafNode):
            stats['leaves'] += 1
        else:
            stats['nodes'] += 1
            stack.extend((child, depth + 1) for child in node.children.values())
    return stats


def tree_to_dict(node: TreeNode) -> Dict[str, Any]:
    """Plain nested-dict form of a tree."""
    if isinstance(node, LeafNode):
        return {
            'type': 'leaf',
            'label': node.label,
            'confidence': node.confidence,
            'samples': node.samples,
            'distribution': {k: dict(v) for k, v in node.distribution.items()},
        }
    return {
        'type': 'node',
        'feature': node.feature,
        'gain': node.gain,
        'samples': node.samples,
        'default_prediction': node.default_prediction,
        'children': {value: tree_to_dict(child) for value, child in node.children.items()},
    }


def tree_from_dict(data: Mapping[str, Any]) -> TreeNode:
    """Inverse of tree_to_dict."""
    if data['type'] == 'leaf':
        return LeafNode(
            label=data['label'],
            confidence=data['confidence'],
            samples=data['samples'],
            distribution={k: dict(v) for k, v in data.get('distribution', {}).items()},
        )
    return DecisionNode(
        feature=data['feature'],
        gain=data['gain'],
        samples=data['samples'],
        default_prediction=data.get('default_prediction'),
        children={value: tree_from_dict(child) for value, child in data['children'].items()},
    )


# =============================================================================
# Model
# =============================================================================

class DecisionTreeClassifier(BaseModel):
    """
    ID3 classifier with a random train/test holdout.

    Example usage:
        rows = preprocess_coffee_data(transactions)
        clf = DecisionTreeClassifier(max_depth=5, random_state=42)
        clf.train(rows, ['Day', 'TimeSlot', 'IsRainy', 'TempCategory'], 'Item')
        clf.predict_top_n({'Day': 'Monday', 'TimeSlot': 'Morning'}, n=3)
    """

    def __init__(self, max_depth: int = 5, test_ratio: float = 0.2, random_state: Optional[int] = None):
        """
        Args:
            max_depth: Maximum tree depth (>= 1)
            test_ratio: Share of rows held out for the accuracy estimate
            random_state: Seed for the train/test shuffle; None is non-deterministic
        """
        super().__init__()
        if max_depth < 1:
            raise ValueError(f"max_depth must be >= 1, got {max_depth}")
        if not 0.0 <= test_ratio < 1.0:
            raise ValueError(f"test_ratio must be in [0, 1), got {test_ratio}")
        self.max_depth = max_depth
        self.test_ratio = test_ratio
        self.random_state = random_state

        self.tree: Optional[TreeNode] = None
        self.target_column: Optional[str] = None
        self.accuracy: float = 0.0
        self.feature_importance: Dict[str, float] = {}
        self.train_size: int = 0
        self.test_size: int = 0

    def _train_test_split(self, rows: Sequence[Row]):
        rng = get_rng(self.random_state)
        order = rng.permutation(len(rows))
        split_index = int(np.floor(len(rows) * (1 - self.test_ratio)))
        train = [rows[i] for i in order[:split_index]]
        test = [rows[i] for i in order[split_index:]]
        return train, test

    def train(self, data: Sequence[Row], features: Sequence[str], target: str) -> Dict[str, Any]:
        """
        Build the tree on a random train split and score it on the rest.

        Args:
            data: Row records
            features: Categorical feature columns
            target: Label column

        Returns:
            {'accuracy', 'train_size', 'test_size', 'feature_importance'}
        """
        data = list(data)
        self.feature_names = list(features)
        self.target_column = target

        with timer("Train decision tree"):
            train, test = self._train_test_split(data)
            self.train_size = len(train)
            self.test_size = len(test)

            self.tree = build_tree(train, self.feature_names, target, 0, self.max_depth)

            predictions = [predict_sample(self.tree, row)['prediction'] for row in test]
            self.accuracy = accuracy(_labels(test, target), predictions)

            raw = raw_feature_importance(self.tree)
            total = sum(raw.values())
            self.feature_importance = {
                feature: (value / total if total > 0 else 0.0) for feature, value in raw.items()
            }

        self.is_fitted = True
        logger.info(
            f"DecisionTree: train={self.train_size}, test={self.test_size}, "
            f"accuracy={self.accuracy:.3f}"
        )
        return {
            'accuracy': self.accuracy,
            'train_size': self.train_size,
            'test_size': self.test_size,
            'feature_importance': self._ranked_importance(),
        }

    def predict(self, sample: Row) -> Dict[str, Any]:
        """Predict one sample: {'prediction', 'confidence', 'distribution'}."""
        self._check_is_fitted()
        return predict_sample(self.tree, sample)

    def predict_top_n(self, sample: Row, n: int = 3) -> List[Dict[str, Any]]:
        """
        Up to n labels from the resolved leaf, by descending percentage.

        Confidence values are percentages. When the sample falls back to a
        default prediction, a single entry carries the fallback confidence.
        """
        result = self.predict(sample)
        if not result['distribution']:
            return [{'label': result['prediction'], 'confidence': result['confidence'] * 100}]

        ranked = sorted(
            result['distribution'].items(),
            key=lambda item: item[1]['percentage'],
            reverse=True,
        )
        return [{'label': label, 'confidence': info['percentage']} for label, info in ranked[:n]]

    def get_feature_importance(self) -> pd.DataFrame:
        """Normalised gain-weighted importance of features used in the tree."""
        if not self.feature_importance:
            return pd.DataFrame(columns=['feature', 'importance'])
        return pd.DataFrame({
            'feature': list(self.feature_importance.keys()),
            'importance': list(self.feature_importance.values()),
        }).sort_values('importance', ascending=False, kind='stable').reset_index(drop=True)

    def _ranked_importance(self) -> Dict[str, float]:
        ranked = self.get_feature_importance()
        return dict(zip(ranked['feature'], ranked['importance'].astype(float)))

    def get_model_stats(self) -> Dict[str, Any]:
        tree_stats = get_tree_stats(self.tree)
        return {
            'accuracy': self.accuracy,
            'train_size': self.train_size,
            'test_size': self.test_size,
            'features': list(self.feature_names),
            'feature_importance': self._ranked_importance(),
            'max_depth': self.max_depth,
            'tree_nodes': tree_stats['nodes'],
            'tree_leaves': tree_stats['leaves'],
            'actual_depth': tree_stats['max_depth'],
        }

    def get_stats(self) -> Dict[str, Any]:
        return self.get_model_stats()

    def to_dict(self) -> Dict[str, Any]:
        """Serialise tree and training statistics to plain dicts."""
        return {
            'tree': tree_to_dict(self.tree) if self.tree is not None else None,
            'features': list(self.feature_names),
            'target_column': self.target_column,
            'accuracy': self.accuracy,
            'feature_importance': dict(self.feature_importance),
            'train_size': self.train_size,
            'test_size': self.test_size,
            'max_depth': self.max_depth,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'DecisionTreeClassifier':
        """Rebuild a classifier from to_dict output."""
        instance = cls(max_depth=data.get('max_depth', 5))
        instance.tree = tree_from_dict(data['tree']) if data.get('tree') is not None else None
        instance.feature_names = list(data.get('features', []))
        instance.target_column = data.get('target_column')
        instance.accuracy = data.get('accuracy', 0.0)
        instance.feature_importance = dict(data.get('feature_importance', {}))
        instance.train_size = data.get('train_size', 0)
        instance.test_size = data.get('test_size', 0)
        instance.is_fitted = instance.tree is not None
        return instance
