"""
Linear regression demand models.

Includes:
- LinearRegressionModel: ridge-regularised normal equation on z-scored features
- DemandForecaster: one total-sales model plus per-item models
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence
import logging

import numpy as np
import pandas as pd

from .base import BaseModel
from ..exceptions import InsufficientDataError
from ..features import REGRESSION_FEATURES, encode_regression_features, preprocess_for_regression
from ..linalg import gauss_jordan_inverse
from ..metrics import regression_summary
from ..tabular import round_half_up
from ..utils import timer

logger = logging.getLogger(__name__)

MIN_TRAINING_ROWS = 2
MIN_ITEM_ROWS = 3


class LinearRegressionModel(BaseModel):
    """
    Multiple linear regression solved in closed form.

    theta = (X^T X + lambda * I')^-1 X^T y, where X carries a leading column
    of ones and I' is the identity with its bias entry zeroed, so the bias
    is not regularised. Features are z-scored with statistics from the
    training call; a zero-variance feature keeps std = 1.

    Training rows are conditions records (Rain, MinTemp, MaxTemp, Day,
    TimeSlot, Season) with a numeric 'Sales' target.
    """

    def __init__(self, ridge_lambda: float = 0.01, target: str = 'Sales'):
        """
        Args:
            ridge_lambda: L2 penalty added to the feature diagonal
            target: Key of the target value in training rows
        """
        super().__init__()
        self.ridge_lambda = ridge_lambda
        self.target = target
        self.feature_names = list(REGRESSION_FEATURES)

        self.weights: Optional[np.ndarray] = None
        self.bias: float = 0.0
        self.feature_means: Optional[np.ndarray] = None
        self.feature_stds: Optional[np.ndarray] = None
        self.train_stats: Optional[Dict[str, Any]] = None

    def normalize(self, X: np.ndarray, fit: bool = False) -> np.ndarray:
        """Z-score columns; with fit=True the means/stds are (re)computed from X."""
        X = np.asarray(X, dtype=float)
        if fit:
            self.feature_means = X.mean(axis=0)
            stds = X.std(axis=0)
            self.feature_stds = np.where(stds == 0, 1.0, stds)
        return (X - self.feature_means) / self.feature_stds

    def _predict_normalized(self, X_norm: np.ndarray) -> np.ndarray:
        return np.maximum(0.0, self.bias + X_norm @ self.weights)

    def train(self, data: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Fit weights and in-sample statistics.

        Returns:
            {'r2', 'rmse', 'mae', 'samples', 'y_mean', 'y_min', 'y_max'}

        Raises:
            InsufficientDataError: If fewer than 2 rows are given
        """
        data = list(data)
        if len(data) < MIN_TRAINING_ROWS:
            raise InsufficientDataError(required=MIN_TRAINING_ROWS, received=len(data))

        X = np.array([encode_regression_features(row) for row in data], dtype=float)
        y = np.array([float(row[self.target]) for row in data], dtype=float)

        X_norm = self.normalize(X, fit=True)
        X_bias = np.hstack([np.ones((X_norm.shape[0], 1)), X_norm])

        XTX = X_bias.T @ X_bias
        XTX[1:, 1:] += self.ridge_lambda * np.eye(X_norm.shape[1])

        theta = gauss_jordan_inverse(XTX) @ (X_bias.T @ y)
        self.bias = float(theta[0])
        self.weights = theta[1:]
        self.is_fitted = True

        predictions = self._predict_normalized(X_norm)
        self.train_stats = {
            **regression_summary(y, predictions),
            'samples': len(data),
            'y_mean': float(y.mean()),
            'y_min': float(y.min()),
            'y_max': float(y.max()),
        }
        logger.debug(f"LinearRegression: {len(data)} rows, r2={self.train_stats['r2']:.3f}")
        return self.train_stats

    def predict(self, features: Mapping[str, Any]) -> int:
        """Non-negative sales prediction for one conditions record, rounded to an integer."""
        self._check_is_fitted()
        x = np.array(encode_regression_features(features), dtype=float)
        x_norm = (x - self.feature_means) / self.feature_stds
        return round_half_up(float(self._predict_normalized(x_norm[np.newaxis, :])[0]))

    def get_feature_importance(self) -> pd.DataFrame:
        """
        Normalised absolute coefficients.

        Returns:
            DataFrame with columns ['feature', 'importance', 'coefficient'];
            the signed coefficient gives the direction of the effect.
        """
        if self.weights is None:
            return pd.DataFrame(columns=['feature', 'importance', 'coefficient'])
        abs_weights = np.abs(self.weights)
        total = abs_weights.sum() or 1.0
        return pd.DataFrame({
            'feature': self.feature_names,
            'importance': abs_weights / total,
            'coefficient': self.weights,
        }).sort_values('importance', ascending=False, kind='stable').reset_index(drop=True)

    def get_stats(self) -> Dict[str, Any]:
        return {
            **(self.train_stats or {}),
            'feature_importance': self.get_feature_importance().to_dict('records'),
        }


class DemandForecaster(BaseModel):
    """
    Sales forecasts for a coffee shop from weather and calendar conditions.

    Raw transactions are aggregated into condition buckets (see
    features.preprocess_for_regression). One regression predicts total
    transactions per bucket; items with at least three bucket observations
    get their own regression. Items without one fall back to an even share
    of the total prediction.
    """

    def __init__(self, ridge_lambda: float = 0.01):
        super().__init__()
        self.ridge_lambda = ridge_lambda
        self.total_model = LinearRegressionModel(ridge_lambda)
        self.item_models: Dict[str, LinearRegressionModel] = {}
        self.items: List[str] = []

    def train(self, data: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Fit the total model and every eligible item model.

        Returns:
            {'total_model', 'item_models', 'item_count', 'total_items'}

        Raises:
            InsufficientDataError: If fewer than 2 condition buckets exist
        """
        with timer("Train demand forecaster"):
            dataset = preprocess_for_regression(list(data))
            self.items = dataset.items
            self.total_model = LinearRegressionModel(self.ridge_lambda)
            self.item_models = {}

            total_stats = self.total_model.train(dataset.total_sales_data)

            item_stats = {}
            for item, item_rows in dataset.item_sales_data.items():
                if len(item_rows) < MIN_ITEM_ROWS:
                    logger.debug(f"Item {item!r}: {len(item_rows)} buckets, using total-share fallback")
                    continue
                model = LinearRegressionModel(self.ridge_lambda)
                item_stats[item] = model.train(item_rows)
                self.item_models[item] = model

        self.is_fitted = True
        logger.info(
            f"DemandForecaster: total r2={total_stats['r2']:.3f}, "
            f"{len(self.item_models)}/{len(self.items)} items with their own model"
        )
        return {
            'total_model': total_stats,
            'item_models': item_stats,
            'item_count': len(self.item_models),
            'total_items': len(self.items),
        }

    def predict_total(self, features: Mapping[str, Any]) -> int:
        self._check_is_fitted()
        return self.total_model.predict(features)

    def predict_item(self, features: Mapping[str, Any], item: str) -> int:
        """Item prediction, or round(total / number of items) if the item has no model."""
        self._check_is_fitted()
        model = self.item_models.get(item)
        if model is None:
            total = self.total_model.predict(features)
            return round_half_up(total / len(self.items)) if self.items else 0
        return model.predict(features)

    def predict_all_items(self, features: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """Every item's prediction, highest first."""
        self._check_is_fitted()
        predictions = [{'item': item, 'predicted': self.predict_item(features, item)} for item in self.items]
        return sorted(predictions, key=lambda p: p['predicted'], reverse=True)

    def get_feature_importance(self) -> pd.DataFrame:
        return self.total_model.get_feature_importance()

    def get_stats(self) -> Optional[Dict[str, Any]]:
        if not self.is_fitted:
            return None
        return {
            'total_model': self.total_model.get_stats(),
            'item_models': [
                {'item': item, 'stats': model.get_stats()}
                for item, model in self.item_models.items()
            ],
            'items': list(self.items),
        }
