"""
Model implementations for explorer_ml.

All models follow the BaseModel interface:
- train(data) / fit(...)
- predict(...) / forecast(...)
- get_stats()
- get_feature_importance()
- save(path) / load(path)

Available models:
- BaseModel: Abstract base class
- DecisionTreeClassifier: ID3 tree on categorical features with a random holdout
- GiniTreeClassifier: CART-style tree on numeric features (forest member)
- RandomForestClassifier: Bagged Gini trees with random feature subsets
- PriceSensitivityModel: Survey -> price tier, backed by the random forest
- LinearRegressionModel: Ridge normal-equation regression on z-scored features
- DemandForecaster: Total and per-item sales regressions from weather/calendar
- HoltForecaster: Double exponential smoothing with confidence intervals
- MovingAverageForecaster: Flat last-window mean forecast
- TradeForecaster: One Holt model per trade statistic type
"""

from typing import Any, Dict, Optional

from .base import BaseModel
from .decision_tree import DecisionTreeClassifier
from .random_forest import GiniTreeClassifier, RandomForestClassifier
from .price_sensitivity import PriceSensitivityModel
from .linear import LinearRegressionModel, DemandForecaster
from .smoothing import (
    HoltForecaster,
    MovingAverageForecaster,
    TradeForecaster,
    calculate_growth_rate,
    moving_average
)

__all__ = [
    # Base class
    'BaseModel',
    # Classifiers
    'DecisionTreeClassifier',
    'GiniTreeClassifier',
    'RandomForestClassifier',
    'PriceSensitivityModel',
    # Regression
    'LinearRegressionModel',
    'DemandForecaster',
    # Time series
    'HoltForecaster',
    'MovingAverageForecaster',
    'TradeForecaster',
    'calculate_growth_rate',
    'moving_average',
    # Factory functions
    'get_model_class',
    'build_model',
]


# Model name -> (class, section of configs/models.yaml holding its hyperparameters)
_REGISTRY = {
    'decision_tree': (DecisionTreeClassifier, 'decision_tree'),
    'id3': (DecisionTreeClassifier, 'decision_tree'),
    'random_forest': (RandomForestClassifier, 'random_forest'),
    'forest': (RandomForestClassifier, 'random_forest'),
    'price_sensitivity': (PriceSensitivityModel, 'random_forest'),
    'linear_regression': (LinearRegressionModel, 'linear_regression'),
    'linear': (LinearRegressionModel, 'linear_regression'),
    'ridge': (LinearRegressionModel, 'linear_regression'),
    'demand': (DemandForecaster, 'linear_regression'),
    'demand_forecaster': (DemandForecaster, 'linear_regression'),
    'holt': (HoltForecaster, 'holt'),
    'moving_average': (MovingAverageForecaster, 'moving_average'),
    'trade': (TradeForecaster, 'holt'),
    'trade_forecaster': (TradeForecaster, 'holt'),
}


def get_model_class(name: str):
    """
    Get model class by name.

    Args:
        name: Model name (case-insensitive). Options:
            - Classifiers: 'decision_tree', 'id3', 'random_forest', 'forest', 'price_sensitivity'
            - Regression: 'linear_regression', 'linear', 'ridge', 'demand', 'demand_forecaster'
            - Time series: 'holt', 'moving_average', 'trade', 'trade_forecaster'

    Returns:
        Model class

    Raises:
        ValueError: If model name is not recognized
    """
    name_lower = name.lower()
    if name_lower not in _REGISTRY:
        raise ValueError(f"Unknown model: {name}. Available: {sorted(_REGISTRY)}")
    return _REGISTRY[name_lower][0]


def build_model(name: str, config: Optional[Dict[str, Any]] = None, **overrides) -> BaseModel:
    """
    Instantiate a model from its section of a models config.

    Args:
        name: Model name accepted by get_model_class
        config: Parsed configs/models.yaml (whole file); None uses constructor defaults
        **overrides: Keyword arguments that win over config values (e.g. random_state)

    Returns:
        Untrained model instance
    """
    model_class = get_model_class(name)
    section = _REGISTRY[name.lower()][1]
    params = dict((config or {}).get(section) or {})
    params.update(overrides)
    return model_class(**params)
