"""
Exponential smoothing forecasters for monthly trade statistics.

Includes:
- HoltForecaster: double exponential smoothing (level + trend, no seasonality)
- MovingAverageForecaster: flat forecast from the mean of the last window
- TradeForecaster: one Holt model per statistic type of a trade dataset
"""

from typing import Any, Dict, List, Optional, Sequence
import logging
import math

import numpy as np

from .base import BaseModel
from ..exceptions import InsufficientDataError, UnknownSeriesError
from ..features import TradeDataset, add_months, format_month_label, preprocess_trade_data
from ..metrics import clamped_r2, compute_mape
from ..utils import timer

logger = logging.getLogger(__name__)

MIN_FIT_POINTS = 2
MIN_SERIES_POINTS = 3
HORIZON_GROWTH = 0.1
Z_SCORES = {0.95: 1.96, 0.9: 1.645}
DEFAULT_Z = 1.96


def calculate_growth_rate(values: Sequence[float]) -> float:
    """
    Percentage change from the first to the last value.

    Returns 0 for fewer than two values. A zero start gives 100 when the
    series ends positive, else 0.
    """
    if len(values) < 2:
        return 0.0
    first, last = values[0], values[-1]
    if first == 0:
        return 100.0 if last > 0 else 0.0
    return (last - first) / first * 100


def moving_average(values: Sequence[float], window: int = 3) -> List[float]:
    """Trailing mean of up to `window` values ending at each position."""
    result = []
    for i in range(len(values)):
        window_values = values[max(0, i - window + 1):i + 1]
        result.append(float(np.mean(window_values)))
    return result


class HoltForecaster(BaseModel):
    """
    Holt's linear trend method.

    level_t = alpha * y_t + (1 - alpha) * (level_{t-1} + trend_{t-1})
    trend_t = beta * (level_t - level_{t-1}) + (1 - beta) * trend_{t-1}

    Initialised with level = y_0 and trend = y_1 - y_0. The first observation
    is its own fitted value (residual 0); later fitted values are the
    one-step-ahead predictions level_{t-1} + trend_{t-1}.
    """

    def __init__(self, alpha: float = 0.3, beta: float = 0.1):
        """
        Args:
            alpha: Level smoothing factor in [0, 1]
            beta: Trend smoothing factor in [0, 1]
        """
        super().__init__()
        self.alpha = alpha
        self.beta = beta
        self.level: Optional[float] = None
        self.trend: Optional[float] = None
        self.fitted: List[float] = []
        self.residuals: List[float] = []
        self.train_data: List[float] = []

    def fit(self, values: Sequence[float]) -> 'HoltForecaster':
        """
        Smooth the series and record one-step-ahead residuals.

        Raises:
            InsufficientDataError: If fewer than 2 values are given
        """
        values = [float(v) for v in values]
        if len(values) < MIN_FIT_POINTS:
            raise InsufficientDataError(
                f"Need at least {MIN_FIT_POINTS} data points",
                required=MIN_FIT_POINTS,
                received=len(values),
            )

        level = values[0]
        trend = values[1] - values[0]
        fitted = [level]
        residuals = [0.0]

        for observed in values[1:]:
            prediction = level + trend
            fitted.append(prediction)
            residuals.append(observed - prediction)

            prev_level = level
            level = self.alpha * observed + (1 - self.alpha) * prediction
            trend = self.beta * (level - prev_level) + (1 - self.beta) * trend

        self.train_data = values
        self.level = level
        self.trend = trend
        self.fitted = fitted
        self.residuals = residuals
        self.is_fitted = True
        return self

    def forecast(self, steps: int = 6) -> List[float]:
        """Predictions for horizons 1..steps, clamped at 0."""
        self._check_is_fitted()
        return [max(0.0, self.level + i * self.trend) for i in range(1, steps + 1)]

    def get_confidence_intervals(self, steps: int = 6, confidence: float = 0.95) -> List[Dict[str, float]]:
        """
        Forecasts with symmetric intervals prediction +/- z * se * sqrt(1 + 0.1 * i).

        se is the root mean squared residual. z is 1.645 for confidence=0.9
        and 1.96 for 0.95 or any other value.

        Returns:
            One {'prediction', 'lower', 'upper'} dict per horizon
        """
        predictions = self.forecast(steps)
        se = math.sqrt(float(np.mean(np.square(self.residuals))))
        z = Z_SCORES.get(confidence, DEFAULT_Z)

        intervals = []
        for i, prediction in enumerate(predictions, start=1):
            margin = z * se * math.sqrt(1 + i * HORIZON_GROWTH)
            intervals.append({
                'prediction': prediction,
                'lower': prediction - margin,
                'upper': prediction + margin,
            })
        return intervals

    def get_stats(self) -> Optional[Dict[str, Any]]:
        """
        In-sample fit of the one-step-ahead predictions.

        Returns:
            r2 (clamped), rmse, mape, samples, alpha, beta and the final
            level/trend as current_level / current_trend; None before fit
        """
        if not self.train_data:
            return None
        y = np.array(self.train_data)
        fitted = np.array(self.fitted)
        return {
            'r2': clamped_r2(y, fitted),
            'rmse': float(np.sqrt(np.mean(np.square(self.residuals)))),
            'mape': compute_mape(y, fitted),
            'samples': len(y),
            'alpha': self.alpha,
            'beta': self.beta,
            'current_level': self.level,
            'current_trend': self.trend,
        }


class MovingAverageForecaster(BaseModel):
    """Flat forecast equal to the mean of the last `window` observations."""

    def __init__(self, window: int = 3):
        super().__init__()
        if window < 1:
            raise ValueError(f"window must be >= 1, got {window}")
        self.window = window
        self.values: List[float] = []

    def fit(self, values: Sequence[float]) -> 'MovingAverageForecaster':
        values = [float(v) for v in values]
        if not values:
            raise InsufficientDataError(required=1, received=0)
        self.values = values
        self.is_fitted = True
        return self

    def forecast(self, steps: int = 6) -> List[float]:
        self._check_is_fitted()
        average = float(np.mean(self.values[-self.window:]))
        return [average] * steps

    def get_stats(self) -> Optional[Dict[str, Any]]:
        if not self.values:
            return None
        return {
            'samples': len(self.values),
            'window': self.window,
            'growth_rate': calculate_growth_rate(self.values),
        }


class TradeForecaster(BaseModel):
    """
    Per-statistic Holt forecasts for monthly trade data.

    Example usage:
        forecaster = TradeForecaster(alpha=0.3, beta=0.1)
        forecaster.train(rows)
        result = forecaster.forecast('Exports', steps=6)
        result['combined']  # historical points followed by forecast points
    """

    def __init__(self, alpha: float = 0.3, beta: float = 0.1):
        super().__init__()
        self.alpha = alpha
        self.beta = beta
        self.models: Dict[Any, Dict[str, Any]] = {}
        self.dataset: Optional[TradeDataset] = None

    def train(self, data: Sequence[Dict[str, Any]]) -> Dict[Any, Dict[str, Any]]:
        """
        Fit one HoltForecaster per statistic type with at least 3 monthly points.

        Returns:
            statistic -> Holt stats plus data_points and date_range {start, end}

        Raises:
            InvalidColumnError: If no month or value column exists
        """
        with timer("Train trade forecaster"):
            self.dataset = preprocess_trade_data(list(data))
            self.models = {}

            results = {}
            for statistic, series in self.dataset.series_by_type.items():
                if len(series) < MIN_SERIES_POINTS:
                    logger.warning(f"Skipping {statistic}: {len(series)} monthly points, need {MIN_SERIES_POINTS}")
                    continue

                model = HoltForecaster(self.alpha, self.beta).fit([point['value'] for point in series])
                self.models[statistic] = {
                    'model': model,
                    'series': series,
                    'last_date': series[-1]['date'],
                }
                results[statistic] = {
                    **model.get_stats(),
                    'data_points': len(series),
                    'date_range': {'start': series[0]['month'], 'end': series[-1]['month']},
                }

        self.is_fitted = True
        logger.info(f"TradeForecaster: fitted {len(self.models)}/{len(self.dataset.series_by_type)} series")
        return results

    def forecast(self, statistic: Any, steps: int = 6) -> Dict[str, List[Dict[str, Any]]]:
        """
        Historical points and future forecasts for one statistic type.

        Forecast months are calendar-month increments from the last
        historical month.

        Returns:
            {'historical', 'forecasts', 'combined'}; forecast points carry
            month, date, prediction, lower, upper and is_forecast=True

        Raises:
            ModelNotTrainedError: If train has not been called
            UnknownSeriesError: If no model exists for the statistic type
        """
        self._check_is_fitted()
        entry = self.models.get(statistic)
        if entry is None:
            raise UnknownSeriesError(
                f"No model for type: {statistic}",
                details={'available': list(self.models)},
            )

        forecasts = []
        for i, interval in enumerate(entry['model'].get_confidence_intervals(steps), start=1):
            future = add_months(entry['last_date'], i)
            forecasts.append({
                'month': format_month_label(future),
                'date': future,
                **interval,
                'is_forecast': True,
            })

        historical = [
            {'month': point['month'], 'date': point['date'], 'value': point['value'], 'is_forecast': False}
            for point in entry['series']
        ]
        return {
            'historical': historical,
            'forecasts': forecasts,
            'combined': historical + forecasts,
        }

    def get_statistic_types(self) -> List[Any]:
        return list(self.dataset.statistic_types) if self.dataset else []

    def get_top_countries(self, statistic: Any) -> List[Dict[str, Any]]:
        if self.dataset is None:
            return []
        return self.dataset.top_countries.get(statistic, [])

    def get_stats(self, statistic: Any = None) -> Optional[Dict[str, Any]]:
        """Holt stats for one statistic type, or for all of them when none is given."""
        if statistic is None:
            return self.get_all_stats()
        entry = self.models.get(statistic)
        if entry is None:
            return None
        return entry['model'].get_stats()

    def get_all_stats(self) -> Dict[Any, Dict[str, Any]]:
        return {
            statistic: {**entry['model'].get_stats(), 'data_points': len(entry['series'])}
            for statistic, entry in self.models.items()
        }
