"""
Tests for Holt smoothing, the moving average and the trade forecaster.

Key properties:
- a constant series keeps trend 0 and forecasts the constant
- a steady upward series continues upward within bounded growth
- lower <= prediction <= upper with non-decreasing width over the horizon
"""

import sys
from pathlib import Path
import math

import pytest
import numpy as np
import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))

from explorer_ml.exceptions import InsufficientDataError, ModelNotTrainedError, UnknownSeriesError
from explorer_ml.models import HoltForecaster, MovingAverageForecaster, TradeForecaster
from explorer_ml.models.smoothing import calculate_growth_rate, moving_average

NOISY = [120.0, 131.0, 125.0, 140.0, 138.0, 151.0, 149.0, 160.0, 158.0, 171.0]


# =============================================================================
# HoltForecaster
# =============================================================================
class TestHolt:

    def test_constant_series(self):
        model = HoltForecaster().fit([50.0] * 12)
        assert model.trend == pytest.approx(0.0)
        assert model.forecast(4) == pytest.approx([50.0] * 4)
        assert model.get_stats()['rmse'] == pytest.approx(0.0)

    def test_upward_series(self):
        model = HoltForecaster(alpha=0.3, beta=0.1).fit([100, 105, 110, 115])
        prediction = model.forecast(1)[0]
        assert 115 < prediction < 130

    def test_recursion_by_hand(self):
        model = HoltForecaster(alpha=0.5, beta=0.5).fit([10.0, 20.0, 24.0])
        # step 1: fitted 20, level 20, trend 10; step 2: fitted 30, level 27, trend 8.5
        assert model.fitted == pytest.approx([10.0, 20.0, 30.0])
        assert model.residuals == pytest.approx([0.0, 0.0, -6.0])
        assert model.level == pytest.approx(27.0)
        assert model.trend == pytest.approx(8.5)
        assert model.forecast(2) == pytest.approx([35.5, 44.0])

    def test_forecast_clamped_at_zero(self):
        model = HoltForecaster().fit([50.0, 30.0, 10.0])
        forecasts = model.forecast(10)
        assert all(f >= 0.0 for f in forecasts)
        assert forecasts[-1] == 0.0

    def test_confidence_interval_ordering(self):
        model = HoltForecaster().fit(NOISY)
        intervals = model.get_confidence_intervals(steps=8)

        assert len(intervals) == 8
        widths = []
        for interval in intervals:
            assert interval['lower'] <= interval['prediction'] <= interval['upper']
            widths.append(interval['upper'] - interval['lower'])
        assert all(b >= a for a, b in zip(widths, widths[1:]))

    def test_confidence_interval_width(self):
        model = HoltForecaster().fit(NOISY)
        se = math.sqrt(np.mean(np.square(model.residuals)))

        first = model.get_confidence_intervals(steps=1, confidence=0.95)[0]
        assert first['upper'] - first['prediction'] == pytest.approx(1.96 * se * math.sqrt(1.1))

        first_90 = model.get_confidence_intervals(steps=1, confidence=0.9)[0]
        assert first_90['upper'] - first_90['prediction'] == pytest.approx(1.645 * se * math.sqrt(1.1))

        # Unrecognised levels use the 95% z-score
        first_99 = model.get_confidence_intervals(steps=1, confidence=0.99)[0]
        assert first_99['upper'] == pytest.approx(first['upper'])

    def test_stats(self):
        model = HoltForecaster(alpha=0.4, beta=0.2).fit(NOISY)
        stats = model.get_stats()

        assert stats['samples'] == len(NOISY)
        assert stats['alpha'] == 0.4
        assert stats['beta'] == 0.2
        assert 0.0 <= stats['r2'] <= 1.0
        assert stats['mape'] > 0.0
        assert stats['current_level'] == model.level
        assert stats['current_trend'] == model.trend

    def test_requires_two_points(self):
        with pytest.raises(InsufficientDataError):
            HoltForecaster().fit([5.0])
        assert HoltForecaster().get_stats() is None

    def test_forecast_before_fit(self):
        with pytest.raises(ModelNotTrainedError):
            HoltForecaster().get_confidence_intervals()


# =============================================================================
# Moving average and helpers
# =============================================================================
class TestMovingAverage:

    def test_forecast_is_last_window_mean(self):
        model = MovingAverageForecaster(window=3).fit([1.0, 2.0, 3.0, 4.0, 8.0])
        assert model.forecast(3) == pytest.approx([5.0, 5.0, 5.0])

    def test_short_series_uses_all_values(self):
        assert MovingAverageForecaster(window=5).fit([2.0, 4.0]).forecast(1) == [3.0]

    def test_stats_and_errors(self):
        model = MovingAverageForecaster(window=2).fit([10.0, 15.0])
        assert model.get_stats() == {'samples': 2, 'window': 2, 'growth_rate': pytest.approx(50.0)}
        with pytest.raises(ValueError):
            MovingAverageForecaster(window=0)
        with pytest.raises(InsufficientDataError):
            MovingAverageForecaster().fit([])

    def test_moving_average(self):
        assert moving_average([1.0, 2.0, 3.0, 4.0], window=2) == pytest.approx([1.0, 1.5, 2.5, 3.5])
        assert moving_average([]) == []

    @pytest.mark.parametrize("values, rate", [
        ([100.0, 150.0], 50.0),
        ([200.0, 120.0, 100.0], -50.0),
        ([0.0, 5.0], 100.0),
        ([0.0, 0.0], 0.0),
        ([7.0], 0.0),
    ])
    def test_growth_rate(self, values, rate):
        assert calculate_growth_rate(values) == pytest.approx(rate)


# =============================================================================
# TradeForecaster
# =============================================================================
class TestTradeForecaster:

    def test_train_skips_short_series(self, trade_rows):
        forecaster = TradeForecaster()
        results = forecaster.train(trade_rows)

        assert set(results) == {'Exports'}
        assert results['Exports']['data_points'] == 6
        assert results['Exports']['date_range'] == {'start': '2023 July', 'end': '2023 December'}
        assert forecaster.get_statistic_types() == ['Exports', 'Imports']

    def test_forecast_labels_roll_over_year(self, trade_rows):
        forecaster = TradeForecaster()
        forecaster.train(trade_rows)
        result = forecaster.forecast('Exports', steps=3)

        assert [p['month'] for p in result['forecasts']] == ['2024 January', '2024 February', '2024 March']
        assert result['forecasts'][0]['date'] == pd.Timestamp(2024, 1, 1)
        assert all(p['is_forecast'] for p in result['forecasts'])
        assert len(result['historical']) == 6
        assert not any(p['is_forecast'] for p in result['historical'])
        assert result['combined'] == result['historical'] + result['forecasts']

    def test_forecast_continues_linear_trend(self, trade_rows):
        forecaster = TradeForecaster()
        forecaster.train(trade_rows)
        first = forecaster.forecast('Exports', steps=1)['forecasts'][0]

        # Exports grow by exactly 15 per month from 150
        assert first['prediction'] == pytest.approx(240.0)
        assert first['lower'] == pytest.approx(first['upper'])

    def test_unknown_series(self, trade_rows):
        forecaster = TradeForecaster()
        forecaster.train(trade_rows)
        with pytest.raises(UnknownSeriesError) as exc_info:
            forecaster.forecast('Imports')
        assert exc_info.value.details == {'available': ['Exports']}

    def test_lookups(self, trade_rows):
        forecaster = TradeForecaster()
        assert forecaster.get_statistic_types() == []
        assert forecaster.get_top_countries('Exports') == []

        forecaster.train(trade_rows)
        assert [c['country'] for c in forecaster.get_top_countries('Exports')] == ['Germany', 'France']
        assert forecaster.get_top_countries('Re-exports') == []
        assert forecaster.get_stats('Imports') is None
        assert forecaster.get_stats('Exports')['samples'] == 6

        all_stats = forecaster.get_all_stats()
        assert set(all_stats) == {'Exports'}
        assert all_stats['Exports']['data_points'] == 6
        assert forecaster.get_stats() == all_stats

    def test_smoothing_parameters_passed_through(self, trade_rows):
        forecaster = TradeForecaster(alpha=0.6, beta=0.3)
        forecaster.train(trade_rows)
        stats = forecaster.get_stats('Exports')
        assert stats['alpha'] == 0.6
        assert stats['beta'] == 0.3
