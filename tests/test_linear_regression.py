"""
Tests for the ridge regression and the demand forecaster.

Key properties:
- constant targets give constant predictions and an R^2 inside [0, 1]
- training features are z-scored to mean 0 / std 1 (std 1 fallback for constants)
- items without their own model fall back to an even share of the total
"""

import sys
from pathlib import Path

import pytest
import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent))

from explorer_ml.exceptions import InsufficientDataError, ModelNotTrainedError
from explorer_ml.features import REGRESSION_FEATURES, encode_regression_features
from explorer_ml.models import DemandForecaster, LinearRegressionModel
from explorer_ml.tabular import round_half_up

DAYS = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']


def _condition_rows(sales_fn, n=14):
    """Conditions records with independent feature patterns; Season is constant."""
    rows = []
    for i in range(n):
        min_temp = 2.0 + (3 * i) % 11
        row = {
            'Rain': float((7 * i) % 5),
            'MinTemp': min_temp,
            'MaxTemp': min_temp + 4 + i % 4,
            'Day': DAYS[i % 7],
            'TimeSlot': ['Morning', 'Afternoon', 'Evening'][(i // 2) % 3],
            'Season': 'Spring',
        }
        row['Sales'] = sales_fn(row)
        rows.append(row)
    return rows


# =============================================================================
# LinearRegressionModel
# =============================================================================
class TestLinearRegression:

    def test_constant_target(self):
        model = LinearRegressionModel()
        stats = model.train(_condition_rows(lambda row: 7))

        assert 0.0 <= stats['r2'] <= 1.0
        assert stats['y_mean'] == pytest.approx(7.0)
        assert model.bias == pytest.approx(7.0)
        np.testing.assert_allclose(model.weights, 0.0, atol=1e-9)
        for conditions in [{}, {'Rain': 30, 'MaxTemp': -5, 'Day': 'Sunday'}, {'MinTemp': 40}]:
            assert model.predict(conditions) == 7

    def test_normalization(self):
        rows = _condition_rows(lambda row: 1)
        model = LinearRegressionModel()
        model.train(rows)

        X = np.array([encode_regression_features(r) for r in rows])
        X_norm = model.normalize(X)
        np.testing.assert_allclose(X_norm.mean(axis=0), 0.0, atol=1e-12)

        season = REGRESSION_FEATURES.index('Season')
        for j in range(X.shape[1]):
            expected_std = 0.0 if j == season else 1.0
            assert X_norm[:, j].std() == pytest.approx(expected_std)
        assert model.feature_stds[season] == 1.0

    def test_recovers_linear_relationship(self):
        rows = _condition_rows(lambda row: 40 + 3 * row['MaxTemp'] - 4 * row['Rain'], n=21)
        model = LinearRegressionModel(ridge_lambda=1e-6)
        stats = model.train(rows)

        assert stats['r2'] == pytest.approx(1.0, abs=1e-6)
        assert stats['rmse'] == pytest.approx(0.0, abs=1e-4)
        assert model.predict({'Rain': 0, 'MaxTemp': 20, 'MinTemp': 10, 'Day': 'Monday',
                              'TimeSlot': 'Morning', 'Season': 'Spring'}) == 100

        importance = model.get_feature_importance()
        assert list(importance.columns) == ['feature', 'importance', 'coefficient']
        assert importance['importance'].sum() == pytest.approx(1.0)
        rain = importance.set_index('feature').loc['Rain']
        assert rain['coefficient'] < 0

    def test_predictions_clamped_at_zero(self):
        rows = _condition_rows(lambda row: max(0.0, 50 - 5 * row['MinTemp']))
        model = LinearRegressionModel()
        model.train(rows)
        assert model.predict({'MinTemp': 100}) == 0
        assert isinstance(model.predict({'MinTemp': 100}), int)

    def test_zero_temperature_not_defaulted(self):
        rows = _condition_rows(lambda row: 10 + row['MinTemp'])
        model = LinearRegressionModel(ridge_lambda=1e-6)
        model.train(rows)
        assert model.predict({'MinTemp': 0}) != model.predict({'MinTemp': None})

    def test_ridge_does_not_shrink_bias(self):
        rows = _condition_rows(lambda row: 10 + row['MinTemp'])
        model = LinearRegressionModel(ridge_lambda=1e6)
        model.train(rows)
        assert model.bias == pytest.approx(np.mean([r['Sales'] for r in rows]))
        assert np.all(np.abs(model.weights) < 1e-3)

    def test_insufficient_rows(self):
        with pytest.raises(InsufficientDataError):
            LinearRegressionModel().train(_condition_rows(lambda row: 1, n=1))

    def test_predict_before_train(self):
        with pytest.raises(ModelNotTrainedError):
            LinearRegressionModel().predict({})

    def test_stats(self):
        model = LinearRegressionModel()
        model.train(_condition_rows(lambda row: row['Rain'] * 2 + 1))
        stats = model.get_stats()
        for key in ('r2', 'rmse', 'mae', 'samples', 'y_mean', 'y_min', 'y_max', 'feature_importance'):
            assert key in stats
        assert stats['samples'] == 14
        assert stats['y_min'] == 1.0
        assert stats['y_max'] == 9.0


# =============================================================================
# DemandForecaster
# =============================================================================
class TestDemandForecaster:

    def test_train_summary(self, transactions):
        forecaster = DemandForecaster()
        result = forecaster.train(transactions)

        assert result['total_items'] == 2
        assert result['item_count'] == 1
        assert set(result['item_models']) == {'Latte'}
        assert result['total_model']['samples'] == 5
        assert 0.0 <= result['total_model']['r2'] <= 1.0

    def test_item_fallback_is_share_of_total(self, transactions):
        forecaster = DemandForecaster()
        forecaster.train(transactions)
        conditions = {'Rain': 0, 'MinTemp': 10, 'MaxTemp': 20, 'Day': 'Friday',
                      'TimeSlot': 'Morning', 'Season': 'Spring'}

        total = forecaster.predict_total(conditions)
        assert forecaster.predict_item(conditions, 'Seasonal Special') == round_half_up(total / 2)
        assert forecaster.predict_item(conditions, 'Latte') == forecaster.item_models['Latte'].predict(conditions)

    def test_predict_all_items_sorted(self, transactions):
        forecaster = DemandForecaster()
        forecaster.train(transactions)
        predictions = forecaster.predict_all_items({'Day': 'Wednesday', 'TimeSlot': 'Morning'})

        assert {p['item'] for p in predictions} == {'Latte', 'Seasonal Special'}
        values = [p['predicted'] for p in predictions]
        assert values == sorted(values, reverse=True)

    def test_stats(self, transactions):
        forecaster = DemandForecaster()
        assert forecaster.get_stats() is None
        forecaster.train(transactions)

        stats = forecaster.get_stats()
        assert stats['items'] == ['Latte', 'Seasonal Special']
        assert [m['item'] for m in stats['item_models']] == ['Latte']
        assert stats['total_model']['samples'] == 5
        assert list(forecaster.get_feature_importance()['feature'])[0] in REGRESSION_FEATURES

    def test_single_bucket_is_insufficient(self):
        rows = [{'Day': 'Monday', 'Item': 'Latte'}] * 5
        with pytest.raises(InsufficientDataError):
            DemandForecaster().train(rows)

    def test_save_load(self, transactions, tmp_path):
        forecaster = DemandForecaster()
        forecaster.train(transactions)
        path = tmp_path / 'demand.joblib'
        forecaster.save(str(path))

        loaded = DemandForecaster.load(str(path))
        conditions = {'Day': 'Tuesday', 'Rain': 2, 'MinTemp': 4, 'MaxTemp': 10}
        assert loaded.predict_total(conditions) == forecaster.predict_total(conditions)
        assert loaded.predict_all_items(conditions) == forecaster.predict_all_items(conditions)
