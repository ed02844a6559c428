#!/usr/bin/env python3
"""
End-to-end demo of the four explorer_ml components on synthetic data.

Generates a coffee-shop transaction log, a coffee survey and a monthly trade
table, trains every model with the hyperparameters from configs/models.yaml
and logs a prediction from each.

Usage:
    python scripts/run_demo.py
    python scripts/run_demo.py --seed 7 --steps 12 --log-level DEBUG
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

import numpy as np
import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from explorer_ml.features import MONTH_NAMES, preprocess_coffee_data
from explorer_ml.models import build_model
from explorer_ml.utils import get_config_value, load_config, set_seed, setup_logging, timer

logger = logging.getLogger(__name__)

ITEMS = ['Latte', 'Espresso', 'Cappuccino', 'Americano', 'Mocha']
STATISTICS = ['Exports', 'Imports']
COUNTRIES = ['Germany', 'France', 'Italy', 'Spain', 'Netherlands', 'Poland']


# =============================================================================
# Synthetic data
# =============================================================================

def make_transactions(rng: np.random.Generator, n_days: int = 120) -> List[Dict[str, Any]]:
    """Daily transactions whose volume and item mix depend on weather and hour."""
    rows = []
    for date in pd.date_range('2024-01-01', periods=n_days, freq='D'):
        max_temp = float(np.round(12 + 10 * np.sin(2 * np.pi * date.dayofyear / 365) + rng.normal(0, 2), 1))
        min_temp = float(np.round(max_temp - rng.uniform(4, 9), 1))
        rain = float(np.round(max(0.0, rng.normal(1.0, 2.0)), 1))
        for hour in (8, 13, 18):
            n_sales = int(rng.poisson(6 + (4 if hour == 8 else 0) - min(rain, 4)))
            for _ in range(n_sales):
                if hour == 8:
                    item = 'Latte' if rng.random() < 0.6 else 'Espresso'
                elif max_temp < 10:
                    item = 'Mocha' if rng.random() < 0.5 else 'Cappuccino'
                else:
                    item = ITEMS[int(rng.integers(len(ITEMS)))]
                rows.append({
                    'Date': date.strftime('%Y-%m-%d'),
                    'Rainfall': rain,
                    'Day': date.day_name(),
                    'Time': f"{hour:02d}:{int(rng.integers(60)):02d}",
                    'Rain': 'Yes' if rain > 1 else 'No',
                    'Min Temp': min_temp,
                    'Max Temp': max_temp,
                    'Item': item,
                })
    return rows


def make_survey(rng: np.random.Generator, n: int = 200) -> List[Dict[str, Any]]:
    """Survey answers where income and student status drive willingness to pay."""
    rows = []
    for _ in range(n):
        is_student = rng.random() < 0.3
        income = float(rng.normal(18000 if is_student else 42000, 8000))
        price = np.clip(2.0 + income / 20000 + rng.normal(0, 0.6), 1.5, 7.0)
        rows.append({
            'Age': int(rng.integers(18, 24) if is_student else rng.integers(24, 65)),
            'Gender': rng.choice(['Man', 'Woman', 'Other']),
            'Annual income': f"{max(income, 0):,.0f}",
            'How many cups per day': int(rng.integers(0, 5)),
            'Do you prefer hot or cold coffee?': rng.choice(['Hot', 'Cold', 'Both']),
            'Large chain or small local business?': rng.choice(['Large chain', 'Small , local business', 'Both']),
            'Does coffee make you productive?': rng.choice(['Yes', 'Maybe', 'No']),
            'Do you use a reusable cup?': rng.choice(['Yes', 'Sometimes', 'No']),
            'Main reason for drinking coffee': rng.choice(['Energy', 'Taste', 'Habit']),
            'Student': 1 if is_student else 0,
            'Fulltime': 0 if is_student else int(rng.random() < 0.8),
            'How much would you pay for a coffee?': f"€{price:.2f}",
        })
    return rows


def make_trade(rng: np.random.Generator, n_months: int = 24) -> List[Dict[str, Any]]:
    """Monthly values per country with a linear trend per statistic."""
    rows = []
    for i, month in enumerate(pd.date_range('2022-01-01', periods=n_months, freq='MS')):
        label = f"{month.year} {MONTH_NAMES[month.month - 1]}"
        for s, statistic in enumerate(STATISTICS):
            for c, country in enumerate(COUNTRIES):
                base = (100 - 12 * c) * (1 + 0.02 * i * (1 if s == 0 else -0.5))
                rows.append({
                    'Month': label,
                    'Statistic': statistic,
                    'Country': country,
                    'VALUE': float(np.round(max(0.0, base + rng.normal(0, 5)), 2)),
                })
    return rows


# =============================================================================
# Demo
# =============================================================================

def main():
    parser = argparse.ArgumentParser(description="Train every explorer_ml model on synthetic data")
    parser.add_argument('--config', type=str, default='configs/models.yaml',
                        help='Model hyperparameter config')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed (default: demo.seed from config)')
    parser.add_argument('--steps', type=int, default=None,
                        help='Forecast horizon in months (default: demo.forecast_steps from config)')
    parser.add_argument('--log-level', type=str, default='INFO')
    parser.add_argument('--log-file', type=str, default=None)
    args = parser.parse_args()

    setup_logging(args.log_level, args.log_file)
    config = load_config(args.config)
    seed = args.seed if args.seed is not None else get_config_value(config, 'demo.seed', 42)
    steps = args.steps if args.steps is not None else get_config_value(config, 'demo.forecast_steps', 6)

    set_seed(seed)
    rng = np.random.default_rng(seed)

    transactions = make_transactions(rng)
    survey = make_survey(rng)
    trade = make_trade(rng)
    logger.info(f"Synthetic data: {len(transactions):,} transactions, {len(survey)} survey rows, "
                f"{len(trade):,} trade rows")

    # Decision tree
    with timer("Decision tree demo"):
        tree = build_model('decision_tree', config, random_state=seed)
        tree.train(preprocess_coffee_data(transactions), ['Day', 'TimeSlot', 'IsRainy', 'TempCategory'], 'Item')
        sample = {'Day': 'Monday', 'TimeSlot': 'Morning', 'IsRainy': 'No', 'TempCategory': 'Mild'}
        logger.info(f"Tree stats: {tree.get_model_stats()}")
        logger.info(f"Top items for {sample}: {tree.predict_top_n(sample, n=3)}")

    # Price sensitivity
    with timer("Price sensitivity demo"):
        pricing = build_model('price_sensitivity', config, random_state=seed)
        stats = pricing.train(survey)
        logger.info(f"Average price per tier: {stats['avg_prices']}")
        customer = {'age': 21, 'income': 15000, 'is_student': True, 'gender': 'Woman'}
        logger.info(f"Prediction for {customer}: {pricing.predict(customer)}")

    # Demand regression
    with timer("Demand forecaster demo"):
        demand = build_model('demand_forecaster', config)
        demand.train(transactions)
        conditions = {'Rain': 0, 'MinTemp': 8, 'MaxTemp': 16, 'Day': 'Saturday',
                      'TimeSlot': 'Morning', 'Season': 'Spring'}
        logger.info(f"Total sales for {conditions}: {demand.predict_total(conditions)}")
        logger.info(f"Per item: {demand.predict_all_items(conditions)}")
        logger.info(f"Feature importance:\n{demand.get_feature_importance()}")

    # Trade forecasting
    with timer("Trade forecaster demo"):
        trade_model = build_model('trade_forecaster', config)
        trade_model.train(trade)
        for statistic in trade_model.get_statistic_types():
            result = trade_model.forecast(statistic, steps=steps)
            last = result['forecasts'][-1]
            logger.info(
                f"{statistic}: {last['month']} forecast {last['prediction']:.1f} "
                f"[{last['lower']:.1f}, {last['upper']:.1f}]"
            )
            logger.info(f"{statistic} top countries: {trade_model.get_top_countries(statistic)[:3]}")


if __name__ == "__main__":
    main()
