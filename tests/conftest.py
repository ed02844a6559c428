"""
Pytest configuration for explorer_ml tests.

This file configures warning filters and the shared synthetic tables.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


def pytest_configure(config):
    """Configure pytest with warning filters."""
    # r2_score on a constant target
    config.addinivalue_line(
        "filterwarnings",
        "ignore:R\\^2 score is not well-defined.*:sklearn.exceptions.UndefinedMetricWarning"
    )
    # Pandas inferring date formats element by element
    config.addinivalue_line(
        "filterwarnings",
        "ignore:Could not infer format.*:UserWarning"
    )
    # Ignore DeprecationWarnings from external packages
    config.addinivalue_line(
        "filterwarnings",
        "ignore::DeprecationWarning"
    )


# =============================================================================
# Shared tables
# =============================================================================

@pytest.fixture
def coffee_tree_rows():
    """Preprocessed coffee rows: mornings buy Latte, rainy cold evenings buy Espresso."""
    latte = {'Day': 'Monday', 'TimeSlot': 'Morning', 'IsRainy': 'No', 'TempCategory': 'Mild', 'Item': 'Latte'}
    espresso = {'Day': 'Friday', 'TimeSlot': 'Evening', 'IsRainy': 'Yes', 'TempCategory': 'Cold', 'Item': 'Espresso'}
    return [dict(latte) for _ in range(20)] + [dict(espresso) for _ in range(10)]


@pytest.fixture
def transactions():
    """
    Raw transactions across five condition buckets.

    Latte sells in every bucket; 'Seasonal Special' sells once in one bucket.
    """
    days = [
        ('2024-03-04', 'Monday', 0.0, 6.0, 14.0, 8),
        ('2024-03-05', 'Tuesday', 2.0, 4.0, 10.0, 5),
        ('2024-03-06', 'Wednesday', 0.5, 8.0, 17.0, 9),
        ('2024-03-07', 'Thursday', 5.0, 3.0, 9.0, 3),
        ('2024-03-08', 'Friday', 0.0, 10.0, 20.0, 11),
    ]
    rows = []
    for date, day, rain, min_temp, max_temp, n_latte in days:
        for i in range(n_latte):
            rows.append({
                'Date': date, 'Day': day, 'Time': f"09:{i:02d}", 'Rain': rain,
                'Min Temp': min_temp, 'Max Temp': max_temp, 'Item': 'Latte',
            })
    rows.append({
        'Date': '2024-03-08', 'Day': 'Friday', 'Time': '09:45', 'Rain': 0.0,
        'Min Temp': 10.0, 'Max Temp': 20.0, 'Item': 'Seasonal Special',
    })
    return rows


@pytest.fixture
def survey_rows():
    """Thirty survey answers; willingness to pay rises with income."""
    prices = ['€2.50', '3', '€3.50', '4.00', '€5', '6.00 euro']
    incomes = ['12,000', '18000', '25,000', '32 000', '45,000', '60000']
    rows = []
    for i in range(30):
        k = i % 6
        rows.append({
            'Age': 20 + k * 6,
            'Gender': 'Woman' if i % 2 else 'Man',
            'Annual income': incomes[k],
            'How many cups per day': k % 4,
            'Hot or cold coffee?': 'Hot\nusually' if k < 3 else 'Cold',
            'Large chain or small local business?': 'Large chain' if k < 3 else 'Small , local business',
            'Does coffee make you productive?': 'Yes',
            'Reusable cup?': 'No',
            'Reason for drinking': 'Energy boost' if k < 3 else 'Taste',
            'Student': 1 if k < 2 else 0,
            'Fulltime': 0 if k < 2 else 1,
            'How much would you pay for a cup?': prices[k],
        })
    return rows


@pytest.fixture
def trade_rows():
    """Six months of exports for two countries, two months of imports."""
    rows = []
    months = ['2023 July', '2023 August', '2023 September', '2023 October', '2023 November', '2023 December']
    for i, month in enumerate(months):
        rows.append({'Month': month, 'Statistic': 'Exports', 'Country': 'Germany', 'VALUE': 100.0 + 10 * i})
        rows.append({'Month': month, 'Statistic': 'Exports', 'Country': 'France', 'VALUE': 50.0 + 5 * i})
    for month in months[:2]:
        rows.append({'Month': month, 'Statistic': 'Imports', 'Country': 'Germany', 'VALUE': 80.0})
    return rows
