"""
Feature preparation for the explorer_ml models.

Turns raw uploaded tables (coffee-shop transactions, coffee survey answers,
monthly trade statistics) into the records each model trains on:
- preprocess_coffee_data: categorical TimeSlot / TempCategory / IsRainy columns
- preprocess_for_regression: per-condition sales counts for demand regression
- preprocess_survey_data: encoded survey answers plus a price tier target
- preprocess_trade_data: monthly series per statistic type

Every column is located with the tolerant matcher in tabular.py; missing
columns fall back to documented defaults rather than failing, except for the
few columns a model cannot work without.
"""

import datetime as dt
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .tabular import (
    get_columns,
    is_flag_set,
    is_missing,
    first_line,
    number_or_default,
    parse_number,
    require_column,
    resolve_column,
    round_half_up,
    rows_to_frame,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Encoding tables
# =============================================================================

DAY_CODES = {
    'Monday': 0, 'Tuesday': 1, 'Wednesday': 2, 'Thursday': 3,
    'Friday': 4, 'Saturday': 5, 'Sunday': 6,
}
TIME_SLOT_CODES = {'Morning': 0, 'Afternoon': 1, 'Evening': 2}
SEASON_CODES = {'Winter': 0, 'Spring': 1, 'Summer': 2, 'Autumn': 3, 'Fall': 3}

DEFAULT_DAY_CODE = 3
DEFAULT_TIME_SLOT_CODE = 1
DEFAULT_SEASON_CODE = 2

DEFAULT_RAIN = 0.0
DEFAULT_MIN_TEMP = 10.0
DEFAULT_MAX_TEMP = 20.0

REGRESSION_FEATURES = ['Rain', 'MinTemp', 'MaxTemp', 'Day', 'TimeSlot', 'Season']

GENDER_CODES = {
    'man': 0, 'male': 0,
    'woman': 1, 'female': 1,
    'other': 2,
    'prefer not to say': 2,
}
TEMP_PREFERENCE_CODES = {'hot': 0, 'cold': 1, 'both': 2}
VENUE_PREFERENCE_CODES = {'large chain': 0, 'small , local business': 1, 'both': 2}
PRODUCTIVITY_CODES = {'no': 0, 'maybe': 1, 'yes': 2}
REUSABLE_CUP_CODES = {'no': 0, 'sometimes': 1, 'yes': 2}

PRICE_TIERS = ['budget', 'moderate', 'premium']
PRICE_TIER_LABELS = {
    'budget': 'Budget (€0-3)',
    'moderate': 'Moderate (€3-4.50)',
    'premium': 'Premium (€4.50+)',
}
BUDGET_MAX_PRICE = 3.0
MODERATE_MAX_PRICE = 4.5

SURVEY_FEATURES = [
    'age', 'income', 'cups', 'gender_encoded', 'temp_encoded',
    'venue_encoded', 'productivity_encoded', 'reusable_encoded',
    'is_student', 'is_fulltime', 'energy_focused', 'taste_focused',
]

MONTH_NAMES = [
    'January', 'February', 'March', 'April', 'May', 'June',
    'July', 'August', 'September', 'October', 'November', 'December',
]
_MONTH_LOOKUP = {name.lower(): i + 1 for i, name in enumerate(MONTH_NAMES)}


# =============================================================================
# Calendar helpers
# =============================================================================

def get_time_slot(hour: Optional[float]) -> str:
    """Morning 6-11, Afternoon 12-16, everything else (incl. unknown) Evening."""
    if hour is not None and 6 <= hour < 12:
        return 'Morning'
    if hour is not None and 12 <= hour < 17:
        return 'Afternoon'
    return 'Evening'


def get_season(month: int) -> str:
    """Meteorological season for a 1-based month number."""
    if 3 <= month <= 5:
        return 'Spring'
    if 6 <= month <= 8:
        return 'Summer'
    if 9 <= month <= 11:
        return 'Autumn'
    return 'Winter'


def parse_time_to_hour(value: Any, default: int = 12) -> Optional[int]:
    """
    Hour of day from a time cell.

    Accepts "HH:MM[:SS]" strings, Excel day fractions (0.75 -> 18), plain
    numeric hours and datetime/time objects. Missing values give ``default``;
    an "HH:MM" string with an unreadable hour gives None.
    """
    if isinstance(value, (dt.time, dt.datetime)):
        return value.hour
    if is_missing(value):
        return default
    if isinstance(value, str) and ':' in value:
        hour = parse_number(value.split(':')[0])
        return None if hour is None else int(hour)
    num = parse_number(value)
    if num is None:
        return default
    if num < 1:
        return int(np.floor(num * 24))
    return int(np.floor(num))


def parse_date(value: Any) -> Optional[pd.Timestamp]:
    """Parse a date cell, returning None when it is missing or unreadable."""
    if is_missing(value):
        return None
    ts = pd.to_datetime(value, errors='coerce')
    if ts is None or pd.isna(ts):
        return None
    return ts


def parse_month_label(label: Any) -> Optional[pd.Timestamp]:
    """
    Parse a "YYYY MonthName" label (e.g. "2023 January") to the 1st of that month.

    Returns None for anything else.
    """
    if is_missing(label):
        return None
    parts = str(label).strip().split(' ')
    if len(parts) != 2:
        return None
    year_match = re.match(r'^\d+', parts[0])
    month = _MONTH_LOOKUP.get(parts[1].lower())
    if year_match is None or month is None:
        return None
    return pd.Timestamp(year=int(year_match.group(0)), month=month, day=1)


def format_month_label(date: pd.Timestamp) -> str:
    """Inverse of parse_month_label."""
    return f"{date.year} {MONTH_NAMES[date.month - 1]}"


def add_months(date: pd.Timestamp, months: int) -> pd.Timestamp:
    """Calendar-month increment."""
    return pd.Timestamp(date) + pd.DateOffset(months=months)


# =============================================================================
# Coffee-shop transactions (decision tree)
# =============================================================================

def preprocess_coffee_data(rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """
    Add categorical columns used by the item classifier.

    - TimeSlot from Time ("HH:MM")
    - TempCategory from Max Temp: < 10 Cold, < 18 Mild, else Warm
    - IsRainy from Rain: "yes"/"true"/"1" -> "Yes", anything else -> "No"

    Original columns are kept; rows are copied, never mutated.
    """
    processed = []
    for row in rows:
        out = dict(row)

        time_value = row.get('Time')
        if not is_missing(time_value) and time_value != 0:
            if isinstance(time_value, (dt.time, dt.datetime)):
                hour = time_value.hour
            else:
                hour = parse_number(str(time_value).split(':')[0])
            out['TimeSlot'] = get_time_slot(hour)

        max_temp = None
        for key in ('Max Temp', 'MaxTemp', 'Max temp'):
            max_temp = parse_number(row.get(key))
            if max_temp is not None:
                break
        if max_temp is not None:
            if max_temp < 10:
                out['TempCategory'] = 'Cold'
            elif max_temp < 18:
                out['TempCategory'] = 'Mild'
            else:
                out['TempCategory'] = 'Warm'

        if 'Rain' in row:
            rain = row['Rain']
            if isinstance(rain, str):
                rainy = rain.strip().lower() in ('yes', 'true', '1')
            else:
                rainy = is_flag_set(rain)
            out['IsRainy'] = 'Yes' if rainy else 'No'

        processed.append(out)
    return processed


# =============================================================================
# Demand regression
# =============================================================================

@dataclass
class RegressionDataset:
    """
    Aggregated training data for the demand forecaster.

    Attributes:
        total_sales_data: One record per condition bucket, Sales = transactions
        item_sales_data: item -> one record per (bucket, item) pair
        items: Sorted item names
        feature_names: Regression feature order
    """
    total_sales_data: List[Dict[str, Any]] = field(default_factory=list)
    item_sales_data: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    items: List[str] = field(default_factory=list)
    feature_names: List[str] = field(default_factory=lambda: list(REGRESSION_FEATURES))


def encode_regression_features(features: Mapping[str, Any]) -> List[float]:
    """
    Map a conditions record onto the fixed six-feature numeric vector.

    Rain, MinTemp and MaxTemp are parsed (defaults 0, 10, 20 when missing);
    Day, TimeSlot and Season go through the closed code tables with defaults
    Thursday (3), Afternoon (1) and Summer (2).
    """
    def _code(table: Dict[str, int], value: Any, default: int) -> int:
        if isinstance(value, str):
            return table.get(value, default)
        return default

    return [
        number_or_default(features.get('Rain'), DEFAULT_RAIN),
        number_or_default(features.get('MinTemp'), DEFAULT_MIN_TEMP),
        number_or_default(features.get('MaxTemp'), DEFAULT_MAX_TEMP),
        float(_code(DAY_CODES, features.get('Day'), DEFAULT_DAY_CODE)),
        float(_code(TIME_SLOT_CODES, features.get('TimeSlot'), DEFAULT_TIME_SLOT_CODE)),
        float(_code(SEASON_CODES, features.get('Season'), DEFAULT_SEASON_CODE)),
    ]


def preprocess_for_regression(rows: Sequence[Mapping[str, Any]]) -> RegressionDataset:
    """
    Aggregate raw transactions into per-condition sales counts.

    Each transaction is bucketed on (day, time slot, rounded rain, rounded
    min temp, rounded max temp, season). The total-sales record of a bucket
    counts its transactions; item records count transactions per item in
    that bucket. A bucket keeps the unrounded weather values of its first
    transaction.

    Args:
        rows: Raw transaction rows

    Returns:
        RegressionDataset
    """
    columns = get_columns(rows)
    day_col = resolve_column(columns, ['day'])
    time_col = resolve_column(columns, ['time'])
    rain_col = resolve_column(columns, ['rain'])
    min_temp_col = resolve_column(columns, ['min', 'mintemp'])
    max_temp_col = resolve_column(columns, ['max', 'maxtemp'])
    date_col = resolve_column(columns, ['date'])
    item_col = resolve_column(columns, ['item', 'product', 'coffee'])

    logger.debug(
        f"Regression columns: day={day_col}, time={time_col}, rain={rain_col}, "
        f"min={min_temp_col}, max={max_temp_col}, date={date_col}, item={item_col}"
    )

    records = []
    for row in rows:
        date = parse_date(row.get(date_col)) if date_col else None

        day = row.get(day_col) if day_col else None
        if is_missing(day) and date is not None:
            day = date.day_name()
        if is_missing(day):
            day = None

        time_slot = 'Afternoon'
        if time_col:
            time_slot = get_time_slot(parse_time_to_hour(row.get(time_col)))

        rain = number_or_default(row.get(rain_col), DEFAULT_RAIN) if rain_col else DEFAULT_RAIN
        min_temp = number_or_default(row.get(min_temp_col), DEFAULT_MIN_TEMP) if min_temp_col else DEFAULT_MIN_TEMP
        max_temp = number_or_default(row.get(max_temp_col), DEFAULT_MAX_TEMP) if max_temp_col else DEFAULT_MAX_TEMP

        season = get_season(date.month) if date is not None else 'Summer'

        item = row.get(item_col) if item_col else None
        item = 'Unknown' if is_missing(item) else str(item)

        records.append({
            'Day': day,
            'TimeSlot': time_slot,
            'Rain': rain,
            'MinTemp': min_temp,
            'MaxTemp': max_temp,
            'Season': season,
            'Item': item,
            '_rain_key': round_half_up(rain),
            '_min_key': round_half_up(min_temp),
            '_max_key': round_half_up(max_temp),
        })

    if not records:
        return RegressionDataset()

    frame = rows_to_frame(records)
    frame['Day'] = frame['Day'].fillna('')
    key_cols = ['Day', 'TimeSlot', '_rain_key', '_min_key', '_max_key', 'Season']
    first_values = dict(
        Rain=('Rain', 'first'),
        MinTemp=('MinTemp', 'first'),
        MaxTemp=('MaxTemp', 'first'),
        Sales=('Item', 'size'),
    )

    totals = frame.groupby(key_cols, sort=False).agg(**first_values).reset_index()
    # Item rows share their bucket's weather
    weather_cols = ['Rain', 'MinTemp', 'MaxTemp']
    frame[weather_cols] = frame.groupby(key_cols, sort=False)[weather_cols].transform('first')
    per_item = frame.groupby(key_cols + ['Item'], sort=False).agg(**first_values).reset_index()

    def _to_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
        out = []
        for rec in df[REGRESSION_FEATURES + ['Sales']].to_dict('records'):
            rec['Day'] = rec['Day'] or None
            rec['Sales'] = int(rec['Sales'])
            out.append(rec)
        return out

    item_sales_data = {
        item: _to_records(group)
        for item, group in per_item.groupby('Item', sort=True)
    }

    dataset = RegressionDataset(
        total_sales_data=_to_records(totals),
        item_sales_data=item_sales_data,
        items=sorted(item_sales_data.keys()),
    )
    logger.info(
        f"Aggregated {len(records):,} transactions into {len(dataset.total_sales_data)} "
        f"condition buckets across {len(dataset.items)} items"
    )
    return dataset


# =============================================================================
# Coffee survey (price sensitivity)
# =============================================================================

def parse_price(value: Any) -> Optional[float]:
    """Price from a survey answer: currency symbols and other non-numeric characters are stripped."""
    if is_missing(value):
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        return parse_number(value)
    cleaned = re.sub(r'[^\d.]', '', str(value))
    return parse_number(cleaned)


def parse_income(value: Any) -> Optional[float]:
    """Income from a survey answer; thousands separators and spaces are ignored."""
    if is_missing(value):
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        return parse_number(value)
    return parse_number(re.sub(r'[,\s]', '', str(value)))


def categorize_price(price: Optional[float]) -> Optional[str]:
    """
    Bucket a price into a tier.

    price <= 3 -> budget, price <= 4.5 -> moderate, otherwise premium.
    None stays None.
    """
    if price is None:
        return None
    if price <= BUDGET_MAX_PRICE:
        return 'budget'
    if price <= MODERATE_MAX_PRICE:
        return 'moderate'
    return 'premium'


def _lookup(table: Dict[str, int], key: Optional[str], default: int) -> int:
    if key is None:
        return default
    return table.get(key, default)


def _or_default(value: Optional[float], default: float) -> float:
    return default if value is None else value


def preprocess_survey_data(rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """
    Encode survey answers for the price sensitivity model.

    Rows whose price/willingness-to-pay answer cannot be parsed are skipped.

    Returns:
        One record per valid row with raw values (raw_price, raw_age,
        raw_income, raw_gender), the target (price_category and its code),
        and the encoded SURVEY_FEATURES.

    Raises:
        InvalidColumnError: If no price/willingness column exists
    """
    columns = get_columns(rows)

    age_col = resolve_column(columns, ['age'])
    gender_col = resolve_column(columns, ['gender'])
    income_col = resolve_column(columns, ['income'])
    cups_col = resolve_column(columns, ['cups', 'how many'])
    price_col = require_column(
        columns, ['pay', 'price', 'prepared'],
        "Dataset must have a price/willingness to pay column",
    )
    temp_col = resolve_column(columns, ['hot', 'cold'])
    venue_col = resolve_column(columns, ['chain', 'local'])
    productivity_col = resolve_column(columns, ['productive'])
    reusable_col = resolve_column(columns, ['reusable'])
    reason_col = resolve_column(columns, ['reason'])
    student_col = resolve_column(columns, ['student'])
    fulltime_col = resolve_column(columns, ['fulltime', 'full time'])

    processed = []
    for row in rows:
        price = parse_price(row.get(price_col))
        category = categorize_price(price)
        if category is None:
            continue

        age = parse_number(row.get(age_col)) if age_col else None
        gender = str(row.get(gender_col)).lower().strip() if gender_col else None
        income = parse_income(row.get(income_col)) if income_col else None
        cups = parse_number(row.get(cups_col)) if cups_col else None
        temp = first_line(row.get(temp_col)) if temp_col else None
        venue = first_line(row.get(venue_col)) if venue_col else None
        productivity = first_line(row.get(productivity_col)) if productivity_col else None
        reusable = first_line(row.get(reusable_col)) if reusable_col else None
        reason = row.get(reason_col) if reason_col else None
        reason = '' if is_missing(reason) else str(reason).lower()

        processed.append({
            'raw_price': price,
            'raw_age': age,
            'raw_income': income,
            'raw_gender': gender,
            'price_category': category,
            'price_category_encoded': PRICE_TIERS.index(category),
            'age': _or_default(age, 30.0),
            'income': _or_default(income, 20000.0),
            'cups': _or_default(cups, 2.0),
            'gender_encoded': _lookup(GENDER_CODES, gender, 2),
            'temp_encoded': _lookup(TEMP_PREFERENCE_CODES, temp.split(' ')[0] if temp else None, 0),
            'venue_encoded': _lookup(VENUE_PREFERENCE_CODES, venue, 2),
            'productivity_encoded': _lookup(PRODUCTIVITY_CODES, productivity, 1),
            'reusable_encoded': _lookup(REUSABLE_CUP_CODES, reusable, 0),
            'is_student': int(bool(student_col) and is_flag_set(row.get(student_col))),
            'is_fulltime': int(bool(fulltime_col) and is_flag_set(row.get(fulltime_col))),
            'energy_focused': int('energy' in reason or 'caffeine' in reason),
            'taste_focused': int('taste' in reason),
        })

    logger.info(f"Survey preprocessing kept {len(processed)}/{len(rows)} rows with a valid price")
    return processed


def survey_feature_vector(record: Mapping[str, Any]) -> List[float]:
    """Fixed 12-dimensional vector in SURVEY_FEATURES order."""
    return [float(record[name]) for name in SURVEY_FEATURES]


def encode_customer(customer: Mapping[str, Any]) -> List[float]:
    """
    Encode a single customer profile for prediction.

    Recognised keys: age, income, cups, gender, temp_preference,
    chain_preference, productivity, reusable_cup, is_student, is_fulltime,
    energy_focused, taste_focused. Missing keys take the training defaults.
    """
    def _text(key: str) -> Optional[str]:
        value = customer.get(key)
        return None if value is None else str(value).lower()

    record = {
        'age': _or_default(parse_number(customer.get('age')), 30.0),
        'income': _or_default(parse_income(customer.get('income')), 20000.0),
        'cups': _or_default(parse_number(customer.get('cups')), 2.0),
        'gender_encoded': _lookup(GENDER_CODES, _text('gender'), 2),
        'temp_encoded': _lookup(TEMP_PREFERENCE_CODES, _text('temp_preference'), 0),
        'venue_encoded': _lookup(VENUE_PREFERENCE_CODES, _text('chain_preference'), 2),
        'productivity_encoded': _lookup(PRODUCTIVITY_CODES, _text('productivity'), 1),
        'reusable_encoded': _lookup(REUSABLE_CUP_CODES, _text('reusable_cup'), 0),
        'is_student': int(bool(customer.get('is_student'))),
        'is_fulltime': int(bool(customer.get('is_fulltime'))),
        'energy_focused': int(bool(customer.get('energy_focused'))),
        'taste_focused': int(bool(customer.get('taste_focused'))),
    }
    return survey_feature_vector(record)


# =============================================================================
# Trade statistics (time series)
# =============================================================================

@dataclass
class TradeDataset:
    """
    Monthly trade series grouped by statistic type.

    Attributes:
        series_by_type: statistic -> chronologically sorted points, each a dict
            with month, date, value, count and top_countries (top 5 that month)
        statistic_types: Statistic labels in first-seen order
        top_countries: statistic -> top 10 countries by summed value
        month_col / value_col / country_col / statistic_col: resolved columns
    """
    series_by_type: Dict[Any, List[Dict[str, Any]]] = field(default_factory=dict)
    statistic_types: List[Any] = field(default_factory=list)
    top_countries: Dict[Any, List[Dict[str, Any]]] = field(default_factory=dict)
    month_col: Optional[str] = None
    value_col: Optional[str] = None
    country_col: Optional[str] = None
    statistic_col: Optional[str] = None


def _top_values(series: pd.Series, n: int, label: str) -> List[Dict[str, Any]]:
    top = series.sort_values(ascending=False, kind='stable').head(n)
    return [{label: key, 'value': float(value)} for key, value in top.items()]


def preprocess_trade_data(rows: Sequence[Mapping[str, Any]]) -> TradeDataset:
    """
    Group trade rows into monthly series per statistic type.

    Values are summed per (month label, statistic). Month labels must follow
    "YYYY MonthName"; groups with any other label are dropped from the series
    (but still count towards country totals).

    Raises:
        InvalidColumnError: If no month or value column exists
    """
    columns = get_columns(rows)
    month_col = resolve_column(columns, ['month', 'date', 'period'])
    country_col = resolve_column(columns, ['country', 'countries', 'territory', 'region'])
    value_col = resolve_column(columns, ['value', 'amount', 'volume'])
    statistic_col = resolve_column(columns, ['statistic', 'type', 'stat'])

    if month_col is None or value_col is None:
        require_column(columns, ['month', 'date', 'period'], "Dataset must have Month and Value columns")
        require_column(columns, ['value', 'amount', 'volume'], "Dataset must have Month and Value columns")

    records = []
    for row in rows:
        month = row.get(month_col)
        value = parse_number(row.get(value_col))
        if is_missing(month) or value is None:
            continue
        statistic = row.get(statistic_col) if statistic_col else 'Value'
        country = row.get(country_col) if country_col else 'All'
        records.append({
            'month': str(month),
            'statistic': 'Value' if is_missing(statistic) else statistic,
            'country': 'Unknown' if is_missing(country) else country,
            'value': value,
        })

    dataset = TradeDataset(
        month_col=month_col,
        value_col=value_col,
        country_col=country_col,
        statistic_col=statistic_col,
    )
    if not records:
        return dataset

    frame = rows_to_frame(records)
    dataset.statistic_types = list(pd.unique(frame['statistic']))

    for (month, statistic), group in frame.groupby(['month', 'statistic'], sort=False):
        date = parse_month_label(month)
        if date is None:
            continue
        countries = group.groupby('country', sort=False)['value'].sum()
        dataset.series_by_type.setdefault(statistic, []).append({
            'month': month,
            'date': date,
            'value': float(group['value'].sum()),
            'count': int(len(group)),
            'top_countries': _top_values(countries, 5, 'country'),
        })

    for series in dataset.series_by_type.values():
        series.sort(key=lambda point: point['date'])

    for statistic, group in frame.groupby('statistic', sort=False):
        totals = group.groupby('country', sort=False)['value'].sum()
        dataset.top_countries[statistic] = _top_values(totals, 10, 'country')

    logger.info(
        f"Trade data: {len(records):,} rows, {len(dataset.statistic_types)} statistic types, "
        f"{sum(len(s) for s in dataset.series_by_type.values())} monthly points"
    )
    return dataset
