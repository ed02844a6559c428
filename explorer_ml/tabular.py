"""
Schema-tolerant access to in-memory tables.

A table is an ordered sequence of row records, each a mapping from column
name to a scalar (string, number or None). Columns are discovered at runtime
by case-insensitive substring matching; absent columns resolve to None and
callers substitute defaults instead of failing.
"""

import math
import re
from typing import Any, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .exceptions import InvalidColumnError

Row = Mapping[str, Any]

# Longest numeric prefix, the same leniency as a browser's parseFloat
_NUMBER_PREFIX = re.compile(r'^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?')


def rows_to_frame(rows: Iterable[Row]) -> pd.DataFrame:
    """
    Convert row records into a DataFrame.

    Column order is the insertion order of first appearance across rows;
    rows missing a column get NaN/None in it.
    """
    rows = list(rows)
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame.from_records(rows)


def get_columns(rows: Iterable[Row]) -> List[str]:
    """Return column names in first-appearance order."""
    columns: List[str] = []
    seen = set()
    for row in rows:
        for key in row.keys():
            if key not in seen:
                seen.add(key)
                columns.append(key)
    return columns


def resolve_column(columns: Sequence[str], patterns: Sequence[str]) -> Optional[str]:
    """
    Find the first column whose lowercased name contains any of the patterns.

    Args:
        columns: Candidate column names, in table order
        patterns: Name fragments to look for (case-insensitive)

    Returns:
        Matching column name, or None if nothing matches
    """
    lowered = [p.lower() for p in patterns]
    for column in columns:
        name = str(column).lower()
        if any(p in name for p in lowered):
            return column
    return None


def require_column(columns: Sequence[str], patterns: Sequence[str], message: Optional[str] = None) -> str:
    """Like resolve_column, but raise InvalidColumnError when nothing matches."""
    column = resolve_column(columns, patterns)
    if column is None:
        raise InvalidColumnError(
            message or f"No column matching any of {list(patterns)}",
            patterns=patterns,
            columns=columns,
        )
    return column


def is_missing(value: Any) -> bool:
    """True for None, NaN and empty/whitespace strings."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and value.strip() == '':
        return True
    return False


def parse_number(value: Any) -> Optional[float]:
    """
    Leniently parse a scalar into a float.

    Numbers pass through, strings are parsed by their longest numeric prefix
    ("12.5mm" -> 12.5). Returns None when nothing numeric can be read.
    """
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float, np.integer, np.floating)):
        value = float(value)
        return None if math.isnan(value) else value
    if is_missing(value):
        return None
    match = _NUMBER_PREFIX.match(str(value).strip())
    if match is None:
        return None
    return float(match.group(0))


def number_or_default(value: Any, default: float) -> float:
    """parse_number with a fallback for missing or unparseable values."""
    parsed = parse_number(value)
    return default if parsed is None else parsed


def first_line(value: Any) -> Optional[str]:
    """Lowercased, stripped first line of a free-text answer."""
    if value is None:
        return None
    return str(value).lower().strip().split('\n')[0]


def is_flag_set(value: Any) -> bool:
    """True when a 0/1 indicator cell holds 1 (as number, string or bool)."""
    return parse_number(value) == 1.0


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))
