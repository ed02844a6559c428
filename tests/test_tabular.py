"""
Tests for the schema-tolerant table helpers.
"""

import sys
from pathlib import Path

import pytest
import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent))

from explorer_ml.exceptions import InvalidColumnError
from explorer_ml.tabular import (
    first_line,
    get_columns,
    is_flag_set,
    is_missing,
    number_or_default,
    parse_number,
    require_column,
    resolve_column,
    round_half_up,
    rows_to_frame,
)


class TestColumns:

    def test_get_columns_first_appearance_order(self):
        rows = [{'b': 1, 'a': 2}, {'a': 3, 'c': 4}]
        assert get_columns(rows) == ['b', 'a', 'c']

    def test_resolve_column_case_insensitive_substring(self):
        columns = ['Transaction Date', 'Max Temp', 'Coffee Item']
        assert resolve_column(columns, ['item', 'product']) == 'Coffee Item'
        assert resolve_column(columns, ['MAX']) == 'Max Temp'

    def test_resolve_column_first_matching_column_wins(self):
        columns = ['Rainfall', 'Rain']
        assert resolve_column(columns, ['rain']) == 'Rainfall'

    def test_resolve_column_missing_returns_none(self):
        assert resolve_column(['a', 'b'], ['price']) is None
        assert resolve_column([], ['price']) is None

    def test_require_column_raises_with_context(self):
        with pytest.raises(InvalidColumnError) as exc_info:
            require_column(['Age', 'Gender'], ['pay', 'price'], "Dataset must have a price column")
        error = exc_info.value
        assert str(error) == "Dataset must have a price column"
        assert error.patterns == ['pay', 'price']
        assert error.columns == ['Age', 'Gender']

    def test_rows_to_frame(self):
        frame = rows_to_frame([{'x': 1}, {'x': 2, 'y': 'a'}])
        assert list(frame.columns) == ['x', 'y']
        assert len(frame) == 2
        assert rows_to_frame([]).empty


class TestParsing:

    @pytest.mark.parametrize("value, expected", [
        (3, 3.0),
        (2.5, 2.5),
        ("12.5mm", 12.5),
        ("  -4 ", -4.0),
        (".5", 0.5),
        ("1e3", 1000.0),
        (True, 1.0),
        (np.int64(7), 7.0),
    ])
    def test_parse_number(self, value, expected):
        assert parse_number(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", [None, "", "   ", "abc", "€3", float('nan')])
    def test_parse_number_unreadable(self, value):
        assert parse_number(value) is None

    def test_number_or_default_keeps_zero(self):
        assert number_or_default(0, 10.0) == 0.0
        assert number_or_default(None, 10.0) == 10.0
        assert number_or_default("n/a", 10.0) == 10.0

    def test_is_missing(self):
        assert is_missing(None)
        assert is_missing(float('nan'))
        assert is_missing("  ")
        assert not is_missing(0)
        assert not is_missing("No")

    def test_first_line(self):
        assert first_line("  Hot\nbut sometimes cold") == "hot"
        assert first_line(None) is None

    def test_is_flag_set(self):
        assert is_flag_set(1)
        assert is_flag_set("1")
        assert is_flag_set(True)
        assert not is_flag_set(0)
        assert not is_flag_set("yes")
        assert not is_flag_set(None)

    @pytest.mark.parametrize("value, expected", [
        (2.5, 3), (3.5, 4), (2.49, 2), (-0.5, 0), (-1.5, -1), (0.0, 0),
    ])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected
