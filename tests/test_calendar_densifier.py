"""
Tests for the calendar densifier: dense calendars, the zero-as-missing
policy and leading truncation.
"""

import numpy as np
import pandas as pd
import pytest

from ingredient_forecast.config import StoreConfig
from ingredient_forecast.exceptions import ConfigurationError
from ingredient_forecast.services.calendar_densifier import CalendarDensifier

START = pd.Timestamp('2024-01-01')
END = pd.Timestamp('2024-01-10')


def test_one_row_per_day_for_every_store(daily_demand):
    matrix = CalendarDensifier().densify(daily_demand, start=START, end=END)
    frame = matrix.frame

    assert list(frame.index) == list(pd.date_range(START, END, freq='D'))
    assert frame.index.is_unique
    assert frame.index.is_monotonic_increasing
    assert matrix.stores == [1, 2]
    assert matrix.seasonal_period == 7


def test_gaps_become_missing_not_zero(daily_demand):
    frame = CalendarDensifier().densify(daily_demand, start=START, end=END).frame

    assert frame.loc['2024-01-02', 1] == 3.0
    assert frame.loc['2024-01-05', 1] == 5.5
    assert np.isnan(frame.loc['2024-01-01', 1])
    assert np.isnan(frame.loc['2024-01-06', 1])
    assert frame[2].notna().sum() == 1


def test_zero_as_missing_enabled_rewrites_zero(daily_demand):
    densifier = CalendarDensifier(default_policy={'zero_as_missing': True})
    matrix = densifier.densify(daily_demand, start=START, end=END)

    assert np.isnan(matrix.frame.loc['2024-01-03', 1])
    assert matrix.diagnostics.info['stores']['1']['zero_rewritten'] == 1


def test_zero_as_missing_disabled_keeps_zero(daily_demand):
    densifier = CalendarDensifier(default_policy={'zero_as_missing': False})
    frame = densifier.densify(daily_demand, start=START, end=END).frame

    assert frame.loc['2024-01-03', 1] == 0.0
    assert frame.loc['2024-01-08', 2] == 0.0


def test_policies_are_per_store(daily_demand):
    densifier = CalendarDensifier({2: StoreConfig(2, zero_as_missing=False)})
    frame = densifier.densify(daily_demand, start=START, end=END).frame

    assert np.isnan(frame.loc['2024-01-03', 1])
    assert frame.loc['2024-01-08', 2] == 0.0


def test_leading_truncation_drops_first_observed_days(daily_demand):
    densifier = CalendarDensifier({1: StoreConfig(1, leading_truncation_days=2)})
    matrix = densifier.densify(daily_demand, start=START, end=END)

    series = matrix.series(1)
    # Observed 01-02 and 01-03 are dropped; the sequence starts the day after
    assert series.index[0] == pd.Timestamp('2024-01-04')
    assert series.index[-1] == END
    assert series.loc['2024-01-05'] == 5.5
    assert matrix.frame.loc[:'2024-01-03', 1].isna().all()
    assert matrix.diagnostics.exclusions['truncated_days'] == 2


def test_truncation_beyond_observations_leaves_store_empty(daily_demand):
    densifier = CalendarDensifier({2: StoreConfig(2, leading_truncation_days=5)})
    matrix = densifier.densify(daily_demand, start=START, end=END)

    assert len(matrix.series(2)) == 0
    assert matrix.frame[2].isna().all()
    assert any('Store 2' in w for w in matrix.diagnostics.warnings)


def test_store_start_date_bounds_the_sequence(daily_demand):
    densifier = CalendarDensifier({1: StoreConfig(1, start_date='2024-01-04')})
    matrix = densifier.densify(daily_demand, start=START, end=END)

    assert matrix.series(1).index[0] == pd.Timestamp('2024-01-04')
    assert matrix.diagnostics.exclusions['out_of_range_days'] == 2


def test_stores_without_demand_get_missing_columns(daily_demand):
    matrix = CalendarDensifier().densify(daily_demand, store_ids=[1, 2, 3], start=START, end=END)
    assert matrix.stores == [1, 2, 3]
    assert matrix.frame[3].isna().all()


def test_window_defaults_to_demand_span(daily_demand):
    frame = CalendarDensifier().densify(daily_demand).frame
    assert frame.index[0] == pd.Timestamp('2024-01-02')
    assert frame.index[-1] == pd.Timestamp('2024-01-09')


def test_densify_store_returns_daily_series(daily_demand):
    series = CalendarDensifier().densify_store(daily_demand, StoreConfig(2), START, END)
    assert len(series) == 10
    assert series.index.freqstr == 'D'
    assert series.name == 2


@pytest.mark.parametrize('seed', [0, 1, 2, 3, 4])
def test_sparse_input_is_always_dense(seed):
    rng = np.random.default_rng(seed)
    calendar = pd.date_range('2023-06-01', periods=90, freq='D')
    rows = []
    for store_id in (10, 20, 30):
        n_days = int(rng.integers(0, 30))
        for day in rng.choice(calendar, size=n_days, replace=False):
            rows.append({'store_id': store_id, 'date': day, 'total_quantity': float(rng.integers(0, 5))})
    daily = pd.DataFrame(rows, columns=['store_id', 'date', 'total_quantity'])

    matrix = CalendarDensifier().densify(
        daily, store_ids=[10, 20, 30], start=calendar[0], end=calendar[-1]
    )

    assert list(matrix.frame.index) == list(calendar)
    for store_id in (10, 20, 30):
        assert list(matrix.series(store_id).index) == list(calendar)


def test_duplicate_dates_are_rejected(daily_demand):
    doubled = pd.concat([daily_demand, daily_demand.iloc[[0]]], ignore_index=True)
    with pytest.raises(ValueError):
        CalendarDensifier().densify(doubled, start=START, end=END)


def test_start_after_end_is_a_configuration_error(daily_demand):
    with pytest.raises(ConfigurationError) as exc_info:
        CalendarDensifier().densify(daily_demand, start=END, end=START)
    assert exc_info.value.code == 'INVALID_DATE_RANGE'


def test_empty_demand_without_window_is_a_configuration_error():
    empty = pd.DataFrame(columns=['store_id', 'date', 'total_quantity'])
    with pytest.raises(ConfigurationError):
        CalendarDensifier().densify(empty)
