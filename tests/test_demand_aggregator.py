"""
Tests for the demand aggregator.
"""

import math

import numpy as np
import pandas as pd
import pytest

from ingredient_forecast.exceptions import SchemaError
from ingredient_forecast.models.results import DAILY_DEMAND_COLUMNS
from ingredient_forecast.services.consumption_resolver import ConsumptionResolver
from ingredient_forecast.services.demand_aggregator import DemandAggregator


def random_consumption(seed: int, rows: int = 400) -> pd.DataFrame:
    """Consumption rows with quantities spread over many orders of magnitude."""
    rng = np.random.default_rng(seed)
    days = pd.date_range('2024-02-01', periods=6, freq='D')
    return pd.DataFrame({
        'store_id': rng.integers(1, 4, size=rows),
        'order_date': days[rng.integers(0, len(days), size=rows)] + pd.to_timedelta(rng.integers(0, 86400, size=rows), unit='s'),
        'consumed_quantity': rng.uniform(0, 1, size=rows) * 10.0 ** rng.integers(-6, 7, size=rows),
    })


def test_aggregates_resolved_consumption(sample_tables):
    resolution = ConsumptionResolver({27, 291}).resolve(sample_tables)
    result = DemandAggregator().aggregate_resolution(resolution)
    daily = result.daily_demand

    assert list(daily.columns) == DAILY_DEMAND_COLUMNS
    assert daily.values.tolist() == [
        [1, pd.Timestamp('2024-01-01'), 1.0],
        [1, pd.Timestamp('2024-01-02'), 1.0],
        [2, pd.Timestamp('2024-01-01'), 1.5],
    ]
    assert result.diagnostics.output_rows == 3


@pytest.mark.parametrize('seed', [0, 1, 2])
def test_daily_sum_is_exact(seed):
    consumption = random_consumption(seed)
    daily = DemandAggregator().aggregate(consumption).daily_demand

    consumption['date'] = consumption['order_date'].dt.normalize()
    for row in daily.itertuples():
        group = consumption[(consumption['store_id'] == row.store_id) & (consumption['date'] == row.date)]
        assert row.total_quantity == math.fsum(group['consumed_quantity'])


@pytest.mark.parametrize('seed', [0, 1, 2])
def test_result_is_independent_of_row_order(seed):
    consumption = random_consumption(seed)
    shuffled = consumption.sample(frac=1.0, random_state=seed + 100)

    aggregator = DemandAggregator()
    pd.testing.assert_frame_equal(
        aggregator.aggregate(shuffled).daily_demand,
        aggregator.aggregate(consumption).daily_demand
    )


def test_one_row_per_store_and_day():
    daily = DemandAggregator().aggregate(random_consumption(7)).daily_demand
    assert not daily.duplicated(['store_id', 'date']).any()
    assert daily.equals(daily.sort_values(['store_id', 'date']).reset_index(drop=True))


def test_invalid_consumed_quantities_are_excluded():
    consumption = pd.DataFrame({
        'store_id': [1, 1, 1],
        'order_date': pd.to_datetime(['2024-01-01', '2024-01-01', '2024-01-01']),
        'consumed_quantity': [2.0, -1.0, np.nan],
    })
    result = DemandAggregator().aggregate(consumption)

    assert result.daily_demand['total_quantity'].tolist() == [2.0]
    assert result.diagnostics.exclusions == {'invalid_consumed_quantity': 2}


def test_empty_consumption_gives_empty_daily_demand():
    consumption = pd.DataFrame({
        'store_id': pd.Series([], dtype=int),
        'order_date': pd.Series([], dtype='datetime64[ns]'),
        'consumed_quantity': pd.Series([], dtype=float),
    })
    daily = DemandAggregator().aggregate(consumption).daily_demand
    assert daily.empty
    assert list(daily.columns) == DAILY_DEMAND_COLUMNS


def test_missing_column_raises_schema_error():
    with pytest.raises(SchemaError):
        DemandAggregator().aggregate(pd.DataFrame({'store_id': [1], 'order_date': ['2024-01-01']}))
