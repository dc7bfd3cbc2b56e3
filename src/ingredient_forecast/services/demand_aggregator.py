"""
Demand Aggregation Service
===========================
Sums resolved consumption into daily demand per store.

The sum is computed with math.fsum (correctly rounded), so the result for a
store/day is the exact sum of its rows and does not change with row order.
"""

import math

import pandas as pd

from ..models.results import (
    CONSUMPTION_COLUMNS,
    DAILY_DEMAND_COLUMNS,
    AggregationResult,
    ResolutionResult,
    StageDiagnostics,
)
from ..utils.logger import get_logger, LogContext
from ..utils.validators import require_columns

logger = get_logger(__name__)


class DemandAggregator:
    """
    Group ResolvedConsumption by (store_id, calendar day).

    Usage
    -----
    >>> aggregator = DemandAggregator()
    >>> result = aggregator.aggregate(resolution.consumption)
    >>> result.daily_demand.head()
    """

    def aggregate(self, consumption: pd.DataFrame) -> AggregationResult:
        """
        Parameters
        ----------
        consumption : pd.DataFrame
            ResolvedConsumption rows (at least store_id, order_date,
            consumed_quantity)

        Returns
        -------
        AggregationResult
            DailyDemand sorted by (store_id, date)
        """
        require_columns(consumption, ['store_id', 'order_date', 'consumed_quantity'], 'consumption')
        diagnostics = StageDiagnostics(stage='aggregator', input_rows=len(consumption))

        with LogContext(logger, "Aggregating daily demand"):
            work = consumption[['store_id', 'order_date', 'consumed_quantity']].copy()
            work['date'] = pd.to_datetime(work['order_date']).dt.normalize()

            invalid = work['consumed_quantity'].isna() | (work['consumed_quantity'] < 0)
            diagnostics.add_exclusion('invalid_consumed_quantity', invalid.sum())
            work = work[~invalid]

            if len(work) == 0:
                daily = pd.DataFrame(columns=DAILY_DEMAND_COLUMNS)
            else:
                daily = (
                    work.groupby(['store_id', 'date'])['consumed_quantity']
                    .agg(math.fsum)
                    .rename('total_quantity')
                    .reset_index()
                )
            daily = daily.sort_values(['store_id', 'date']).reset_index(drop=True)

            diagnostics.output_rows = len(daily)
            diagnostics.info['stores'] = int(daily['store_id'].nunique())
            diagnostics.info['zero_days'] = int((daily['total_quantity'] == 0).sum())

            logger.info(
                f"Generated daily demand: {len(daily):,} rows across "
                f"{diagnostics.info['stores']} stores"
            )

        return AggregationResult(daily_demand=daily, diagnostics=diagnostics)

    def aggregate_resolution(self, resolution: ResolutionResult) -> AggregationResult:
        """Aggregate the output of the consumption resolver directly."""
        return self.aggregate(resolution.consumption[CONSUMPTION_COLUMNS])
