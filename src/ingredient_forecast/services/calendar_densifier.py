"""
Calendar Densification Service
===============================
Turns the irregular per-store DailyDemand into dense daily sequences.

Gaps become explicit missing values (NaN), never zeros: a day with no joined
order rows is unobserved, not a day of zero demand. Two per-store policies,
read from StoreConfig records:

- leading truncation: the first k observed days of a store are dropped
  (late activation, unreliable ramp-up); the store's sequence begins the day
  after its k-th observed date
- zero-as-missing: a summed value of exactly zero is rewritten to missing
  (legacy assumption that a zero day is an unreported day)

Output sequences have a fixed daily frequency for a weekly (period 7)
seasonal forecasting routine.
"""

from typing import Any, Dict, Iterable, Optional

import pandas as pd

from ..config import StoreConfig
from ..exceptions import ConfigurationError
from ..models.results import DemandMatrix, StageDiagnostics
from ..utils.constants import FORECAST_CONFIG
from ..utils.logger import get_logger, LogContext
from ..utils.validators import require_columns

logger = get_logger(__name__)


class CalendarDensifier:
    """
    Build per-store daily sequences and the store-by-date DemandMatrix.

    Parameters
    ----------
    store_configs : Dict[Any, StoreConfig], optional
        Explicit policies per store id
    default_policy : Dict, optional
        Keyword arguments for StoreConfig used for stores without an entry
    seasonal_period : int
        Seasonal period recorded on the output (default 7)

    Usage
    -----
    >>> densifier = CalendarDensifier({4904: StoreConfig(4904, leading_truncation_days=6)})
    >>> matrix = densifier.densify(daily_demand, store_ids=[4904, 12631])
    >>> matrix.frame.tail()
    """

    def __init__(
        self,
        store_configs: Optional[Dict[Any, StoreConfig]] = None,
        default_policy: Optional[Dict[str, Any]] = None,
        seasonal_period: int = FORECAST_CONFIG['seasonal_period']
    ):
        self.store_configs = dict(store_configs or {})
        self.default_policy = dict(default_policy or {})
        self.seasonal_period = seasonal_period

    def config_for(self, store_id) -> StoreConfig:
        if store_id in self.store_configs:
            return self.store_configs[store_id]
        return StoreConfig(store_id=store_id, **self.default_policy)

    def densify(
        self,
        daily_demand: pd.DataFrame,
        store_ids: Optional[Iterable[Any]] = None,
        start: Optional[pd.Timestamp] = None,
        end: Optional[pd.Timestamp] = None
    ) -> DemandMatrix:
        """
        Densify every store over the observation window.

        Parameters
        ----------
        daily_demand : pd.DataFrame
            DailyDemand rows (store_id, date, total_quantity)
        store_ids : Iterable, optional
            Stores to include as columns; defaults to stores in daily_demand.
            Stores with no demand get an all-missing column.
        start, end : pd.Timestamp, optional
            Observation window; defaults to the span of daily_demand

        Returns
        -------
        DemandMatrix
        """
        require_columns(daily_demand, ['store_id', 'date', 'total_quantity'], 'daily_demand')
        start, end = self._resolve_window(daily_demand, start, end)

        if store_ids is None:
            store_ids = daily_demand['store_id'].dropna().unique()
        store_ids = list(dict.fromkeys(store_ids))

        diagnostics = StageDiagnostics(stage='densifier', input_rows=len(daily_demand))
        diagnostics.info['window_start'] = str(start.date())
        diagnostics.info['window_end'] = str(end.date())
        diagnostics.info['stores'] = {}

        calendar = pd.date_range(start=start, end=end, freq='D', name='date')

        with LogContext(logger, f"Densifying {len(store_ids)} stores over {len(calendar)} days"):
            store_series = {}
            for store_id in store_ids:
                series, store_info = self._densify_store(
                    daily_demand[daily_demand['store_id'] == store_id],
                    self.config_for(store_id),
                    start,
                    end
                )
                store_series[store_id] = series
                diagnostics.info['stores'][str(store_id)] = store_info
                diagnostics.add_exclusion('truncated_days', store_info['truncated_days'])
                diagnostics.add_exclusion('out_of_range_days', store_info['out_of_range_days'])

            frame = pd.DataFrame(
                {store_id: series.reindex(calendar) for store_id, series in store_series.items()},
                index=calendar,
                columns=store_ids,
                dtype=float
            )

            diagnostics.output_rows = len(frame)
            diagnostics.info['missing_cells'] = int(frame.isna().sum().sum())

            for store_id, info in diagnostics.info['stores'].items():
                if info['observed_days'] == 0:
                    diagnostics.add_warning(f"Store {store_id} has no observed demand in its range")
                logger.info(
                    f"Store {store_id}: {info['observed_days']} observed / "
                    f"{info['length']} days, {info['zero_rewritten']} zeros rewritten"
                )

        return DemandMatrix(
            frame=frame,
            store_series=store_series,
            diagnostics=diagnostics,
            seasonal_period=self.seasonal_period
        )

    def densify_store(
        self,
        daily_demand: pd.DataFrame,
        store_config: StoreConfig,
        start: pd.Timestamp,
        end: pd.Timestamp
    ) -> pd.Series:
        """
        Dense daily sequence for one store, from its effective start to `end`.

        Rows of other stores in `daily_demand` are ignored.
        """
        rows = daily_demand[daily_demand['store_id'] == store_config.store_id]
        series, _ = self._densify_store(
            rows, store_config, pd.Timestamp(start).normalize(), pd.Timestamp(end).normalize()
        )
        return series

    def _densify_store(
        self,
        rows: pd.DataFrame,
        store_config: StoreConfig,
        start: pd.Timestamp,
        end: pd.Timestamp
    ):
        raw = pd.Series(
            rows['total_quantity'].astype(float).to_numpy(),
            index=pd.to_datetime(rows['date']).dt.normalize().to_numpy(),
        ).sort_index()

        if raw.index.duplicated().any():
            raise ValueError(
                f"Daily demand has duplicate dates for store {store_config.store_id}"
            )

        range_start = start
        if store_config.start_date is not None:
            range_start = max(start, store_config.start_date)

        in_range = (raw.index >= range_start) & (raw.index <= end)
        out_of_range = int((~in_range).sum())
        raw = raw[in_range]

        truncated = 0
        k = store_config.leading_truncation_days
        if k > 0:
            truncated = min(k, len(raw))
            if k >= len(raw):
                # Nothing survives: the sequence starts after the window
                range_start = end + pd.Timedelta(days=1)
            else:
                range_start = raw.index[k - 1] + pd.Timedelta(days=1)
            raw = raw[raw.index >= range_start]

        zero_rewritten = 0
        if store_config.zero_as_missing:
            zeros = raw == 0
            zero_rewritten = int(zeros.sum())
            raw = raw.mask(zeros)

        index = pd.date_range(start=range_start, end=end, freq='D', name='date')
        series = raw.reindex(index)
        series.name = store_config.store_id

        info = {
            'effective_start': str(range_start.date()) if len(index) else None,
            'length': len(series),
            'observed_days': int(series.notna().sum()),
            'missing_days': int(series.isna().sum()),
            'truncated_days': truncated,
            'out_of_range_days': out_of_range,
            'zero_rewritten': zero_rewritten,
            'leading_truncation_days': k,
            'zero_as_missing': store_config.zero_as_missing,
        }
        return series, info

    def _resolve_window(self, daily_demand: pd.DataFrame, start, end):
        if start is None or end is None:
            if len(daily_demand) == 0:
                raise ConfigurationError(
                    "Cannot infer an observation window from empty daily demand",
                    code="EMPTY_WINDOW"
                )
            dates = pd.to_datetime(daily_demand['date'])
            start = dates.min() if start is None else start
            end = dates.max() if end is None else end

        start = pd.Timestamp(start).normalize()
        end = pd.Timestamp(end).normalize()
        if start > end:
            raise ConfigurationError(
                f"Window start {start.date()} is after window end {end.date()}",
                code="INVALID_DATE_RANGE"
            )
        return start, end
