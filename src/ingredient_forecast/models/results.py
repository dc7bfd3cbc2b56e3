"""
Stage Result Models
====================
Immutable containers passed between pipeline stages.

Each stage returns its output table together with a StageDiagnostics record,
so that excluded rows are always accounted for instead of silently dropped.

Column layouts
--------------
ResolvedConsumption : line_id, order_key, store_id, order_date,
                      ingredient_id, consumed_quantity, path
DailyDemand         : store_id, date, total_quantity
DemandMatrix        : DatetimeIndex 'date' (daily), one float column per store
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd

CONSUMPTION_COLUMNS = [
    'line_id', 'order_key', 'store_id', 'order_date',
    'ingredient_id', 'consumed_quantity', 'path'
]
DAILY_DEMAND_COLUMNS = ['store_id', 'date', 'total_quantity']

DIRECT_PATH = 'direct'
SUB_RECIPE_PATH = 'sub_recipe'


@dataclass
class StageDiagnostics:
    """
    Counts and messages collected while a stage runs.

    Attributes
    ----------
    stage : str
        Stage name ("resolver", "aggregator", "densifier")
    input_rows : int
        Rows the stage received
    output_rows : int
        Rows the stage emitted
    exclusions : Dict[str, int]
        Excluded row counts keyed by reason (e.g. "missing_recipe")
    warnings : List[str]
        Non-fatal findings worth surfacing in the run summary
    info : Dict[str, Any]
        Additional stage metadata
    """
    stage: str
    input_rows: int = 0
    output_rows: int = 0
    exclusions: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    info: Dict[str, Any] = field(default_factory=dict)

    def add_exclusion(self, reason: str, count: int) -> None:
        """Record excluded rows; zero counts are ignored."""
        if count:
            self.exclusions[reason] = self.exclusions.get(reason, 0) + int(count)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    @property
    def total_excluded(self) -> int:
        return sum(self.exclusions.values())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'stage': self.stage,
            'input_rows': self.input_rows,
            'output_rows': self.output_rows,
            'exclusions': dict(self.exclusions),
            'total_excluded': self.total_excluded,
            'warnings': list(self.warnings),
            'info': dict(self.info),
        }


@dataclass(frozen=True)
class ResolutionResult:
    """Output of the consumption resolver."""
    consumption: pd.DataFrame
    diagnostics: StageDiagnostics


@dataclass(frozen=True)
class AggregationResult:
    """Output of the demand aggregator."""
    daily_demand: pd.DataFrame
    diagnostics: StageDiagnostics


@dataclass(frozen=True)
class DemandMatrix:
    """
    Dense per-store daily demand over the observation window.

    Attributes
    ----------
    frame : pd.DataFrame
        One row per calendar day (ascending, no gaps), one column per store,
        NaN where demand is missing
    store_series : Dict[Any, pd.Series]
        Per-store sequences trimmed to each store's effective range, daily
        frequency, ready for a weekly-seasonal forecasting routine
    diagnostics : StageDiagnostics
        Densifier counts (truncated days, zero rewrites, missing days)
    seasonal_period : int
        Seasonal period the sequences are meant for (7 = weekly)
    """
    frame: pd.DataFrame
    store_series: Dict[Any, pd.Series]
    diagnostics: StageDiagnostics
    seasonal_period: int = 7

    @property
    def stores(self) -> List[Any]:
        return list(self.frame.columns)

    @property
    def start(self) -> Optional[pd.Timestamp]:
        return self.frame.index.min() if len(self.frame) else None

    @property
    def end(self) -> Optional[pd.Timestamp]:
        return self.frame.index.max() if len(self.frame) else None

    def series(self, store_id) -> pd.Series:
        """Return the forecasting-ready sequence for one store."""
        return self.store_series[store_id]
