"""
Services Package
=================
Pipeline stages and their supporting services.

Modules:
- data_loader: Input table loading and column normalization
- consumption_resolver: Order lines -> ingredient consumption
- demand_aggregator: Consumption -> daily demand per store
- calendar_densifier: Daily demand -> dense per-store sequences
- forecaster: Per-store model selection and forecasting
- output_generator: CSV/JSON export
"""

from .data_loader import DataLoader, InputTables, LoadResult, normalize_columns
from .consumption_resolver import ConsumptionResolver
from .demand_aggregator import DemandAggregator
from .calendar_densifier import CalendarDensifier
from .forecaster import (
    StoreForecaster,
    ForecastResult,
    CandidateScore,
    build_forecast_table,
    selection_table
)
from .output_generator import OutputGenerator, OutputPackage

__all__ = [
    'DataLoader',
    'InputTables',
    'LoadResult',
    'normalize_columns',
    'ConsumptionResolver',
    'DemandAggregator',
    'CalendarDensifier',
    'StoreForecaster',
    'ForecastResult',
    'CandidateScore',
    'build_forecast_table',
    'selection_table',
    'OutputGenerator',
    'OutputPackage'
]
