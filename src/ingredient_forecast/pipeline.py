"""
Ingredient Demand Pipeline
===========================
Orchestrates a run from input tables to the final forecast table.

Phases:
1. Validation - configuration checked against the loaded tables
2. Resolution - order lines -> ingredient consumption
3. Aggregation - consumption -> daily demand per store
4. Densification - daily demand -> dense per-store calendar
5. Forecasting - per-store model selection and 14-day forecast
6. Export - CSV tables and run summary

A ConfigurationError in phase 1 aborts the run before any stage executes.

Usage:
    pipeline = IngredientDemandPipeline(PipelineConfig.from_json('run.json'))
    result = pipeline.run_from_directory()
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from .config import PipelineConfig, DEFAULT_CONFIG
from .models.results import AggregationResult, DemandMatrix, ResolutionResult, StageDiagnostics
from .services.calendar_densifier import CalendarDensifier
from .services.consumption_resolver import ConsumptionResolver
from .services.data_loader import DataLoader, InputTables
from .services.demand_aggregator import DemandAggregator
from .services.forecaster import ForecastResult, StoreForecaster, build_forecast_table, selection_table
from .services.output_generator import OutputGenerator, OutputPackage
from .utils.logger import get_logger, LogContext

logger = get_logger(__name__)


@dataclass(frozen=True)
class PreparedDemand:
    """Outputs of the three data preparation stages."""
    resolution: ResolutionResult
    aggregation: AggregationResult
    matrix: DemandMatrix
    store_names: Dict[Any, str]

    @property
    def diagnostics(self) -> List[StageDiagnostics]:
        return [
            self.resolution.diagnostics,
            self.aggregation.diagnostics,
            self.matrix.diagnostics,
        ]


@dataclass
class PipelineResult:
    """
    Result of a complete run.

    Attributes
    ----------
    prepared : PreparedDemand
        Stage outputs with diagnostics
    forecasts : List[ForecastResult]
        Per-store forecasts
    forecast_table : pd.DataFrame
        Wide table: date + one rounded column per store
    model_selection : pd.DataFrame
        Candidate scores per store
    summary : Dict[str, Any]
        Run summary (configuration, diagnostics, selected models)
    exported_files : Dict[str, str]
        Artifact type -> path, when the run was exported
    """
    prepared: PreparedDemand
    forecasts: List[ForecastResult]
    forecast_table: pd.DataFrame
    model_selection: pd.DataFrame
    summary: Dict[str, Any] = field(default_factory=dict)
    exported_files: Dict[str, str] = field(default_factory=dict)


class IngredientDemandPipeline:
    """
    Run the ingredient demand pipeline for one target ingredient.

    Usage
    -----
    >>> pipeline = IngredientDemandPipeline(PipelineConfig(ingredient_ids={27, 291}))
    >>> prepared = pipeline.prepare(tables)
    >>> prepared.matrix.frame.head()
    """

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or DEFAULT_CONFIG

    def prepare(self, tables: InputTables) -> PreparedDemand:
        """
        Validate the configuration, then resolve, aggregate and densify.

        Raises
        ------
        ConfigurationError
            Before any stage runs, if the configuration does not fit the data
        """
        config = self.config
        store_ids = self._store_ids(tables)
        data_start, data_end = tables.order_date_range()

        config.validate(store_ids, data_start, data_end)

        with LogContext(logger, f"Preparing {config.ingredient_name} demand"):
            resolver = ConsumptionResolver(
                ingredient_ids=config.ingredient_ids,
                overlap_policy=config.overlap_policy,
                unit_conversions=config.unit_conversions
            )
            resolution = resolver.resolve(tables)

            aggregation = DemandAggregator().aggregate_resolution(resolution)

            densifier = CalendarDensifier(
                store_configs=config.stores,
                default_policy=config.default_store,
                seasonal_period=config.forecast.seasonal_periods
            )
            matrix = densifier.densify(
                aggregation.daily_demand,
                store_ids=store_ids,
                start=config.window_start if config.window_start is not None else data_start,
                end=config.window_end if config.window_end is not None else data_end
            )

        return PreparedDemand(
            resolution=resolution,
            aggregation=aggregation,
            matrix=matrix,
            store_names=tables.store_names()
        )

    def forecast(self, prepared: PreparedDemand) -> PipelineResult:
        """Select a model per store and build the final forecast table."""
        settings = self.config.forecast
        forecaster = StoreForecaster(
            horizon=settings.horizon,
            seasonal_periods=settings.seasonal_periods,
            holdout_days=settings.holdout_days,
            confidence_level=settings.confidence_level,
            candidate_models=list(settings.candidate_models)
        )

        forecasts = forecaster.forecast_matrix(prepared.matrix)
        forecast_table = build_forecast_table(forecasts, prepared.store_names)
        selection = selection_table(forecasts)

        return PipelineResult(
            prepared=prepared,
            forecasts=forecasts,
            forecast_table=forecast_table,
            model_selection=selection,
            summary=self._build_summary(prepared, forecasts)
        )

    def run(self, tables: InputTables) -> PipelineResult:
        """Prepare and forecast in one call."""
        started_at = datetime.now()
        result = self.forecast(self.prepare(tables))
        result.summary['started_at'] = started_at.isoformat()
        result.summary['completed_at'] = datetime.now().isoformat()
        return result

    def run_from_directory(self, data_dir: str = None, output_dir: str = None) -> PipelineResult:
        """
        Load the input tables from disk, run the pipeline and export outputs.

        Parameters
        ----------
        data_dir : str, optional
            Directory of input exports. Defaults to config.data_path.
        output_dir : str, optional
            Directory for outputs. Defaults to config.output_path.
        """
        data_dir = data_dir or self.config.data_path
        output_dir = output_dir or self.config.output_path

        with LogContext(logger, "Loading data"):
            load_result = DataLoader(data_dir).load_all()

        result = self.run(load_result.tables)
        result.summary['input'] = load_result.summary

        package = OutputPackage(
            forecast_table=result.forecast_table,
            demand_matrix=result.prepared.matrix.frame,
            model_selection=result.model_selection,
            summary=result.summary
        )
        generator = OutputGenerator(output_dir=output_dir)
        result.exported_files = generator.export(package, self.config.ingredient_name)

        return result

    def _store_ids(self, tables: InputTables) -> List[Any]:
        # Stores table first, then stores that only appear in orders
        store_ids = list(tables.store_ids())
        seen = set(store_ids)
        for store_id in tables.orders['store_id'].dropna().unique():
            if store_id not in seen:
                store_ids.append(store_id)
                seen.add(store_id)
        return store_ids

    def _build_summary(self, prepared: PreparedDemand, forecasts: List[ForecastResult]) -> Dict[str, Any]:
        return {
            'config': self.config.to_dict(),
            'stages': [d.to_dict() for d in prepared.diagnostics],
            'forecasting': {
                'stores_forecast': len(forecasts),
                'selected_models': {str(r.store_id): r.method for r in forecasts},
                'explanations': {str(r.store_id): r.explanation for r in forecasts},
            },
        }
