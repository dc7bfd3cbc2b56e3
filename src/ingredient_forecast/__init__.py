"""
Ingredient Forecast
====================
Daily per-store demand forecasting for a single ingredient from POS order
lines and recipe reference tables.

Order lines are resolved into ingredient consumption (directly and through
sub-recipes), summed per store and day, densified onto a daily calendar and
forecast per store with holdout-based model selection.
"""

__version__ = "1.0.0"

from .config import PipelineConfig, StoreConfig, ForecastSettings, DEFAULT_CONFIG
from .exceptions import (
    IngredientForecastError,
    ConfigurationError,
    SchemaError,
    ForecastError
)
from .pipeline import IngredientDemandPipeline, PreparedDemand, PipelineResult

__all__ = [
    'PipelineConfig',
    'StoreConfig',
    'ForecastSettings',
    'DEFAULT_CONFIG',
    'IngredientForecastError',
    'ConfigurationError',
    'SchemaError',
    'ForecastError',
    'IngredientDemandPipeline',
    'PreparedDemand',
    'PipelineResult'
]
