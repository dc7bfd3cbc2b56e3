"""
Utils Package
=============
Utility functions for the ingredient demand pipeline.

Modules:
- logger: Centralized logging configuration
- validators: Schema and data validation utilities
- constants: Table schemas, thresholds and forecasting defaults
"""

from .logger import get_logger, LogContext
from .validators import SchemaValidator, ValidationResult, require_columns
from .constants import (
    TABLE_SCHEMAS,
    COLUMN_ALIASES,
    DATA_QUALITY_THRESHOLDS,
    FORECAST_CONFIG,
    OUTPUT_CONFIG
)

__all__ = [
    'get_logger',
    'LogContext',
    'SchemaValidator',
    'ValidationResult',
    'require_columns',
    'TABLE_SCHEMAS',
    'COLUMN_ALIASES',
    'DATA_QUALITY_THRESHOLDS',
    'FORECAST_CONFIG',
    'OUTPUT_CONFIG'
]
